"""
Logging configuration
"""
from loguru import logger
import sys
from app.config import get_settings

settings = get_settings()


def _from_carrier(record) -> bool:
    return (record["name"] or "").startswith("app.connectors")


def setup_logger():
    """Console, daily service log, error log and a carrier request log."""
    logger.remove()  # Remove default handler

    logger.add(
        sys.stdout,
        colorize=True,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
        level=settings.log_level
    )

    logger.add(
        f"{settings.log_dir}/fulfillment_{{time:YYYY-MM-DD}}.log",
        rotation="00:00",
        retention="30 days",
        compression="zip",
        level="INFO"
    )

    # Aborted workflows and failed sync items
    logger.add(
        f"{settings.log_dir}/errors_{{time:YYYY-MM-DD}}.log",
        rotation="00:00",
        retention="90 days",
        level="ERROR"
    )

    # Melhor Envio warnings and failures only
    logger.add(
        f"{settings.log_dir}/carrier_{{time:YYYY-MM-DD}}.log",
        rotation="00:00",
        retention="90 days",
        level="WARNING",
        filter=_from_carrier
    )

    return logger


# Initialize logger
log = setup_logger()
