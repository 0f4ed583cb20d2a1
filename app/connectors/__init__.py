"""Carrier connectors for the Bricks fulfillment service"""

from app.connectors.base_connector import BaseConnector
from app.connectors.melhor_envio_connector import MelhorEnvioConnector, get_melhor_envio_connector

__all__ = [
    "BaseConnector",
    "MelhorEnvioConnector",
    "get_melhor_envio_connector"
]
