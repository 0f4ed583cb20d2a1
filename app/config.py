"""
Configuration management for the Bricks fulfillment service
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "Bricks Fulfillment Service"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    log_dir: str = "logs"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Database
    database_url: str = "sqlite:///./bricks.db"

    # Melhor Envio (shipping carrier)
    melhor_envio_token: Optional[str] = None
    melhor_envio_sandbox: bool = False
    melhor_envio_user_agent: str = "Loja Bricks (devguilhermeverrone@gmail.com)"
    melhor_envio_timeout_seconds: float = 30.0

    # Return depot (merchant identity used as destination of reverse shipments)
    company_cep: str = "11045003"
    company_name: str = "Loja Bricks"
    company_phone: str = "11912345678"
    company_email: str = "devguilhermeverrone@gmail.com"
    company_document: str = "49100771899"
    company_address: str = "Av. Conselheiro Nebias"
    company_number: str = "669"
    company_complement: str = ""
    company_district: str = "Boqueirão"
    company_city: str = "Santos"
    company_state: str = "SP"

    # Order sync job
    enable_order_sync_scheduler: bool = True
    order_sync_delay_seconds: float = 0.5  # Pause between carrier lookups
    order_sync_startup_delay_seconds: float = 5.0
    scheduler_timezone: str = "America/Sao_Paulo"

    # Admin Basic Auth gate
    dash_user: str = ""
    dash_pass: str = ""

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
