"""
Configuration Management Module

Centralized configuration using pydantic-settings. Every field can be set
from the environment with the ``HSA_LEDGER_`` prefix or from a ``.env`` file.
"""

from decimal import Decimal
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerConfig(BaseSettings):
    """HSA ledger configuration"""

    model_config = SettingsConfigDict(
        env_prefix="HSA_LEDGER_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Storage configuration
    storage_backend: str = "memory"  # memory or sqlite
    database_path: str = "hsa_ledger.db"

    # Business rules configuration
    currency: str = "USD"
    default_interest_rate: str = "0.01"  # Decimal as string
    card_number_prefix: str = "4000"
    card_validity_years: int = 3
    card_issue_max_attempts: int = 5

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 4000
    cors_origins: List[str] = ["*"]

    @property
    def interest_rate(self) -> Decimal:
        return Decimal(self.default_interest_rate)


config: Optional[LedgerConfig] = None


def get_config() -> LedgerConfig:
    """Get global configuration instance"""
    global config
    if config is None:
        config = LedgerConfig()
    return config


def reload_config() -> LedgerConfig:
    """Reload configuration from environment"""
    global config
    config = LedgerConfig()
    return config
