"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class AmortizerConfig(BaseSettings):
    """Amortization engine configuration"""

    # Storage configuration
    storage_backend: str = "memory"  # memory or sqlite
    sqlite_path: str = "amortizer.db"

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Business rules configuration
    default_precision: int = 2
    date_shift_threshold_days: int = 30  # Payments further than this from the due date re-date the suffix
    max_installments: int = 3120  # 60 years of weekly payments
    history_limit: int = 100  # Replaced schedules kept per loan

    class Config:
        env_prefix = "AMORTIZER_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = AmortizerConfig()


def get_config() -> AmortizerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> AmortizerConfig:
    """Reload configuration from environment"""
    global config
    config = AmortizerConfig()
    return config
