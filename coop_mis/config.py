"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class CoopConfig(BaseSettings):
    """Cooperative management system configuration"""

    # Storage configuration
    storage_backend: str = "sqlite"  # sqlite or memory
    database_url: str = "sqlite:///coop_mis.db"

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    cors_origins: str = "*"  # Comma separated

    # Security configuration
    auth_enabled: bool = True
    jwt_secret: str = "change-me-in-production"
    jwt_expiry_hours: int = 24
    jwt_algorithm: str = "HS256"
    session_hours: int = 8
    max_failed_logins: int = 5
    password_min_length: int = 8

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Business rules configuration
    currency: str = "PHP"
    default_loan_interest_rate: str = "12"  # Annual percent
    default_service_fee_percent: str = "1"
    default_savings_interest_rate: str = "2"
    default_minimum_balance: str = "500.00"
    large_transaction_threshold: str = "100000.00"
    default_list_limit: int = 500

    # LLM configuration (eligibility analyzer)
    llm_base_url: str = ""  # Empty = disabled, rule-based assessment is used
    llm_api_key: str = ""
    llm_model: str = "gpt-4o-mini"
    llm_timeout: float = 30.0

    # Bootstrap administrator
    seed_admin_email: Optional[str] = None
    seed_admin_password: Optional[str] = None

    class Config:
        env_prefix = "COOPMIS_"
        env_file = ".env"
        case_sensitive = False

    @property
    def sqlite_path(self) -> str:
        """Filesystem path of the SQLite database"""
        prefix = "sqlite:///"
        if self.database_url.startswith(prefix):
            return self.database_url[len(prefix):] or ":memory:"
        return self.database_url


# Global configuration instance
config = CoopConfig()


def get_config() -> CoopConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> CoopConfig:
    """Reload configuration from environment"""
    global config
    config = CoopConfig()
    return config
