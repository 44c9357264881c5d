"""
Application configuration module.

Provides centralized, environment-safe configuration management
with sensible defaults for every security subsystem.
"""

import logging
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Application settings with environment variable support.

    All settings can be overridden via environment variables.
    Environment variables should be prefixed with WATCHPOST_.

    Attributes:
        APP_NAME: Application name.
        DATABASE_URL: Async SQLAlchemy database URL.
        SECRET_KEY: Key used to sign and verify bearer tokens.
        MAX_LOGIN_ATTEMPTS: Failed attempts before an account locks.
        MONITOR_CHECK_INTERVAL_MS: Health-check cycle interval.
    """

    # Application metadata
    APP_NAME: str = Field(default="Watchpost Security Monitoring API")
    APP_VERSION: str = Field(default="1.0.0")
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # Logging configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")

    # Database configuration
    DATABASE_URL: str = Field(default="sqlite+aiosqlite:///./watchpost.db")
    DB_ECHO: bool = Field(default=False)
    AUTO_CREATE_TABLES: bool = Field(default=True)

    # Bearer token verification
    SECRET_KEY: str = Field(default="change-me-in-production-please-32-chars")
    ALGORITHM: str = Field(default="HS256")
    ISSUER: str = Field(default="watchpost")
    AUDIENCE: str = Field(default="watchpost-api")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=30, ge=1)
    ADMIN_ROLES: List[str] = Field(default_factory=lambda: ["admin", "security_admin"])
    SERVICE_ROLES: List[str] = Field(default_factory=lambda: ["service"])

    # Login attempt tracking
    MAX_LOGIN_ATTEMPTS: int = Field(default=5, ge=1)
    LOCKOUT_DURATION_MINUTES: int = Field(default=15, ge=1)
    RESET_AFTER_SUCCESS: bool = Field(default=True)

    # Password policy
    PASSWORD_MIN_LENGTH: int = Field(default=8, ge=1)
    PASSWORD_REQUIRE_UPPERCASE: bool = Field(default=True)
    PASSWORD_REQUIRE_LOWERCASE: bool = Field(default=True)
    PASSWORD_REQUIRE_DIGIT: bool = Field(default=True)
    PASSWORD_REQUIRE_SPECIAL: bool = Field(default=True)
    PASSWORD_REJECT_COMMON: bool = Field(default=True)

    # Multi-factor authentication
    MFA_ISSUER: str = Field(default="Watchpost")
    TOTP_PERIOD: int = Field(default=30, ge=1)
    TOTP_DIGITS: int = Field(default=6, ge=6, le=8)
    TOTP_VALID_WINDOW: int = Field(default=1, ge=0)
    MFA_ENCRYPTION_KEY: Optional[str] = Field(default=None)
    BACKUP_CODES_COUNT: int = Field(default=10, ge=1)
    BACKUP_CODE_LENGTH: int = Field(default=8, ge=6)
    ARGON2_TIME_COST: int = Field(default=3, ge=1)
    ARGON2_MEMORY_COST: int = Field(default=65536, ge=8)
    ARGON2_PARALLELISM: int = Field(default=4, ge=1)

    # Monitoring
    MONITOR_CHECK_INTERVAL_MS: int = Field(default=600_000, ge=60_000)
    MONITOR_AUTOSTART: bool = Field(default=False)
    HEALTH_CHECK_TIMEOUT_SECONDS: float = Field(default=5.0, gt=0)
    HEALTH_SLOW_RESPONSE_MS: int = Field(default=2000, ge=1)
    HEALTH_API_ENDPOINTS: List[str] = Field(default_factory=list)
    PERFORMANCE_HISTORY_SIZE: int = Field(default=100, ge=1, le=100)
    PERFORMANCE_SAMPLE_SIZE: int = Field(default=1000, ge=1)

    # Alerting
    ALERT_DEDUP_ENABLED: bool = Field(default=False)
    SEED_DEFAULT_RULES: bool = Field(default=True)
    SECURITY_ALERT_EMAILS: List[str] = Field(default_factory=lambda: ["security@watchpost.local"])

    # Notification channels
    SMTP_HOST: Optional[str] = Field(default=None)
    SMTP_PORT: int = Field(default=587)
    SMTP_USERNAME: Optional[str] = Field(default=None)
    SMTP_PASSWORD: Optional[str] = Field(default=None)
    SMTP_USE_TLS: bool = Field(default=True)
    SMTP_SENDER: str = Field(default="alerts@watchpost.local")
    PUSH_GATEWAY_URL: Optional[str] = Field(default=None)
    SMS_GATEWAY_URL: Optional[str] = Field(default=None)
    SMS_API_KEY: Optional[str] = Field(default=None)
    SLACK_WEBHOOK_URL: Optional[str] = Field(default=None)
    NOTIFICATION_TIMEOUT_SECONDS: float = Field(default=10.0, gt=0)

    # Reporting
    REPORT_RETENTION_DAYS: int = Field(default=90, ge=1)

    model_config = {
        "env_prefix": "WATCHPOST_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator("LOG_FORMAT")
    @classmethod
    def validate_log_format(cls, value: str) -> str:
        """Only json and console renderers are supported."""
        value = value.lower()
        if value not in ("json", "console"):
            raise ValueError("LOG_FORMAT must be 'json' or 'console'")
        return value

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Returns:
        Settings instance.
    """
    global _settings
    if _settings is None:
        _settings = Settings()
        logger.info(
            "Settings loaded: app_name=%s, environment=%s",
            _settings.APP_NAME,
            _settings.ENVIRONMENT,
        )
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next access re-reads the environment."""
    global _settings
    _settings = None
