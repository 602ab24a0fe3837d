"""Application configuration via Pydantic Settings.

All configuration is loaded from environment variables following 12-factor principles.
"""

import re

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: str) -> list[str]:
    """Split a comma-separated setting into stripped, non-empty items."""
    if not value.strip():
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = Field(
        description="PostgreSQL async connection string",
    )
    database_schema: str | None = Field(
        default=None,
        description="PostgreSQL schema for isolated environments (e.g., pr_42)",
    )

    @field_validator("database_schema")
    @classmethod
    def validate_database_schema(cls, v: str | None) -> str | None:
        if v is None:
            return None
        if not re.match(r"^[a-z_][a-z0-9_]{0,62}$", v):
            msg = "Invalid database_schema: must match ^[a-z_][a-z0-9_]{0,62}$"
            raise ValueError(msg)
        return v

    # JWT (admin sessions)
    jwt_secret_key: str = Field(min_length=32, description="Secret key for signing JWTs (minimum 32 characters)")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    jwt_access_token_expire_minutes: int = Field(
        default=30,
        description="Access token expiration in minutes",
        gt=0,
    )
    jwt_refresh_token_expire_days: int = Field(
        default=7,
        description="Refresh token expiration in days",
        gt=0,
    )

    # Results declaration
    declaration_secret: str | None = Field(
        default=None,
        min_length=8,
        description="Shared results password; also signs declaration tokens",
    )
    declaration_principal_phones: str = Field(
        default="",
        description="Comma-separated phones of the two authorized principals, in approval order",
    )
    declaration_token_expire_minutes: int = Field(
        default=120,
        description="Lifetime of a declaration capability token in minutes",
        gt=0,
    )
    declaration_challenge_expire_minutes: int = Field(
        default=30,
        description="Lifetime of a declaration challenge in minutes",
        gt=0,
    )
    declaration_max_code_attempts: int = Field(
        default=5,
        description="Wrong one-time codes tolerated before a challenge is expired",
        gt=0,
    )
    otp_expire_minutes: int = Field(
        default=10,
        description="One-time code validity in minutes",
        gt=0,
    )
    declaration_cleanup_enabled: bool = Field(
        default=True,
        description="Enable background sweep of expired codes and stale challenges",
    )
    declaration_cleanup_interval: int = Field(
        default=600,
        description="Seconds between cleanup sweeps",
        ge=10,
    )

    @field_validator("declaration_principal_phones")
    @classmethod
    def validate_principal_phones(cls, v: str) -> str:
        phones = _split_csv(v)
        if phones and len(phones) != 2:
            msg = "declaration_principal_phones must list exactly two phone numbers"
            raise ValueError(msg)
        return v

    @property
    def declaration_principal_phone_list(self) -> list[str]:
        """Principal phones with formatting characters removed."""
        return [re.sub(r"\D", "", phone) for phone in _split_csv(self.declaration_principal_phones)]

    # Offline reconciliation
    merge_max_attempts: int = Field(
        default=3,
        description="Attempts for the merge transaction on transient contention",
        gt=0,
    )
    merge_retry_backoff_seconds: float = Field(
        default=0.5,
        description="Linear backoff step between merge attempts",
        ge=0,
    )

    # Tally
    test_voter_prefix: str = Field(
        default="TEST_",
        description="Voter codes starting with this prefix are excluded from turnout (empty disables)",
    )

    # Notification transport
    notifier_backend: str = Field(
        default="log",
        pattern="^(log|http)$",
        description="One-time code delivery backend: log (development) or http (SMS gateway)",
    )
    sms_gateway_url: str | None = Field(
        default=None,
        description="HTTP endpoint of the SMS gateway",
    )
    sms_gateway_api_key: str | None = Field(
        default=None,
        description="API key sent to the SMS gateway",
    )
    sms_gateway_sender_id: str = Field(
        default="ELECTN",
        description="Sender ID shown on delivered messages",
    )
    sms_gateway_timeout: float = Field(
        default=10.0,
        description="SMS gateway request timeout in seconds",
        gt=0,
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_dir: str | None = Field(
        default=None,
        description="Directory for log files (enables file logging with 24h rotation when set)",
    )

    # CORS
    cors_origins: str = Field(
        default="",
        description="Comma-separated list of allowed CORS origins (must be explicitly configured)",
    )
    cors_origin_regex: str = Field(
        default="",
        description="Regex pattern for allowed CORS origins",
    )

    # Environment
    environment: str = Field(
        default="production",
        description="Deployment environment name (e.g. production, dev, staging)",
    )

    # API
    api_v1_prefix: str = Field(
        default="/api/v1",
        description="API version prefix",
    )
    rate_limit_per_minute: int = Field(
        default=200,
        description="Maximum API requests per minute per IP address",
        gt=0,
    )
    declaration_rate_limit_per_minute: int = Field(
        default=20,
        description="Maximum declaration endpoint requests per minute per IP address",
        gt=0,
    )
    trusted_proxy_headers: str = Field(
        default="CF-Connecting-IP,X-Forwarded-For,X-Real-IP",
        description="Comma-separated list of HTTP headers to check for real client IP, in priority order",
    )

    @property
    def trusted_proxy_header_list(self) -> list[str]:
        """Parse trusted proxy headers string into a list."""
        return _split_csv(self.trusted_proxy_headers)

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return _split_csv(self.cors_origins)


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()  # type: ignore[call-arg]
