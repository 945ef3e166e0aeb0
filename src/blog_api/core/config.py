"""Application configuration via Pydantic Settings.

All configuration is loaded from environment variables following 12-factor principles.
"""

import re

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


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
        description="SQLAlchemy async connection string (postgresql+asyncpg:// in production)",
    )
    database_schema: str | None = Field(
        default=None,
        description="PostgreSQL schema for isolated environments (e.g., pr_42)",
    )
    store_timeout_seconds: float = Field(
        default=10.0,
        description="Deadline applied to every auth transaction; exceeded transactions roll back",
        gt=0,
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

    # JWT
    jwt_secret_key: str = Field(min_length=32, description="Secret key for signing JWTs (minimum 32 characters)")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    jwt_issuer: str = Field(default="blog-api", description="Issuer claim bound into every access token")
    jwt_audience: str = Field(default="blog-clients", description="Audience claim bound into every access token")
    jwt_access_token_expire_minutes: int = Field(
        default=15,
        description="Access token expiration in minutes",
        gt=0,
    )
    jwt_refresh_token_expire_days: int = Field(
        default=7,
        description="Refresh token expiration in days",
        gt=0,
    )

    # Login lockout
    max_login_failures: int = Field(
        default=5,
        description="Consecutive failed logins before the account is locked",
        gt=0,
    )
    lockout_duration_seconds: int = Field(
        default=900,
        description="How long a locked account stays locked",
        gt=0,
    )

    # One-time tokens
    email_verification_ttl_hours: int = Field(
        default=24,
        description="Lifetime of email verification links in hours",
        gt=0,
    )
    password_reset_ttl_minutes: int = Field(
        default=15,
        description="Lifetime of password reset links in minutes",
        gt=0,
    )

    # RBAC
    default_role: str = Field(
        default="author",
        description="Role attached to every newly registered user",
    )

    # Email
    frontend_base_url: str = Field(
        default="http://localhost:3000",
        description="Base URL used to build verification and reset links",
    )
    smtp_host: str | None = Field(
        default=None,
        description="SMTP host; when unset, emails are logged instead of sent",
    )
    smtp_port: int = Field(default=587, description="SMTP port", gt=0)
    smtp_username: str | None = Field(default=None, description="SMTP login user")
    smtp_password: str | None = Field(default=None, description="SMTP login password")
    smtp_use_tls: bool = Field(default=True, description="Issue STARTTLS before authenticating")
    smtp_timeout_seconds: float = Field(default=30.0, description="SMTP connection timeout", gt=0)
    email_from_address: str = Field(
        default="no-reply@localhost",
        description="Sender address for transactional email",
    )

    @field_validator("frontend_base_url")
    @classmethod
    def validate_frontend_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            msg = "frontend_base_url must use http or https"
            raise ValueError(msg)
        return v.rstrip("/")

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
    auth_rate_limit_per_minute: int = Field(
        default=20,
        description="Maximum credential requests (login, register, password reset) per minute per IP address",
        gt=0,
    )
    trusted_proxy_headers: str = Field(
        default="",
        description=(
            "Comma-separated proxy headers carrying the client address, e.g. X-Forwarded-For. "
            "Leave empty unless a reverse proxy sets them; the connection address is used otherwise"
        ),
    )

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        if not self.cors_origins.strip():
            return []
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def trusted_proxy_header_list(self) -> list[str]:
        """Parse the trusted proxy headers string into a list."""
        return [header.strip() for header in self.trusted_proxy_headers.split(",") if header.strip()]


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()  # type: ignore[call-arg]
