"""Pydantic models for parsing the config.yaml configuration file.

This module contains Pydantic models that correspond to the structure of config.yaml.
These models handle validation and type conversion of the YAML configuration data.
"""

from __future__ import annotations

from typing import Literal

from loguru import logger
from pydantic import BaseModel, Field, computed_field


class CORSConfig(BaseModel):
    """CORS configuration for the application."""

    origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:3001"]
    )
    allow_credentials: bool = True
    allow_methods: list[str] = Field(
        default=["GET", "POST", "PUT", "DELETE", "OPTIONS"]
    )
    allow_headers: list[str] = Field(default=["*"])


class FeaturesConfig(BaseModel):
    """Feature switches resolved once at startup."""

    external_identity_enabled: bool = Field(
        default=False,
        description="Mirror registrations into the external identity provider "
        "and accept provider-issued tokens",
    )


class IdentityProviderConfig(BaseModel):
    """External identity-as-a-service provider configuration."""

    name: str = Field(default="firebase", description="Provider label used in logs")
    api_base_url: str = Field(
        default="https://identitytoolkit.googleapis.com/v1",
        description="Base URL of the provider's account management API",
    )
    api_key: str | None = Field(
        default=None, description="API key appended to account management calls"
    )
    admin_bearer_token: str | None = Field(
        default=None,
        description="Bearer token for privileged calls such as account deletion",
    )
    issuer: str = Field(
        default="", description="Issuer (iss) of tokens minted by the provider"
    )
    audience: str = Field(
        default="", description="Audience (aud) expected on provider tokens"
    )
    jwks_uri: str = Field(default="", description="JWKS endpoint for token validation")
    allowed_algorithms: list[str] = Field(
        default_factory=lambda: ["RS256"],
        description="Algorithms accepted on provider tokens",
    )
    timeout_seconds: float = Field(
        default=5.0, description="Upper bound for a single provider call"
    )


class JWTConfig(BaseModel):
    """Local token signing and validation configuration."""

    allowed_algorithms: list[str] = Field(
        default_factory=lambda: ["HS256"],
        description="JWT algorithms allowed for locally signed tokens",
    )
    gen_issuer: str = Field(
        default="hotel-auth", description="Issuer name to use when generating tokens"
    )
    audiences: list[str] = Field(
        default_factory=lambda: ["hotel-api"],
        description="JWT audiences placed on locally issued tokens",
    )
    access_token_ttl_seconds: int = Field(
        default=24 * 3600, description="Lifetime of locally issued access tokens"
    )
    clock_skew: int = Field(default=60, description="Clock skew tolerance in seconds")


class RegistrationConfig(BaseModel):
    """Self-service registration rules."""

    default_role: str = Field(
        default="hoteladmin", description="Role assigned when none is requested"
    )
    max_self_assign_role: str = Field(
        default="hoteladmin",
        description="Highest role a caller may request for themselves",
    )
    min_password_length: int = Field(default=6, description="Minimum password length")


class OrphanConfig(BaseModel):
    """Orphaned account reconciliation."""

    policy: Literal["any_unlinked", "failed_link_only"] = Field(
        default="any_unlinked",
        description="Which unlinked local accounts count as orphaned",
    )
    default_grace_minutes: int = Field(
        default=60, description="Default age threshold for the cleanup endpoint"
    )


class LoggingConfig(BaseModel):
    """Logging configuration model."""

    level: str = Field(default="INFO", description="Logging level")
    format: Literal["json", "plain"] = Field(default="json", description="Log format")
    file: str = Field(default="logs/app.log", description="Log file path")
    max_size_mb: int = Field(default=10, description="Maximum log file size in MB")
    backup_count: int = Field(
        default=5, description="Number of backup log files to keep"
    )


class DatabaseConfig(BaseModel):
    """Database configuration model."""

    url: str = Field(
        default="sqlite:///./hotel_auth.db",
        description="Database connection URL",
    )
    pool_size: int = Field(default=20, description="Connection pool size")
    max_overflow: int = Field(default=10, description="Maximum pool overflow")
    pool_timeout: int = Field(default=30, description="Pool timeout in seconds")
    pool_recycle: int = Field(default=1800, description="Pool recycle time in seconds")
    password_env_var: str | None = Field(
        default=None,
        description="Environment variable name containing database password",
    )
    password_file: str | None = Field(
        default=None,
        description="Path to file containing database password",
    )

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @computed_field
    @property
    def password(self) -> str | None:
        """
        Get the database password from the appropriate source.
        1. A mounted secrets file named by `password_file`
        2. The environment variable named by `password_env_var`
        3. Whatever is embedded in the URL
        """
        if self.password_file:
            try:
                with open(self.password_file) as f:
                    return f.read().strip()
            except OSError as e:
                raise ValueError("Failed to read database password from file.") from e
        if self.password_env_var:
            import os

            password = os.getenv(self.password_env_var)
            if not password:
                raise ValueError(
                    f"Environment variable {self.password_env_var} not set"
                )
            return password

        from sqlalchemy.engine import make_url

        return make_url(self.url).password

    @computed_field
    @property
    def connection_string(self) -> str:
        """Construct the database connection string with password if provided."""
        if self.is_sqlite:
            return self.url

        from sqlalchemy.engine import make_url

        base_url = make_url(self.url)
        resolved_password = self.password
        if resolved_password and resolved_password != base_url.password:
            if base_url.password:
                logger.warning(
                    "Database password from secret source does not match the one "
                    "in the URL. Using the secret source."
                )
            base_url = base_url.set(password=resolved_password)
        return base_url.render_as_string(hide_password=False)


class AppConfig(BaseModel):
    """Application configuration model."""

    environment: Literal["development", "production", "test"] = Field(
        default="development", description="Application environment"
    )
    host: str = Field(default="localhost", description="Application host")
    port: int = Field(default=8000, description="Application port")
    session_signing_secret: str | None = Field(
        default=None, description="Secret for signing locally issued JWTs"
    )
    debug_errors: bool = Field(
        default=False,
        description="Include internal error detail in responses outside production",
    )
    cors: CORSConfig = Field(
        default_factory=CORSConfig, description="CORS configuration"
    )

    @property
    def base_url(self) -> str:
        """Construct the base URL from host and port."""
        scheme = "https" if self.environment == "production" else "http"
        return f"{scheme}://{self.host}:{self.port}"


class ConfigData(BaseModel):
    """Root configuration model that matches the config.yaml structure."""

    app: AppConfig = Field(
        default_factory=AppConfig, description="Application configuration"
    )
    jwt: JWTConfig = Field(
        default_factory=JWTConfig, description="JWT signing configuration"
    )
    features: FeaturesConfig = Field(
        default_factory=FeaturesConfig, description="Feature switches"
    )
    identity_provider: IdentityProviderConfig = Field(
        default_factory=IdentityProviderConfig,
        description="External identity provider configuration",
    )
    registration: RegistrationConfig = Field(
        default_factory=RegistrationConfig, description="Registration rules"
    )
    orphans: OrphanConfig = Field(
        default_factory=OrphanConfig, description="Orphan cleanup configuration"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    database: DatabaseConfig = Field(
        default_factory=DatabaseConfig, description="Database configuration"
    )
