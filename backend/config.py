"""
Application configuration.

Settings are read from environment variables (or a local .env file) once at
startup and injected into the FastAPI app as ``app.state.settings``. Route
handlers and dependencies read them through ``get_settings``.
"""

import json
import logging
import secrets
from typing import Annotated, List, Literal, Optional

from fastapi import Request
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: str = Field(default="development", description="development, test, staging or production")
    database_url: str = Field(default="sqlite:///./taskflow.db", description="SQLAlchemy database URL")

    # Token signing
    jwt_secret_key: Optional[str] = Field(default=None, description="Secret used to sign bearer tokens")
    jwt_algorithm: Literal["HS256", "HS384", "HS512"] = "HS256"
    token_expire_days: int = Field(default=7, ge=1, le=90)

    # Auth cookie
    cookie_name: str = "token"
    cookie_domain: Optional[str] = None

    # Comma-separated ("http://a,http://b") or a JSON list
    cors_origins: Annotated[List[str], NoDecode] = Field(default_factory=lambda: ["http://localhost:3000"])

    # Global fixed-window limit per client address, in limits notation
    rate_limit: str = "300/15minutes"
    rate_limit_enabled: bool = True

    log_level: str = "INFO"

    # Optional admin account created on startup
    admin_email: Optional[str] = None
    admin_password: Optional[str] = None

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value):
        if not isinstance(value, str):
            return value
        value = value.strip()
        if value.startswith("["):
            return json.loads(value)
        return [origin.strip() for origin in value.split(",") if origin.strip()]

    @model_validator(mode="after")
    def _ensure_secret_key(self) -> "Settings":
        if self.jwt_secret_key:
            return self
        if self.is_production_like:
            raise ValueError(
                "JWT_SECRET_KEY environment variable is required in production. "
                "Generate a secure key with: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
            )
        self.jwt_secret_key = "dev-insecure-key-" + secrets.token_urlsafe(32)
        logger.warning(
            "JWT_SECRET_KEY not set! Using temporary development key. "
            "Tokens will not survive a restart. Set JWT_SECRET_KEY for real deployments."
        )
        return self

    @property
    def is_production_like(self) -> bool:
        """True for production and staging, where cookies must be secure."""
        return self.environment.lower() in ("production", "staging")

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    @property
    def cookie_secure(self) -> bool:
        return self.is_production_like

    @property
    def cookie_samesite(self) -> str:
        return "strict" if self.is_production_like else "lax"

    @property
    def cookie_max_age(self) -> int:
        return self.token_expire_days * 24 * 60 * 60


def get_settings(request: Request) -> Settings:
    """FastAPI dependency returning the settings the running app was built with."""
    return request.app.state.settings
