"""
Configuration module for the Capability Proxy.

This module uses Pydantic Settings to load and validate environment variables
for token verification, the token header, upstream forwarding and the
server process.

Environment variables are loaded from .env file or system environment.
"""

import re
from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# RFC 7230 token characters, the only ones allowed in a header field name
_HEADER_NAME_PATTERN = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    The public key is the only required value; everything else has a
    default suitable for local development.
    """

    # =========================================================================
    # Token Verification
    # =========================================================================

    JWT_SIGNING_PUBLIC_KEY: str = Field(
        ...,
        description="PEM-encoded RSA public key used to verify capability tokens (RS512)",
        min_length=1,
    )

    TOKEN_HEADER_NAME: str = Field(
        default="x-bump-proxy-token",
        description="Request header carrying the capability token",
    )

    # =========================================================================
    # Upstream Forwarding
    # =========================================================================

    UPSTREAM_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        description="Timeout applied to each upstream request",
        gt=0,
        le=600,
    )

    DECOMPRESS_RESPONSES: bool = Field(
        default=True,
        description="Decode gzip upstream bodies before relaying them to the client",
    )

    # =========================================================================
    # Server Configuration
    # =========================================================================

    PROXY_HOST: str = Field(
        default="0.0.0.0",
        description="Host to bind the proxy server",
    )

    PROXY_PORT: int = Field(
        default=4567,
        description="Port to bind the proxy server",
        ge=1,
        le=65535,
    )

    WEB_CONCURRENCY: int = Field(
        default=2,
        description="Number of uvicorn worker processes",
        ge=1,
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    # =========================================================================
    # Pydantic Settings Configuration
    # =========================================================================

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def cors_allow_methods(self) -> List[str]:
        return ["OPTIONS", "GET", "POST", "PUT", "PATCH", "DELETE"]

    @property
    def cors_allow_headers(self) -> List[str]:
        """
        Request headers a browser may send cross-origin.

        Returns:
            Header names including the configured token header.
        """
        return ["Content-Type", "Authorization", self.TOKEN_HEADER_NAME, "x-requested-with"]

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("JWT_SIGNING_PUBLIC_KEY")
    @classmethod
    def unescape_public_key(cls, v: str) -> str:
        """
        Restore newlines in a PEM key stored on a single line.

        Env files commonly hold PEM blocks with literal ``\\n`` sequences.

        Raises:
            ValueError: If the value does not look like a PEM public key
        """
        v = v.replace("\\n", "\n").strip()
        if not v.startswith("-----BEGIN"):
            raise ValueError("JWT_SIGNING_PUBLIC_KEY must be a PEM-encoded public key")
        return v

    @field_validator("TOKEN_HEADER_NAME")
    @classmethod
    def validate_header_name(cls, v: str) -> str:
        v = v.strip()
        if not _HEADER_NAME_PATTERN.match(v):
            raise ValueError(f"Invalid header name: '{v}'")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

        v = v.upper()
        if v not in allowed_levels:
            raise ValueError(f"LOG_LEVEL must be one of {allowed_levels}, got: {v}")
        return v


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    The settings are loaded only once during the application lifecycle.

    Raises:
        ValidationError: If JWT_SIGNING_PUBLIC_KEY is missing or any value
                         is invalid.
    """
    return Settings()
