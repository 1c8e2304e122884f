"""Service configuration using pydantic-settings.

This module defines the HooklineSettings class that reads configuration
from environment variables with the HOOKLINE_ prefix. Every field has a
default, so the service starts with no environment at all: no secret
(unauthenticated mode), an in-memory event store, and templates read from
./prompts.
"""

import logging
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class HooklineSettings(BaseSettings):
    """Webhook ingestion configuration from environment variables.

    All environment variables are prefixed with HOOKLINE_ (e.g.,
    HOOKLINE_WEBHOOK_SECRET). A .env file in the working directory is read
    when present.
    """

    model_config = SettingsConfigDict(
        env_prefix="HOOKLINE_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # Webhook Verification
    # -------------------------------------------------------------------------
    # Shared secret for X-Hub-Signature-256; empty means unauthenticated mode
    webhook_secret: str = ""

    # Reject (401) deliveries whose signature does not verify
    enforce_signature: bool = False

    # -------------------------------------------------------------------------
    # Storage
    # -------------------------------------------------------------------------
    # PostgreSQL connection string; empty selects the in-memory store
    database_url: str = ""

    # Root directory holding generic/ and repos/ template trees
    templates_path: str = "./prompts"

    # -------------------------------------------------------------------------
    # Agent Dispatch
    # -------------------------------------------------------------------------
    # Run the agent automatically for every rendered document
    auto_dispatch_enabled: bool = True

    # When set, only dispatch if this tag appears in the event's text fields
    dispatch_tag: str = ""

    # Upper bound on a single agent invocation before it is killed
    agent_timeout_seconds: int = 3600

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    log_level: str = "INFO"

    host: str = "0.0.0.0"

    port: int = 4665

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate that a non-empty database URL is a PostgreSQL URL."""
        v = v.strip()
        if v and not v.startswith(("postgresql://", "postgres://")):
            raise ValueError(
                "database_url must start with postgresql:// or postgres://"
            )
        return v

    @field_validator("templates_path")
    @classmethod
    def validate_templates_path(cls, v: str) -> str:
        """Validate that the templates path is not empty."""
        if not v or not v.strip():
            raise ValueError("templates_path cannot be empty")
        return str(Path(v.strip()))

    @field_validator("agent_timeout_seconds")
    @classmethod
    def validate_agent_timeout(cls, v: int) -> int:
        """Validate that agent timeout is positive."""
        if v < 1:
            raise ValueError("agent_timeout_seconds must be at least 1")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log level names a standard logging level."""
        level = v.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"log_level must be a logging level name, got {v!r}")
        return level

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @property
    def verification_enabled(self) -> bool:
        return bool(self.webhook_secret)


def get_settings() -> HooklineSettings:
    """Create and return a HooklineSettings instance.

    Returns:
        HooklineSettings: Configured settings instance.

    Raises:
        pydantic.ValidationError: If a provided value is invalid.
    """
    return HooklineSettings()
