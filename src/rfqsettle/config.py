"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Database
    # ======================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/rfqsettle.db",
        description="Database connection URL",
    )

    # ======================
    # API
    # ======================
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=8000, description="API server port")

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=True, description="Enable debug mode")
    log_level: Optional[str] = Field(
        default=None, description="Explicit log level (overrides debug)"
    )

    # ======================
    # Admin
    # ======================
    admin_token: str = Field(default="", description="Admin API token for protected endpoints")

    # ======================
    # Cross-chain messaging
    # ======================
    signer_set: str = Field(
        default="",
        description="Registered validator set as comma-separated address:power pairs",
    )
    lock_timeout: float = Field(
        default=30.0, description="Seconds to wait for a per-chain processing lock"
    )

    # ======================
    # Relayer
    # ======================
    relayer_poll_interval: float = Field(
        default=5.0, description="Seconds between relayer polling rounds"
    )
    relayer_max_attempts: int = Field(
        default=5, description="Attempts before a relay job is dropped"
    )
    relayer_address: str = Field(
        default="", description="Account the relayer submits from (empty disables it)"
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def effective_log_level(self) -> str:
        """Resolve the logging level name."""
        if self.log_level:
            return self.log_level.upper()
        return "DEBUG" if self.debug else "INFO"

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "database_url": self._redact_url(self.database_url),
            "admin_token": "***" if self.admin_token else "(not set)",
            "signer_set": self.signer_set or "(not set)",
            "relayer": {
                "poll_interval": self.relayer_poll_interval,
                "address": self.relayer_address or "(disabled)",
                "max_attempts": self.relayer_max_attempts,
            },
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact sensitive parts of database URL."""
        if "://" in url and "@" in url:
            proto, rest = url.split("://", 1)
            if "@" in rest:
                creds, host = rest.rsplit("@", 1)
                if ":" in creds:
                    user, _ = creds.split(":", 1)
                    return f"{proto}://{user}:***@{host}"
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
