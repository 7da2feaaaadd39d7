"""Configuration management for charge engine."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment."""

    database_url: str
    host: str
    port: int
    debug: bool
    log_level: str
    sandbox_secret: str
    notify_base_url: str
    scheduler_poll_seconds: float

    @property
    def HOST(self) -> str:
        """Alias for host."""
        return self.host

    @property
    def PORT(self) -> int:
        """Alias for port."""
        return self.port

    @property
    def DEBUG(self) -> bool:
        """Alias for debug."""
        return self.debug

    @property
    def uses_database(self) -> bool:
        """False means charges and refunds live in process memory."""
        return bool(self.database_url)

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment variables."""
        load_dotenv()

        return cls(
            database_url=os.getenv("DATABASE_URL", ""),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8000")),
            debug=os.getenv("DEBUG", "false").lower() == "true",
            log_level=os.getenv("LOG_LEVEL", "info").lower(),
            sandbox_secret=os.getenv("SANDBOX_SECRET", "sandbox-secret"),
            notify_base_url=os.getenv("NOTIFY_BASE_URL", "http://localhost:8000"),
            scheduler_poll_seconds=float(os.getenv("SCHEDULER_POLL_SECONDS", "5")),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings.from_env()
