"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - The session credential comes from the environment (never hardcoded)
    - get_settings() is cached (lru_cache) — single instance per process
    - Sync timeout is always finite

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - Defaults provided for every setting: works out-of-the-box with the embedded SQLite file
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database (embedded by default)
    database_url: str = "sqlite+aiosqlite:///./stocksync.db"
    database_echo: bool = False

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_sqlite_url(cls, v: str) -> str:
        """A bare sqlite:// URL needs the aiosqlite driver for async sessions."""
        if isinstance(v, str) and v.startswith("sqlite://"):
            return v.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return v

    # Remote sync
    sync_endpoint_url: str = "http://localhost:8080/api/sync"
    sync_timeout_seconds: float = Field(30.0, gt=0)
    sync_min_interval_seconds: float = Field(300.0, ge=0)
    session_token: str | None = None

    # History
    default_actor: str = "local"

    # API
    cors_origins: list[str] = ["http://localhost:8081"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


@lru_cache
def get_settings() -> Settings:
    return Settings()
