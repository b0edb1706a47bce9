# ABOUTME: Centralized configuration using Pydantic Settings.
# ABOUTME: Loads fetcher, database, and logging settings from environment and .env file.

from functools import lru_cache

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Feeds
    feed_timeout: int = 10
    feed_max_entries: int = 0  # 0 keeps every entry in the document
    feed_user_agent: str = "feedwell/0.1 (+https://github.com/feedwell/feedwell)"

    # Database
    db_url: str | None = None  # Overrides the assembled PostgreSQL URL when set
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "feedwell"
    db_user: str = "feedwell"
    db_password: SecretStr | None = None
    db_pool_size: int = 5
    db_pool_max_overflow: int = 10

    @property
    def database_url(self) -> str:
        """Build async database connection URL."""
        if self.db_url:
            return self.db_url
        password = self.db_password.get_secret_value() if self.db_password else ""
        return f"postgresql+asyncpg://{self.db_user}:{password}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def database_url_sync(self) -> str:
        """Build sync database URL (for Alembic)."""
        return make_sync_url(self.database_url)

    # Logging
    log_level: str = "INFO"
    log_format: str = "console"  # "console" or "json"


def make_sync_url(url: str) -> str:
    """Strip the async driver from a SQLAlchemy URL."""
    return url.replace("postgresql+asyncpg://", "postgresql://").replace(
        "sqlite+aiosqlite://", "sqlite://"
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Settings are loaded from environment variables and .env file.
    """
    return Settings()
