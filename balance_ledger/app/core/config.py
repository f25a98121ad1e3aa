from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Balance Ledger API"
    database_url: str = "sqlite:///balance_ledger.db"
    log_level: str = "INFO"

    # Connection pool: 5 idle connections, 10 open at most, recycled every 5 minutes.
    db_pool_size: int = 5
    db_max_overflow: int = 5
    db_pool_recycle: int = 300
    db_pool_timeout: float = 30.0
    sqlite_busy_timeout: float = 30.0

    transfer_timeout: Optional[float] = 5.0
    transfer_max_attempts: int = 3
    transfer_backoff_base: float = 0.05
    transfer_backoff_max: float = 1.0

    api_key: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="LEDGER_",
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
