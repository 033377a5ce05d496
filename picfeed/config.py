"""
Configuration management using Pydantic BaseSettings.
All values can be overridden via environment variables or a .env file.
"""
from datetime import datetime, timezone
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Database (TiDB / MySQL wire protocol) ──────────────────────────────
    db_host: str = "tidb"
    db_port: int = 4000
    db_user: str = "root"
    db_password: str = ""
    db_name: str = "picfeed"
    # Full SQLAlchemy URL; wins over the host/port fields when set.
    # e.g. sqlite+aiosqlite:///./picfeed.db for local development
    database_url: Optional[str] = None

    @property
    def db_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"mysql+aiomysql://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    db_pool_size: int = 20
    db_max_overflow: int = 10
    db_pool_timeout_seconds: float = 5.0
    db_connect_timeout_seconds: int = 5
    # Upper bound for a single core operation (vote, feed page, listing)
    db_operation_timeout_seconds: float = 10.0

    # ── Popularity scoring ─────────────────────────────────────────────────
    score_epoch: datetime = datetime(2020, 1, 1)
    score_decay_seconds: float = 45000.0   # 12.5h of age ≈ one decade of vote margin
    score_base: float = 1.0

    @field_validator("score_epoch")
    @classmethod
    def _naive_utc_epoch(cls, value: datetime) -> datetime:
        # created_at columns are naive UTC; an aware epoch could not be subtracted
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    # ── Personalisation ────────────────────────────────────────────────────
    affinity_window: int = 15              # most recent liked-tag entries that count
    affinity_multiplier: float = 2.25      # weight per occurrence inside the window

    # ── Feed / listings ────────────────────────────────────────────────────
    feed_default_page_size: int = 20
    feed_max_page_size: int = 100

    # ── Vote ledger ────────────────────────────────────────────────────────
    vote_conflict_retries: int = 1

    # ── Observability ──────────────────────────────────────────────────────
    tracing_enabled: bool = True
    otel_exporter_otlp_endpoint: str = "http://jaeger:4317"
    service_name: str = "picfeed"
    environment: str = "development"
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
