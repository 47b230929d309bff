"""PostgreSQL connection and schema definitions."""

from __future__ import annotations

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    func,
    text,
)
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from config.settings import get_settings
from src.core.logging import get_logger

log = get_logger(__name__)

metadata = MetaData()

# ── Tables ───────────────────────────────────────────────────────

organizations = Table(
    "organizations",
    metadata,
    Column("org_id", String, primary_key=True),
    Column("name", String, nullable=False),
    Column("slug", String, nullable=False),
    Column("tier", String, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)

quota_usage = Table(
    "quota_usage",
    metadata,
    Column("org_id", String, ForeignKey("organizations.org_id"), primary_key=True),
    Column("quota_type", String, primary_key=True),
    Column("quota_limit", Integer, nullable=False),
    Column("used", Integer, nullable=False, server_default=text("0")),
    Column("tier", String, nullable=False),
    Column("reset_cycle_days", Integer, nullable=False),
    Column("last_reset_at", DateTime(timezone=True), nullable=False),
    CheckConstraint("used >= 0", name="ck_quota_usage_used_non_negative"),
    CheckConstraint("quota_limit >= -1", name="ck_quota_usage_limit_sentinel"),
    CheckConstraint("quota_limit = -1 OR used <= quota_limit", name="ck_quota_usage_within_limit"),
    CheckConstraint("reset_cycle_days > 0", name="ck_quota_usage_cycle_positive"),
)


# ── Engine ───────────────────────────────────────────────────────

_engine: AsyncEngine | None = None


async def get_engine() -> AsyncEngine:
    """Get or create the async database engine (singleton)."""
    global _engine  # noqa: PLW0603
    if _engine is None:
        settings = get_settings()
        db_url = settings.database_url.get_secret_value()
        _engine = create_async_engine(
            db_url,
            echo=False,
            pool_size=10,
            max_overflow=20,
            pool_pre_ping=True,
        )
        log.info("database_engine_created", host=db_url.split("@")[-1].split("?")[0])
    return _engine


async def init_schema() -> None:
    """Create all tables."""
    engine = await get_engine()

    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    log.info("schema_initialized", tables=sorted(metadata.tables))


async def close_engine() -> None:
    """Dispose the database engine."""
    global _engine  # noqa: PLW0603
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        log.info("database_engine_closed")
