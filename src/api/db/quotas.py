"""DB-backed quota repository: replaces the in-memory store in production."""

from __future__ import annotations

from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine

from src.core.exceptions import ConflictError
from src.core.interfaces import QuotaStore, RecordFactory, RecordMutation
from src.core.logging import get_logger
from src.core.types import Organization, QuotaRecord, QuotaType

log = get_logger(__name__)

_RECORD_COLUMNS = "org_id, quota_type, quota_limit, used, tier, reset_cycle_days, last_reset_at"


class QuotaRepository(QuotaStore):
    """Async PostgreSQL-backed quota storage.

    Organization ids are matched case-insensitively. ``mutate_record``
    holds a ``FOR UPDATE`` row lock for the whole read-modify-write, so
    concurrent increments of the same record serialize in the database.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def get_organization(self, org_id: str) -> Organization | None:
        async with self._engine.begin() as conn:
            row = await conn.execute(
                text("SELECT * FROM organizations WHERE lower(org_id) = lower(:oid)"),
                {"oid": org_id},
            )
            r = row.mappings().first()
            if r is None:
                return None
            return self._row_to_org(r)

    async def save_organization(self, org: Organization) -> Organization:
        try:
            await self._upsert_organization(org)
        except IntegrityError as exc:
            log.warning("organization_save_conflict", org_id=org.org_id, error=str(exc.orig))
            raise ConflictError(
                f"Organization {org.org_id} conflicts with existing data",
                context={"org_id": org.org_id, "slug": org.slug},
            ) from exc
        log.info("organization_saved", org_id=org.org_id, tier=org.tier)
        return org

    async def _upsert_organization(self, org: Organization) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(
                text(
                    """
                    INSERT INTO organizations (org_id, name, slug, tier, created_at)
                    VALUES (:oid, :name, :slug, :tier, :created)
                    ON CONFLICT (org_id) DO UPDATE SET
                        name = EXCLUDED.name,
                        slug = EXCLUDED.slug,
                        tier = EXCLUDED.tier
                    """
                ),
                {
                    "oid": org.org_id,
                    "name": org.name,
                    "slug": org.slug,
                    "tier": org.tier,
                    "created": org.created_at,
                },
            )

    async def get_record(self, org_id: str, quota_type: QuotaType) -> QuotaRecord | None:
        async with self._engine.begin() as conn:
            row = await conn.execute(
                text(
                    f"SELECT {_RECORD_COLUMNS} FROM quota_usage "
                    "WHERE lower(org_id) = lower(:oid) AND quota_type = :qt"
                ),
                {"oid": org_id, "qt": quota_type.value},
            )
            r = row.mappings().first()
            if r is None:
                return None
            return self._row_to_record(r)

    async def list_records(self, org_id: str) -> list[QuotaRecord]:
        async with self._engine.begin() as conn:
            rows = await conn.execute(
                text(
                    f"SELECT {_RECORD_COLUMNS} FROM quota_usage "
                    "WHERE lower(org_id) = lower(:oid) ORDER BY quota_type"
                ),
                {"oid": org_id},
            )
            return [self._row_to_record(r) for r in rows.mappings().all()]

    async def mutate_record(
        self,
        org_id: str,
        quota_type: QuotaType,
        mutate: RecordMutation,
        create: RecordFactory,
    ) -> tuple[QuotaRecord, Any]:
        async with self._engine.begin() as conn:
            params = {"oid": org_id, "qt": quota_type.value}
            select_for_update = text(
                f"SELECT {_RECORD_COLUMNS} FROM quota_usage "
                "WHERE lower(org_id) = lower(:oid) AND quota_type = :qt FOR UPDATE"
            )

            row = (await conn.execute(select_for_update, params)).mappings().first()
            if row is None:
                fresh = create()
                await conn.execute(
                    text(
                        f"INSERT INTO quota_usage ({_RECORD_COLUMNS}) "
                        "VALUES (:oid, :qt, :lim, :used, :tier, :cycle, :reset) "
                        "ON CONFLICT (org_id, quota_type) DO NOTHING"
                    ),
                    self._record_params(fresh),
                )
                log.debug("quota_record_created", org_id=org_id, quota_type=quota_type.value)
                row = (await conn.execute(select_for_update, params)).mappings().first()

            current = self._row_to_record(row)
            updated, outcome = mutate(current)
            if updated is None:
                return current, outcome

            await conn.execute(
                text(
                    """
                    UPDATE quota_usage SET
                        quota_limit = :lim,
                        used = :used,
                        tier = :tier,
                        reset_cycle_days = :cycle,
                        last_reset_at = :reset
                    WHERE org_id = :oid AND quota_type = :qt
                    """
                ),
                {**self._record_params(updated), "oid": current.org_id},
            )
            return updated, outcome

    @staticmethod
    def _record_params(record: QuotaRecord) -> dict[str, Any]:
        return {
            "oid": record.org_id,
            "qt": record.quota_type.value,
            "lim": record.limit,
            "used": record.used,
            "tier": record.tier,
            "cycle": record.reset_cycle_days,
            "reset": record.last_reset_at,
        }

    @staticmethod
    def _row_to_org(r: Any) -> Organization:
        return Organization(
            org_id=r["org_id"],
            name=r["name"],
            slug=r["slug"],
            tier=r["tier"],
            created_at=r["created_at"],
        )

    @staticmethod
    def _row_to_record(r: Any) -> QuotaRecord:
        """Convert a DB row mapping to a QuotaRecord dataclass."""
        return QuotaRecord(
            org_id=r["org_id"],
            quota_type=QuotaType(r["quota_type"]),
            limit=r["quota_limit"],
            used=r["used"],
            tier=r["tier"],
            reset_cycle_days=r["reset_cycle_days"],
            last_reset_at=r["last_reset_at"],
        )
