"""In-memory quota store for development, tests, and single-process deployments."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Any

from uuid_extensions import uuid7

from src.core.interfaces import QuotaStore, RecordFactory, RecordMutation
from src.core.logging import get_logger
from src.core.types import Organization, QuotaRecord, QuotaType

log = get_logger(__name__)


def _key(org_id: str) -> str:
    return org_id.casefold()


class InMemoryQuotaStore(QuotaStore):
    """Dict-backed store. Replace with ``QuotaRepository`` for production.

    Records and organizations are copied on the way in and out, so callers
    never hold a reference into the store. Each (org, quota type) pair has
    its own ``asyncio.Lock``; mutations of different records never block
    each other.
    """

    def __init__(self) -> None:
        self._orgs: dict[str, Organization] = {}
        self._records: dict[tuple[str, QuotaType], QuotaRecord] = {}
        self._locks: dict[tuple[str, QuotaType], asyncio.Lock] = {}

    def create_organization(
        self,
        name: str,
        slug: str,
        tier: str,
        org_id: str | None = None,
    ) -> Organization:
        """Register an organization and return it (generating an id if needed)."""
        org = Organization(org_id=org_id or str(uuid7()), name=name, slug=slug, tier=tier)
        self._orgs[_key(org.org_id)] = replace(org)
        log.info("organization_created", org_id=org.org_id, slug=slug, tier=tier)
        return org

    def list_organizations(self) -> list[Organization]:
        return [replace(org) for org in self._orgs.values()]

    async def get_organization(self, org_id: str) -> Organization | None:
        org = self._orgs.get(_key(org_id))
        return replace(org) if org else None

    async def save_organization(self, org: Organization) -> Organization:
        self._orgs[_key(org.org_id)] = replace(org)
        return replace(org)

    async def get_record(self, org_id: str, quota_type: QuotaType) -> QuotaRecord | None:
        record = self._records.get((_key(org_id), quota_type))
        return replace(record) if record else None

    async def list_records(self, org_id: str) -> list[QuotaRecord]:
        wanted = _key(org_id)
        return [replace(rec) for (owner, _), rec in self._records.items() if owner == wanted]

    async def mutate_record(
        self,
        org_id: str,
        quota_type: QuotaType,
        mutate: RecordMutation,
        create: RecordFactory,
    ) -> tuple[QuotaRecord, Any]:
        key = (_key(org_id), quota_type)
        lock = self._locks.setdefault(key, asyncio.Lock())

        async with lock:
            current = self._records.get(key)
            if current is None:
                current = create()
                self._records[key] = current
                log.debug("quota_record_created", org_id=org_id, quota_type=quota_type.value)

            updated, outcome = mutate(replace(current))
            if updated is not None:
                self._records[key] = replace(updated)
                current = updated
            return replace(current), outcome
