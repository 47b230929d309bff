"""Quota ledger: per-organization usage counters with tier-derived limits.

Every mutation is a pure function of the current record, handed to the
store's ``mutate_record`` so that the cycle reset, the capacity check and
the write happen under one lock. Storage calls go through a fresh
``ConnectionRetryStrategy``; an exceeded quota is an outcome of the
mutation rather than an exception inside it, so it is never retried.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, TypeVar

from config.settings import Settings, get_settings
from src.core.constants import UNLIMITED
from src.core.exceptions import (
    GovernanceError,
    MissingFieldError,
    OrgNotFoundError,
    QuotaExceededError,
    StorageError,
    ValidationFailedError,
)
from src.core.interfaces import QuotaStore
from src.core.logging import get_logger
from src.core.types import (
    VALID_QUOTA_TYPES,
    Organization,
    OrgQuotaSummary,
    QuotaLimits,
    QuotaRecord,
    QuotaStatus,
    QuotaType,
    ValidationResult,
)
from src.data.retry import ConnectionRetryStrategy, RetryConfig
from src.saas.tiers import get_tier_limits, resolve_tier
from src.saas.validation import validate_increment, validate_reset, validate_update

log = get_logger(__name__)

T = TypeVar("T")

QUOTA_LABELS: dict[QuotaType, str] = {
    QuotaType.API_CALLS: "API call",
    QuotaType.PIPELINES: "Pipeline",
    QuotaType.PLUGINS: "Plugin",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _unwrap(result: ValidationResult[T], operation: str) -> T:
    if not result.ok:
        raise ValidationFailedError(
            f"Validation failed: {result.message()}",
            violations=list(result.violations),
            context={"operation": operation},
        )
    return result.value  # type: ignore[return-value]


def exceeded_message(quota_type: QuotaType) -> str:
    return (
        f"{QUOTA_LABELS[quota_type]} quota exceeded. "
        "Please contact your administrator to increase your quota."
    )


class QuotaLedger:
    """Enforces per-organization quotas over a ``QuotaStore``."""

    def __init__(
        self,
        store: QuotaStore,
        settings: Settings | None = None,
        retry_config: RetryConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._settings = settings or get_settings()
        self._retry_config = retry_config or RetryConfig(
            max_retries=self._settings.db_retry_max_retries,
            base_delay=self._settings.db_retry_base_delay,
        )
        self._clock = clock or _utcnow

    # ── Tiers ────────────────────────────────────────────────────

    def get_limits(self, tier: str | None) -> QuotaLimits:
        """Limits of ``tier``; unknown tiers fall back to the default tier."""
        return get_tier_limits(tier, self._settings)

    # ── Mutations ────────────────────────────────────────────────

    async def increment(
        self,
        org_id: str | None,
        quota_type: QuotaType | str | None,
        amount: int = 1,
    ) -> QuotaRecord:
        """Consume ``amount`` units of ``quota_type`` for the organization.

        A due cycle reset is applied first. If the increment would exceed
        the limit nothing is consumed and ``QuotaExceededError`` is raised.
        """
        request = _unwrap(
            validate_increment({"quotaType": quota_type, "amount": amount}),
            "increment",
        )
        org = await self._require_org(org_id)
        qtype, amount = request.quota_type, request.amount

        def apply(record: QuotaRecord) -> tuple[QuotaRecord | None, bool]:
            now = self._clock()
            changed = False
            if record.reset_due(now):
                log.info("quota_cycle_reset", org_id=org.org_id, quota_type=qtype.value, used=record.used)
                record = replace(record, used=0, last_reset_at=now)
                changed = True
            if not record.unlimited and record.used + amount > record.limit:
                return (record if changed else None), False
            return replace(record, used=record.used + amount), True

        record, allowed = await self._storage(
            lambda: self._store.mutate_record(
                org.org_id, qtype, apply, lambda: self._new_record(org, qtype)
            )
        )

        if not allowed:
            log.warning(
                "quota_exceeded",
                org_id=org.org_id,
                quota_type=qtype.value,
                limit=record.limit,
                used=record.used,
                requested=amount,
            )
            raise QuotaExceededError(
                exceeded_message(qtype),
                context={
                    "quota": {
                        "type": qtype.value,
                        "limit": record.limit,
                        "used": record.used,
                        "remaining": record.remaining,
                    }
                },
            )

        log.debug(
            "quota_incremented",
            org_id=org.org_id,
            quota_type=qtype.value,
            amount=amount,
            used=record.used,
            limit=record.limit,
        )
        return record

    async def reset(
        self,
        org_id: str | None,
        quota_type: QuotaType | str | None = None,
    ) -> list[QuotaRecord]:
        """Zero usage for one quota type, or for every type when omitted."""
        request = _unwrap(validate_reset({"quotaType": quota_type}), "reset")
        org = await self._require_org(org_id)
        types = [request.quota_type] if request.quota_type else list(VALID_QUOTA_TYPES)

        def apply(record: QuotaRecord) -> tuple[QuotaRecord, None]:
            return replace(record, used=0, last_reset_at=self._clock()), None

        records: list[QuotaRecord] = []
        for qtype in types:
            record, _ = await self._storage(
                lambda qtype=qtype: self._store.mutate_record(
                    org.org_id, qtype, apply, lambda: self._new_record(org, qtype)
                )
            )
            records.append(record)

        log.info(
            "quota_reset",
            org_id=org.org_id,
            quota_type=request.quota_type.value if request.quota_type else "all",
        )
        return records

    async def update(self, org_id: str | None, patch: Any) -> OrgQuotaSummary:
        """Apply an organization patch of name, slug, tier and quota limits.

        A tier in the patch re-applies that tier's limits to every quota
        type; explicit ``quotas`` values then override them.
        """
        changes = _unwrap(validate_update(patch, self._settings.valid_tiers), "update")
        org = await self._require_org(org_id)

        updated = replace(org)
        if changes.name is not None:
            updated.name = changes.name
        if changes.slug is not None:
            updated.slug = changes.slug
        if changes.tier is not None:
            updated.tier = changes.tier

        if updated != org:
            await self._storage(lambda: self._store.save_organization(updated))

        targets: dict[QuotaType, int] = {}
        if changes.tier is not None:
            tier_limits = self.get_limits(changes.tier)
            targets = {qtype: tier_limits.for_type(qtype) for qtype in VALID_QUOTA_TYPES}
        if changes.quotas is not None:
            targets.update(changes.quotas.as_dict())

        for qtype, limit in targets.items():
            await self._set_limit(updated, qtype, limit)

        log.info(
            "organization_updated",
            org_id=updated.org_id,
            fields=sorted(changes.model_dump(exclude_none=True)),
            limits={qtype.value: limit for qtype, limit in targets.items()},
        )
        return await self.summarize(updated.org_id)

    async def _set_limit(self, org: Organization, qtype: QuotaType, limit: int) -> QuotaRecord:
        tier = resolve_tier(org.tier, self._settings)

        def apply(record: QuotaRecord) -> tuple[QuotaRecord, None]:
            used = record.used
            if limit != UNLIMITED and used > limit:
                log.warning(
                    "quota_usage_clamped",
                    org_id=org.org_id,
                    quota_type=qtype.value,
                    used=used,
                    limit=limit,
                )
                used = limit
            return replace(record, limit=limit, used=used, tier=tier), None

        def create() -> QuotaRecord:
            return replace(self._new_record(org, qtype), limit=limit)

        record, _ = await self._storage(
            lambda: self._store.mutate_record(org.org_id, qtype, apply, create)
        )
        return record

    # ── Reads ────────────────────────────────────────────────────

    async def check(self, org_id: str | None, quota_type: QuotaType | str | None) -> QuotaStatus:
        """Read-only status of one quota; an expired cycle reads as unused."""
        request = _unwrap(validate_increment({"quotaType": quota_type}), "check")
        org = await self._require_org(org_id)
        record = await self._storage(lambda: self._store.get_record(org.org_id, request.quota_type))
        if record is None:
            record = self._new_record(org, request.quota_type)
        return self._status(record)

    async def summarize(self, org_id: str | None) -> OrgQuotaSummary:
        """Status of every quota type for the organization.

        Organizations unknown to the store report the configured default
        limits with ``is_default`` set.
        """
        if not org_id:
            raise MissingFieldError("Organization ID is required.")

        org = await self._storage(lambda: self._store.get_organization(org_id))
        if org is None:
            defaults = QuotaLimits.from_mapping(self._settings.quota_defaults)
            now = self._clock()
            reset_at = now + timedelta(days=self._settings.quota_reset_days)
            quotas = {
                qtype: QuotaStatus(
                    quota_type=qtype,
                    limit=defaults.for_type(qtype),
                    used=0,
                    remaining=defaults.for_type(qtype),
                    allowed=defaults.for_type(qtype) != 0,
                    unlimited=defaults.for_type(qtype) == UNLIMITED,
                    reset_at=reset_at,
                )
                for qtype in VALID_QUOTA_TYPES
            }
            return OrgQuotaSummary(
                org_id=org_id,
                name="",
                slug="",
                tier=self._settings.default_tier,
                quotas=quotas,
                is_default=True,
            )

        records = await self._storage(lambda: self._store.list_records(org.org_id))
        by_type = {record.quota_type: record for record in records}
        quotas = {
            qtype: self._status(by_type.get(qtype) or self._new_record(org, qtype))
            for qtype in VALID_QUOTA_TYPES
        }
        return OrgQuotaSummary(
            org_id=org.org_id,
            name=org.name,
            slug=org.slug,
            tier=org.tier,
            quotas=quotas,
        )

    # ── Internals ────────────────────────────────────────────────

    def _status(self, record: QuotaRecord) -> QuotaStatus:
        now = self._clock()
        if record.reset_due(now):
            record = replace(record, used=0, last_reset_at=now)
        return QuotaStatus(
            quota_type=record.quota_type,
            limit=record.limit,
            used=record.used,
            remaining=record.remaining,
            allowed=record.unlimited or record.used < record.limit,
            unlimited=record.unlimited,
            reset_at=record.next_reset_at,
        )

    def _new_record(self, org: Organization, qtype: QuotaType) -> QuotaRecord:
        return QuotaRecord(
            org_id=org.org_id,
            quota_type=qtype,
            limit=self.get_limits(org.tier).for_type(qtype),
            used=0,
            tier=resolve_tier(org.tier, self._settings),
            reset_cycle_days=self._settings.quota_reset_days,
            last_reset_at=self._clock(),
        )

    async def _require_org(self, org_id: str | None) -> Organization:
        if not org_id:
            raise MissingFieldError("Organization ID is required.")
        org = await self._storage(lambda: self._store.get_organization(org_id))
        if org is None:
            log.warning("organization_not_found", org_id=org_id)
            raise OrgNotFoundError(f"Organization not found: {org_id}", context={"org_id": org_id})
        return org

    async def _storage(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run one storage call under its own retry budget."""
        strategy = ConnectionRetryStrategy(self._retry_config)
        try:
            return await strategy.execute(operation, non_retryable=(GovernanceError,))
        except GovernanceError:
            raise
        except Exception as exc:
            raise StorageError(
                "Quota storage is unavailable",
                context={"attempts": strategy.attempts, "error": str(exc)},
            ) from exc
