"""FastAPI dependency injection: shared instances and request gates for routes."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncEngine

from src.api.db.quotas import QuotaRepository
from src.api.middleware import get_caller_identity
from src.core.constants import PARAM_ORG_ID
from src.core.exceptions import (
    ErrorCode,
    GovernanceError,
    InsufficientPermissionsError,
    MissingFieldError,
    UnauthorizedError,
)
from src.core.interfaces import QuotaStore
from src.core.types import AuthDecision, AuthorizationOptions, Identity, QuotaRecord, QuotaType
from src.data.db import get_engine
from src.governance.authorization import OrgAuthorizer
from src.saas.quota import QuotaLedger

_REJECTIONS: dict[ErrorCode, type[GovernanceError]] = {
    ErrorCode.UNAUTHORIZED: UnauthorizedError,
    ErrorCode.MISSING_REQUIRED_FIELD: MissingFieldError,
    ErrorCode.INSUFFICIENT_PERMISSIONS: InsufficientPermissionsError,
}

_authorizer = OrgAuthorizer()

# ── Database engine ───────────────────────────────────────────────


async def get_db_engine() -> AsyncEngine:
    """Provide the async database engine."""
    return await get_engine()


# ── Repositories ──────────────────────────────────────────────────


async def get_quota_store(
    engine: AsyncEngine = Depends(get_db_engine),
) -> QuotaStore:
    """Provide a QuotaRepository instance."""
    return QuotaRepository(engine)


async def get_ledger(
    store: QuotaStore = Depends(get_quota_store),
) -> QuotaLedger:
    return QuotaLedger(store)


# ── Gates ─────────────────────────────────────────────────────────


def raise_for_decision(decision: AuthDecision, context: dict[str, str | None] | None = None) -> None:
    """Turn a rejecting ``AuthDecision`` into the matching exception."""
    if decision.allowed or decision.error_code is None:
        return
    exc_type = _REJECTIONS.get(decision.error_code, GovernanceError)
    raise exc_type(decision.message, context=context)


def authorize_org(
    require_system_admin: bool = False,
) -> Callable[..., Awaitable[Identity]]:
    """Dependency factory gating a route on the ``orgId`` path parameter.

    Same-org callers and system administrators pass; with
    ``require_system_admin`` only system administrators do.
    """
    options = AuthorizationOptions(require_system_admin=require_system_admin)

    async def dependency(
        request: Request,
        identity: Identity = Depends(get_caller_identity),
    ) -> Identity:
        target = request.path_params.get(PARAM_ORG_ID)
        decision = _authorizer.authorize(identity, target, options)
        context = {"request_id": identity.request_id} if identity.request_id else None
        raise_for_decision(decision, context=context)
        return identity

    return dependency


def require_quota(
    quota_type: QuotaType,
    amount: int = 1,
) -> Callable[..., Awaitable[QuotaRecord]]:
    """Dependency factory consuming quota before the handler runs.

    Rejects with 401 when no caller organization is known and with 409
    when the organization has no capacity left.
    """

    async def dependency(
        identity: Identity = Depends(get_caller_identity),
        ledger: QuotaLedger = Depends(get_ledger),
    ) -> QuotaRecord:
        if not identity.org_id:
            raise UnauthorizedError("Authentication required")
        return await ledger.increment(identity.org_id, quota_type, amount)

    return dependency
