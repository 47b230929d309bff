"""Request identity for FastAPI: resolves the caller once per request."""

from __future__ import annotations

import structlog
from fastapi import Request

from src.core.logging import get_logger
from src.core.types import Identity
from src.governance.identity import IdentityResolver

log = get_logger(__name__)

_resolver = IdentityResolver()


def _bind(identity: Identity) -> None:
    if identity.request_id:
        structlog.contextvars.bind_contextvars(request_id=identity.request_id)


async def get_identity(request: Request) -> Identity:
    """Resolve the request identity from claims, route params and headers.

    The result is cached on ``request.state`` so every dependency of the
    same request sees one identity, and the request id is bound into the
    structlog context for the rest of the request.
    """
    cached = getattr(request.state, "identity", None)
    if isinstance(cached, Identity):
        return cached

    identity = _resolver.resolve(request)
    request.state.identity = identity
    _bind(identity)
    log.debug(
        "identity_resolved",
        org_id=identity.org_id,
        user_id=identity.user_id,
        role=identity.role,
    )
    return identity


async def get_caller_identity(request: Request) -> Identity:
    """Identity asserted by the caller alone (claims and headers).

    Authorization gates use this so that the ``orgId`` being accessed can
    never stand in for the organization of the caller.
    """
    cached = getattr(request.state, "caller_identity", None)
    if isinstance(cached, Identity):
        return cached

    identity = _resolver.resolve(request, use_route_params=False)
    request.state.caller_identity = identity
    _bind(identity)
    return identity
