"""Caller identity resolution.

Each identity field is looked up across an ordered list of sources and the
first source that has a value wins:

1. verified token claims (already checked upstream),
2. route parameters (``orgId`` only),
3. identity headers (``x-org-id``, ``x-user-id``, ``x-request-id``,
   ``x-user-role``, ``x-org-name``).

``request_id`` is never taken from claims; correlation ids come from headers.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from src.core.constants import (
    CLAIM_ORG_ID,
    CLAIM_ORG_NAME,
    CLAIM_ROLE,
    CLAIM_USER_ID,
    HEADER_ORG_ID,
    HEADER_ORG_NAME,
    HEADER_REQUEST_ID,
    HEADER_USER_ID,
    HEADER_USER_ROLE,
    PARAM_ORG_ID,
)
from src.core.types import Identity, IdentityValidation

IDENTITY_FIELDS: tuple[str, ...] = ("org_id", "user_id", "role", "request_id", "org_name")

_CAMEL_BOUNDARY = re.compile(r"([A-Z])")


def _present(value: Any) -> str | None:
    """A usable value is a non-empty string; anything else counts as absent."""
    if isinstance(value, str) and value.strip():
        return value
    return None


class IdentitySource(ABC):
    """One layer of the identity lookup."""

    name: str = "source"

    @abstractmethod
    def lookup(self, field: str) -> str | None:
        """Return the value this source holds for ``field``, if any."""
        ...


class ClaimsSource(IdentitySource):
    """Verified token claims. Only fields actually present are reported."""

    name = "claims"

    _FIELD_TO_CLAIM: dict[str, str] = {
        "org_id": CLAIM_ORG_ID,
        "user_id": CLAIM_USER_ID,
        "role": CLAIM_ROLE,
        "org_name": CLAIM_ORG_NAME,
    }

    def __init__(self, claims: Mapping[str, Any] | None) -> None:
        self._claims: Mapping[str, Any] = claims or {}

    def lookup(self, field: str) -> str | None:
        claim = self._FIELD_TO_CLAIM.get(field)
        if claim is None:
            return None
        return _present(self._claims.get(claim))


class RouteParamsSource(IdentitySource):
    """Path parameters; contributes the organization id only."""

    name = "route"

    def __init__(self, params: Mapping[str, Any] | None) -> None:
        self._params: Mapping[str, Any] = params or {}

    def lookup(self, field: str) -> str | None:
        if field != "org_id":
            return None
        return _present(self._params.get(PARAM_ORG_ID))


class HeaderSource(IdentitySource):
    """Identity headers, matched case-insensitively and trimmed."""

    name = "headers"

    _FIELD_TO_HEADER: dict[str, str] = {
        "org_id": HEADER_ORG_ID,
        "user_id": HEADER_USER_ID,
        "role": HEADER_USER_ROLE,
        "request_id": HEADER_REQUEST_ID,
        "org_name": HEADER_ORG_NAME,
    }

    def __init__(self, headers: Mapping[str, Any] | Iterable[tuple[str, Any]] | None) -> None:
        items = headers.items() if isinstance(headers, Mapping) else (headers or [])
        normalized: dict[str, Any] = {}
        for key, value in items:
            normalized.setdefault(str(key).lower(), value)
        self._headers = normalized

    def lookup(self, field: str) -> str | None:
        header = self._FIELD_TO_HEADER.get(field)
        if header is None:
            return None
        value = self._headers.get(header)
        if isinstance(value, (list, tuple)):
            value = value[0] if value else None
        if isinstance(value, bytes):
            value = value.decode("latin-1")
        if not isinstance(value, str):
            return None
        return _present(value.strip())


def resolve_identity(sources: Sequence[IdentitySource]) -> Identity:
    """Merge ``sources`` left to right; the first present value per field wins."""
    resolved: dict[str, str | None] = {}
    for field in IDENTITY_FIELDS:
        resolved[field] = next(
            (value for value in (source.lookup(field) for source in sources) if value is not None),
            None,
        )
    return Identity(**resolved)


class IdentityResolver:
    """Builds an ``Identity`` from an inbound request."""

    def resolve(self, request: Any, *, use_route_params: bool = True) -> Identity:
        """Resolve from a Starlette-style request.

        Claims are read from ``request.state.claims`` where the upstream
        token verifier leaves them. With ``use_route_params=False`` only the
        caller's own assertions (claims and headers) are consulted.
        """
        state = getattr(request, "state", None)
        claims = getattr(state, "claims", None) if state is not None else None
        params = getattr(request, "path_params", None) if use_route_params else None
        return self.resolve_parts(
            claims=claims,
            params=params,
            headers=getattr(request, "headers", None),
        )

    def resolve_parts(
        self,
        *,
        claims: Mapping[str, Any] | None = None,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, Any] | None = None,
    ) -> Identity:
        return resolve_identity([
            ClaimsSource(claims),
            RouteParamsSource(params),
            HeaderSource(headers),
        ])


def header_name_for(field: str) -> str:
    """Wire header for a camelCase identity field (``userId`` -> ``x-user-id``)."""
    return "x-" + _CAMEL_BOUNDARY.sub(r"-\1", field).lower()


def validate_identity(identity: Identity, required: Sequence[str]) -> IdentityValidation:
    """Check that ``required`` camelCase fields are present.

    Missing fields are reported by their header names so the message tells
    the caller exactly what to send.
    """
    missing: list[str] = []
    for field in required:
        attr = _CAMEL_BOUNDARY.sub(r"_\1", field).lower()
        if not getattr(identity, attr, None):
            missing.append(header_name_for(field))
    return IdentityValidation(is_valid=not missing, missing=missing)
