"""Tests for caller identity resolution."""

from __future__ import annotations

from types import SimpleNamespace

from src.core.types import Identity
from src.governance.identity import (
    ClaimsSource,
    HeaderSource,
    IdentityResolver,
    RouteParamsSource,
    header_name_for,
    resolve_identity,
    validate_identity,
)


def _request(
    claims: dict[str, object] | None = None,
    params: dict[str, str] | None = None,
    headers: dict[str, object] | None = None,
) -> SimpleNamespace:
    state = SimpleNamespace()
    if claims is not None:
        state.claims = claims
    return SimpleNamespace(state=state, path_params=params or {}, headers=headers or {})


class TestIdentityResolver:
    """Tests for layered identity resolution."""

    def test_claims_take_precedence(self) -> None:
        identity = IdentityResolver().resolve(_request(
            claims={"organizationId": "org-claims", "userId": "u1", "role": "member"},
            params={"orgId": "org-route"},
            headers={"x-org-id": "org-header", "x-user-id": "u2", "x-user-role": "admin"},
        ))
        assert identity.org_id == "org-claims"
        assert identity.user_id == "u1"
        assert identity.role == "member"

    def test_route_param_beats_header(self) -> None:
        identity = IdentityResolver().resolve(_request(
            params={"orgId": "org-route"},
            headers={"x-org-id": "org-header"},
        ))
        assert identity.org_id == "org-route"

    def test_headers_fallback_trimmed(self) -> None:
        identity = IdentityResolver().resolve(_request(headers={
            "X-Org-Id": "  org-1 ",
            "x-user-id": "u1",
            "x-user-role": " admin",
            "x-request-id": "req-9",
        }))
        assert identity == Identity(org_id="org-1", user_id="u1", role="admin", request_id="req-9")

    def test_list_header_uses_first_value(self) -> None:
        identity = IdentityResolver().resolve(_request(headers={"x-org-id": ["first", "second"]}))
        assert identity.org_id == "first"

    def test_request_id_never_from_claims(self) -> None:
        identity = IdentityResolver().resolve(_request(claims={"requestId": "from-claims"}))
        assert identity.request_id is None

    def test_partial_claims_fill_from_headers(self) -> None:
        identity = IdentityResolver().resolve(_request(
            claims={"organizationId": "org-1"},
            headers={"x-user-id": "u-header"},
        ))
        assert identity.org_id == "org-1"
        assert identity.user_id == "u-header"

    def test_blank_claim_falls_through(self) -> None:
        identity = IdentityResolver().resolve(_request(
            claims={"organizationId": "   "},
            headers={"x-org-id": "org-header"},
        ))
        assert identity.org_id == "org-header"

    def test_empty_request(self) -> None:
        identity = IdentityResolver().resolve(SimpleNamespace())
        assert identity == Identity()

    def test_org_name_from_claims(self) -> None:
        identity = IdentityResolver().resolve(_request(claims={"organizationName": "System"}))
        assert identity.org_name == "System"

    def test_resolve_parts(self) -> None:
        identity = IdentityResolver().resolve_parts(headers={"x-org-id": "org-1"})
        assert identity.org_id == "org-1"


class TestSources:
    """Tests for individual identity sources."""

    def test_route_source_only_org(self) -> None:
        source = RouteParamsSource({"orgId": "o", "userId": "u"})
        assert source.lookup("org_id") == "o"
        assert source.lookup("user_id") is None

    def test_header_source_accepts_pairs_and_bytes(self) -> None:
        source = HeaderSource([(b"x-org-id".decode(), b"org-b"), ("x-org-id", "later")])
        assert source.lookup("org_id") == "org-b"

    def test_claims_ignore_non_strings(self) -> None:
        assert ClaimsSource({"organizationId": 123}).lookup("org_id") is None

    def test_resolve_identity_order(self) -> None:
        identity = resolve_identity([
            HeaderSource({"x-org-id": "h"}),
            RouteParamsSource({"orgId": "r"}),
        ])
        assert identity.org_id == "h"


class TestIdentityNormalization:
    """Tests for Identity value normalization."""

    def test_empty_strings_become_none(self) -> None:
        identity = Identity(org_id="", user_id="  ", role="admin")
        assert identity.org_id is None
        assert identity.user_id is None
        assert identity.role == "admin"


class TestValidateIdentity:
    """Tests for required-field identity validation."""

    def test_all_present(self) -> None:
        result = validate_identity(Identity(org_id="o", user_id="u"), ["orgId", "userId"])
        assert result.is_valid is True
        assert result.missing == []

    def test_reports_header_names(self) -> None:
        result = validate_identity(Identity(org_id="o"), ["orgId", "userId", "requestId"])
        assert result.is_valid is False
        assert result.missing == ["x-user-id", "x-request-id"]

    def test_header_name_for(self) -> None:
        assert header_name_for("userId") == "x-user-id"
        assert header_name_for("orgId") == "x-org-id"
