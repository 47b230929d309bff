"""Organization-scoped authorization.

Access rules:
 - Same-org callers may act on their own organization.
 - Cross-org access requires a system admin (role=admin in the "system" org).
 - Routes configured with ``require_system_admin`` reject everyone else,
   including same-org members.

Organization ids are compared case-insensitively everywhere.
"""

from __future__ import annotations

from src.core.constants import ROLE_ADMIN, SYSTEM_ORG
from src.core.exceptions import ErrorCode
from src.core.logging import get_logger
from src.core.types import AuthDecision, AuthorizationOptions, Identity

log = get_logger(__name__)


def _same(a: str | None, b: str | None) -> bool:
    return a is not None and b is not None and a.casefold() == b.casefold()


def is_system_org(identity: Identity) -> bool:
    return _same(identity.org_id, SYSTEM_ORG) or _same(identity.org_name, SYSTEM_ORG)


def is_system_admin(identity: Identity) -> bool:
    return identity.role == ROLE_ADMIN and is_system_org(identity)


def is_org_admin(identity: Identity) -> bool:
    """Admin of a regular tenant; never true for a system admin."""
    return identity.role == ROLE_ADMIN and not is_system_org(identity)


class OrgAuthorizer:
    """Stateless gate deciding whether an identity may act on a target org."""

    def authorize(
        self,
        identity: Identity,
        target_org_id: str | None,
        options: AuthorizationOptions | None = None,
    ) -> AuthDecision:
        opts = options or AuthorizationOptions()

        if not identity.org_id:
            return AuthDecision.reject(ErrorCode.UNAUTHORIZED, "Authentication required")

        if not target_org_id:
            return AuthDecision.reject(
                ErrorCode.MISSING_REQUIRED_FIELD,
                "Organization ID is required.",
            )

        sys_admin = is_system_admin(identity)

        if opts.require_system_admin:
            if sys_admin:
                return AuthDecision.proceed()
            log.warning(
                "access_denied_system_admin_required",
                requesting_org_id=identity.org_id,
                target_org_id=target_org_id,
                request_id=identity.request_id,
            )
            return AuthDecision.reject(
                ErrorCode.INSUFFICIENT_PERMISSIONS,
                "Access denied. Only system administrators can perform this action.",
            )

        if sys_admin or _same(identity.org_id, target_org_id):
            return AuthDecision.proceed()

        log.warning(
            "access_denied_cross_org",
            requesting_org_id=identity.org_id,
            target_org_id=target_org_id,
            request_id=identity.request_id,
        )
        return AuthDecision.reject(
            ErrorCode.INSUFFICIENT_PERMISSIONS,
            "Access denied. You can only access resources of your own organization.",
        )
