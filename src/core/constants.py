"""System-wide constants. All magic numbers and strings live here."""

from __future__ import annotations

import re

# ── Identity Headers ─────────────────────────────────────────────
HEADER_ORG_ID = "x-org-id"
HEADER_ORG_NAME = "x-org-name"
HEADER_USER_ID = "x-user-id"
HEADER_REQUEST_ID = "x-request-id"
HEADER_USER_ROLE = "x-user-role"

# ── Verified Claim Keys ──────────────────────────────────────────
CLAIM_ORG_ID = "organizationId"
CLAIM_ORG_NAME = "organizationName"
CLAIM_USER_ID = "userId"
CLAIM_ROLE = "role"

# ── Route Parameters ─────────────────────────────────────────────
PARAM_ORG_ID = "orgId"

# ── Reserved Names ───────────────────────────────────────────────
SYSTEM_ORG = "system"
ROLE_ADMIN = "admin"

# ── Quotas ───────────────────────────────────────────────────────
UNLIMITED = -1
DEFAULT_INCREMENT = 1

# ── Identifier Generation ────────────────────────────────────────
DEFAULT_ID_LENGTH = 12
COUNTER_SUFFIX_PATTERN = re.compile(r":\d+\Z")

# ── Validation Patterns ──────────────────────────────────────────
SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*\Z")
FULL_UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}\Z",
    re.IGNORECASE,
)
SORT_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*:(asc|desc)\Z")

# ── List Filters ─────────────────────────────────────────────────
LIST_LIMIT_MAX = 1000
