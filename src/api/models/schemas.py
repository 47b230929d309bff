"""Pydantic V2 response schemas for the governance API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from src.core.types import OrgQuotaSummary, QuotaStatus


# ── Errors ───────────────────────────────────────────────────────

class ErrorResponse(BaseModel):
    """Body of every rejected request."""

    success: bool = False
    statusCode: int  # noqa: N815
    message: str
    code: str
    details: dict[str, Any] | None = None


# ── Quotas ───────────────────────────────────────────────────────

class QuotaStatusOut(BaseModel):
    limit: int
    used: int
    remaining: int
    allowed: bool
    unlimited: bool
    resetAt: datetime  # noqa: N815

    @classmethod
    def from_status(cls, status: QuotaStatus) -> QuotaStatusOut:
        return cls(
            limit=status.limit,
            used=status.used,
            remaining=status.remaining,
            allowed=status.allowed,
            unlimited=status.unlimited,
            resetAt=status.reset_at,
        )


class OrgQuotaOut(BaseModel):
    orgId: str  # noqa: N815
    name: str
    slug: str
    tier: str
    isDefault: bool = False  # noqa: N815
    quotas: dict[str, QuotaStatusOut] = Field(default_factory=dict)

    @classmethod
    def from_summary(cls, summary: OrgQuotaSummary) -> OrgQuotaOut:
        return cls(
            orgId=summary.org_id,
            name=summary.name,
            slug=summary.slug,
            tier=summary.tier,
            isDefault=summary.is_default,
            quotas={
                qtype.value: QuotaStatusOut.from_status(status)
                for qtype, status in summary.quotas.items()
            },
        )
