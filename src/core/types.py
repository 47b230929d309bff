"""System-wide shared types: the single source of truth for governance data structures."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Generic, TypeVar

from src.core.constants import UNLIMITED
from src.core.exceptions import ErrorCode, status_for

if TYPE_CHECKING:
    from pydantic import ValidationError

T = TypeVar("T")


# ── Enums ────────────────────────────────────────────────────────

class QuotaType(str, Enum):
    PLUGINS = "plugins"
    PIPELINES = "pipelines"
    API_CALLS = "apiCalls"


VALID_QUOTA_TYPES: tuple[QuotaType, ...] = tuple(QuotaType)


class VisibilityMode(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    ORG_AND_PUBLIC = "org-and-public"


# ── Identity ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class Identity:
    """Caller identity resolved once per request.

    A field is either a non-empty string or ``None``; empty strings are
    normalized away so that ``if identity.org_id`` is always meaningful.
    """

    org_id: str | None = None
    user_id: str | None = None
    role: str | None = None
    request_id: str | None = None
    org_name: str | None = None

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if value is not None and (not isinstance(value, str) or not value.strip()):
                object.__setattr__(self, f.name, None)


@dataclass(frozen=True)
class IdentityValidation:
    is_valid: bool
    missing: list[str] = field(default_factory=list)


# ── Authorization ────────────────────────────────────────────────

@dataclass(frozen=True)
class AuthorizationOptions:
    """Per-route authorization configuration."""

    require_system_admin: bool = False


@dataclass(frozen=True)
class AuthDecision:
    """Outcome of an authorization check: proceed, or a rejection triple."""

    allowed: bool
    status_code: int = 200
    message: str = ""
    error_code: ErrorCode | None = None

    @classmethod
    def proceed(cls) -> AuthDecision:
        return cls(allowed=True)

    @classmethod
    def reject(cls, error_code: ErrorCode, message: str) -> AuthDecision:
        return cls(
            allowed=False,
            status_code=status_for(error_code),
            message=message,
            error_code=error_code,
        )


# ── Validation ───────────────────────────────────────────────────

@dataclass(frozen=True)
class Violation:
    """A single failed constraint, addressed by dotted field path."""

    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}" if self.field else self.message


@dataclass(frozen=True)
class ValidationResult(Generic[T]):
    """Either a validated value or the list of violations that rejected it."""

    value: T | None = None
    violations: tuple[Violation, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.violations

    @classmethod
    def success(cls, value: T) -> ValidationResult[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, violations: list[Violation]) -> ValidationResult[T]:
        return cls(violations=tuple(violations))

    def message(self) -> str:
        return "; ".join(str(v) for v in self.violations)


# ── Quotas ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class QuotaLimits:
    """Per-type limits of a tier. ``-1`` means unlimited."""

    plugins: int
    pipelines: int
    api_calls: int

    def for_type(self, quota_type: QuotaType) -> int:
        return self.as_dict()[quota_type.value]

    def as_dict(self) -> dict[str, int]:
        return {
            QuotaType.PLUGINS.value: self.plugins,
            QuotaType.PIPELINES.value: self.pipelines,
            QuotaType.API_CALLS.value: self.api_calls,
        }

    @classmethod
    def from_mapping(cls, limits: dict[str, int]) -> QuotaLimits:
        return cls(
            plugins=limits[QuotaType.PLUGINS.value],
            pipelines=limits[QuotaType.PIPELINES.value],
            api_calls=limits[QuotaType.API_CALLS.value],
        )


@dataclass
class Organization:
    """Tenant metadata the ledger reads: display fields and assigned tier."""

    org_id: str
    name: str
    slug: str
    tier: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class QuotaRecord:
    """Usage counter for one (organization, quota type) pair."""

    org_id: str
    quota_type: QuotaType
    limit: int
    used: int
    tier: str
    reset_cycle_days: int
    last_reset_at: datetime

    def __post_init__(self) -> None:
        if self.used < 0:
            msg = f"used cannot be negative: {self.used}"
            raise ValueError(msg)
        if self.limit < UNLIMITED:
            msg = f"limit must be -1 (unlimited) or non-negative: {self.limit}"
            raise ValueError(msg)
        if self.reset_cycle_days <= 0:
            msg = f"reset_cycle_days must be positive: {self.reset_cycle_days}"
            raise ValueError(msg)

    @property
    def unlimited(self) -> bool:
        return self.limit == UNLIMITED

    @property
    def remaining(self) -> int:
        if self.unlimited:
            return UNLIMITED
        return max(0, self.limit - self.used)

    @property
    def next_reset_at(self) -> datetime:
        return self.last_reset_at + timedelta(days=self.reset_cycle_days)

    def reset_due(self, now: datetime) -> bool:
        """Rolling window: due once a full cycle has elapsed since the last reset."""
        return now - self.last_reset_at >= timedelta(days=self.reset_cycle_days)


@dataclass(frozen=True)
class QuotaStatus:
    """Read-side view of one quota type."""

    quota_type: QuotaType
    limit: int
    used: int
    remaining: int
    allowed: bool
    unlimited: bool
    reset_at: datetime


@dataclass(frozen=True)
class OrgQuotaSummary:
    org_id: str
    name: str
    slug: str
    tier: str
    quotas: dict[QuotaType, QuotaStatus]
    is_default: bool = False


def violations_from(exc: ValidationError) -> list[Violation]:
    """Flatten a pydantic ``ValidationError`` into field-level violations."""
    violations: list[Violation] = []
    for err in exc.errors():
        path = ".".join(str(part) for part in err.get("loc", ()))
        message = str(err.get("msg", "invalid value"))
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        violations.append(Violation(field=path, message=message))
    return violations
