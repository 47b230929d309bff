"""Schema-driven input validation for quota operations.

Validators never raise: each returns a ``ValidationResult`` carrying either
the parsed model or the full list of field-level violations.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictInt,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)

from src.core.constants import DEFAULT_INCREMENT, SLUG_PATTERN, UNLIMITED
from src.core.types import (
    VALID_QUOTA_TYPES,
    QuotaType,
    ValidationResult,
    Violation,
    violations_from,
)

_VALID_TYPES_TEXT = ", ".join(qt.value for qt in VALID_QUOTA_TYPES)


def _coerce_quota_type(value: Any) -> QuotaType:
    if isinstance(value, QuotaType):
        return value
    if isinstance(value, str):
        for qt in VALID_QUOTA_TYPES:
            if qt.value == value:
                return qt
    msg = f"Invalid quota type. Must be one of: {_VALID_TYPES_TEXT}"
    raise ValueError(msg)


# ── Schemas ──────────────────────────────────────────────────────

class QuotaLimitsPatch(BaseModel):
    """Partial map of quota type to limit; ``-1`` is the only allowed negative."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    plugins: StrictInt | None = Field(default=None, ge=UNLIMITED)
    pipelines: StrictInt | None = Field(default=None, ge=UNLIMITED)
    api_calls: StrictInt | None = Field(default=None, ge=UNLIMITED, alias="apiCalls")

    def as_dict(self) -> dict[QuotaType, int]:
        values = {
            QuotaType.PLUGINS: self.plugins,
            QuotaType.PIPELINES: self.pipelines,
            QuotaType.API_CALLS: self.api_calls,
        }
        return {qt: limit for qt, limit in values.items() if limit is not None}


class QuotaUpdate(BaseModel):
    """Organization update: any non-empty subset of name, slug, tier, quotas."""

    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    slug: str | None = None
    tier: str | None = None
    quotas: QuotaLimitsPatch | None = None

    @model_validator(mode="before")
    @classmethod
    def _fold_flat_quotas(cls, data: Any) -> Any:
        """Move legacy top-level quota keys (``{"plugins": 100}``) under ``quotas``.

        Values already present in ``quotas`` win over the flat ones.
        """
        if not isinstance(data, dict):
            return data
        flat = {qt.value: data[qt.value] for qt in VALID_QUOTA_TYPES if data.get(qt.value) is not None}
        nested = data.get("quotas")
        if nested is None:
            nested = {}
        if not flat or not isinstance(nested, dict):
            return data
        folded = {key: value for key, value in data.items() if key not in flat}
        folded["quotas"] = {**flat, **nested}
        return folded

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped = value.strip()
        if not stripped:
            msg = "name must be a non-empty string"
            raise ValueError(msg)
        return stripped

    @field_validator("slug")
    @classmethod
    def _check_slug(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped = value.strip()
        if not stripped:
            msg = "slug must be a non-empty string"
            raise ValueError(msg)
        if not SLUG_PATTERN.match(stripped):
            msg = 'slug must be lowercase alphanumeric with hyphens (e.g. "my-org")'
            raise ValueError(msg)
        return stripped

    @field_validator("tier")
    @classmethod
    def _check_tier(cls, value: str | None, info: ValidationInfo) -> str | None:
        if value is None:
            return None
        tiers: Sequence[str] = (info.context or {}).get("valid_tiers") or ()
        if value not in tiers:
            msg = f"Invalid tier. Must be one of: {', '.join(tiers)}"
            raise ValueError(msg)
        return value

    @model_validator(mode="after")
    def _require_one_field(self) -> "QuotaUpdate":
        if self.name is None and self.slug is None and self.tier is None and self.quotas is None:
            msg = "At least one field (name, slug, tier, or quotas) is required."
            raise ValueError(msg)
        return self


class QuotaIncrement(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    quota_type: QuotaType = Field(alias="quotaType")
    amount: StrictInt = Field(default=DEFAULT_INCREMENT, ge=1)

    @field_validator("quota_type", mode="before")
    @classmethod
    def _check_quota_type(cls, value: Any) -> QuotaType:
        return _coerce_quota_type(value)


class QuotaReset(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    quota_type: QuotaType | None = Field(default=None, alias="quotaType")

    @field_validator("quota_type", mode="before")
    @classmethod
    def _check_quota_type(cls, value: Any) -> QuotaType | None:
        if value is None:
            return None
        return _coerce_quota_type(value)


# ── Validators ───────────────────────────────────────────────────

def validate_update(data: Any, valid_tiers: Sequence[str]) -> ValidationResult[QuotaUpdate]:
    try:
        model = QuotaUpdate.model_validate(data, context={"valid_tiers": list(valid_tiers)})
    except ValidationError as exc:
        return ValidationResult.failure(violations_from(exc))
    return ValidationResult.success(model)


def validate_increment(data: Any) -> ValidationResult[QuotaIncrement]:
    if isinstance(data, dict) and data.get("quotaType", data.get("quota_type")) is None:
        return ValidationResult.failure([Violation(field="quotaType", message="quotaType is required.")])
    try:
        model = QuotaIncrement.model_validate(data)
    except ValidationError as exc:
        return ValidationResult.failure(violations_from(exc))
    return ValidationResult.success(model)


def validate_reset(data: Any) -> ValidationResult[QuotaReset]:
    try:
        model = QuotaReset.model_validate(data)
    except ValidationError as exc:
        return ValidationResult.failure(violations_from(exc))
    return ValidationResult.success(model)
