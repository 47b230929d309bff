"""Data-visibility filters for multi-tenant listings.

Filter values arrive as raw query parameters. They are normalized here, at
query-construction time, so the storage layer never needs case-insensitive
collations or knowledge of visibility modes.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from sqlalchemy import ColumnElement, String, Table, and_, cast, false, or_

from src.core.constants import FULL_UUID_PATTERN, LIST_LIMIT_MAX, SORT_PATTERN
from src.core.types import ValidationResult, VisibilityMode, violations_from


def build_access_behavior(raw_mode: Any = None) -> VisibilityMode:
    """Parse a free-form visibility mode; unknown or missing means org-and-public."""
    if raw_mode is None:
        return VisibilityMode.ORG_AND_PUBLIC
    normalized = normalize_string_filter(raw_mode)
    if normalized == VisibilityMode.PUBLIC.value:
        return VisibilityMode.PUBLIC
    if normalized == VisibilityMode.PRIVATE.value:
        return VisibilityMode.PRIVATE
    return VisibilityMode.ORG_AND_PUBLIC


def parse_boolean_filter(raw: Any) -> bool:
    """Booleans pass through; only the exact string ``"true"`` is true."""
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        return raw == "true"
    return bool(raw)


def normalize_string_filter(raw: Any) -> str:
    return str(raw).lower()


# ── List filter validation ───────────────────────────────────────

class ListFilter(BaseModel):
    """Common listing filter parameters."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str | list[str] | None = None
    access_modifier: str | None = Field(default=None, alias="accessModifier")
    is_default: bool | str | None = Field(default=None, alias="isDefault")
    is_active: bool | str | None = Field(default=None, alias="isActive")
    limit: int | None = Field(default=None, ge=1, le=LIST_LIMIT_MAX)
    offset: int | None = Field(default=None, ge=0)
    sort: str | None = None

    @field_validator("sort")
    @classmethod
    def _check_sort(cls, value: str | None) -> str | None:
        if value is not None and not SORT_PATTERN.match(value):
            msg = 'sort must be in format "field:asc" or "field:desc"'
            raise ValueError(msg)
        return value


def validate_list_filter(params: dict[str, Any]) -> ValidationResult[ListFilter]:
    try:
        return ValidationResult.success(ListFilter.model_validate(params))
    except ValidationError as exc:
        return ValidationResult.failure(violations_from(exc))


# ── Query construction ───────────────────────────────────────────

class AccessControlQueryBuilder:
    """Builds SQLAlchemy conditions for tables with access-control columns.

    The table must expose ``id``, ``org_id``, ``access_modifier``,
    ``is_default`` and ``is_active`` columns.
    """

    def __init__(self, table: Table) -> None:
        self._table = table

    def build_access_control(self, mode: VisibilityMode, org_id: str) -> ColumnElement[bool]:
        c = self._table.c
        normalized_org = org_id.lower()
        if mode is VisibilityMode.PUBLIC:
            return c.access_modifier == VisibilityMode.PUBLIC.value
        if mode is VisibilityMode.PRIVATE:
            return c.org_id == normalized_org
        return or_(c.org_id == normalized_org, c.access_modifier == VisibilityMode.PUBLIC.value)

    def build_id_filter(self, id_filter: str | list[str] | None) -> ColumnElement[bool] | None:
        """Full UUIDs match exactly; anything shorter is a prefix match."""
        if id_filter is None:
            return None
        if isinstance(id_filter, list):
            clauses = [self.build_id_filter(value) for value in id_filter]
            clauses = [clause for clause in clauses if clause is not None]
            return or_(*clauses) if clauses else false()

        id_value = id_filter.lower()
        if FULL_UUID_PATTERN.match(id_value):
            return self._table.c.id == id_value
        return cast(self._table.c.id, String).like(f"{id_value}%")

    def build_boolean_filters(self, filt: ListFilter) -> list[ColumnElement[bool]]:
        conditions: list[ColumnElement[bool]] = []
        if filt.is_default is not None:
            conditions.append(self._table.c.is_default == parse_boolean_filter(filt.is_default))
        if filt.is_active is not None:
            conditions.append(self._table.c.is_active == parse_boolean_filter(filt.is_active))
        return conditions

    def build_access_modifier_filter(self, access_modifier: str | None) -> ColumnElement[bool] | None:
        """Exact access-modifier match, independent of the visibility mode."""
        if access_modifier is None:
            return None
        return self._table.c.access_modifier == normalize_string_filter(access_modifier)

    def build_common_conditions(self, filt: ListFilter, org_id: str) -> list[ColumnElement[bool]]:
        mode = build_access_behavior(filt.access_modifier)
        conditions: list[ColumnElement[bool]] = [self.build_access_control(mode, org_id)]

        id_condition = self.build_id_filter(filt.id)
        if id_condition is not None:
            conditions.append(id_condition)

        conditions.extend(self.build_boolean_filters(filt))

        modifier_condition = self.build_access_modifier_filter(filt.access_modifier)
        if modifier_condition is not None:
            conditions.append(modifier_condition)

        return conditions

    def where(self, filt: ListFilter, org_id: str) -> ColumnElement[bool]:
        return and_(*self.build_common_conditions(filt, org_id))
