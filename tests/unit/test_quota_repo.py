"""Tests for QuotaRepository: DB-backed quota storage."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError

from src.api.db.quotas import QuotaRepository
from src.core.exceptions import ConflictError
from src.core.types import Organization, QuotaRecord, QuotaType

NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _make_row(**kwargs: object) -> dict[str, object]:
    """Create a fake quota_usage row mapping."""
    defaults: dict[str, object] = {
        "org_id": "acme",
        "quota_type": "plugins",
        "quota_limit": 100,
        "used": 10,
        "tier": "developer",
        "reset_cycle_days": 3,
        "last_reset_at": NOW,
    }
    defaults.update(kwargs)
    return defaults


def _result(row: dict[str, object] | None) -> MagicMock:
    result = MagicMock()
    result.mappings.return_value.first.return_value = row
    return result


def _mock_engine(mock_conn: AsyncMock) -> MagicMock:
    """Create a mock engine with proper async context manager for begin()."""
    engine = MagicMock()

    @asynccontextmanager
    async def _begin() -> AsyncIterator[AsyncMock]:
        yield mock_conn

    engine.begin = _begin
    return engine


def _sql_of(call: object) -> str:
    return str(call.args[0])  # type: ignore[attr-defined]


class TestRowConversion:
    """Tests for row to dataclass conversion."""

    def test_record(self) -> None:
        record = QuotaRepository._row_to_record(_make_row(quota_type="apiCalls", quota_limit=-1))
        assert record.quota_type is QuotaType.API_CALLS
        assert record.unlimited is True
        assert record.used == 10

    def test_organization(self) -> None:
        org = QuotaRepository._row_to_org(
            {"org_id": "acme", "name": "Acme", "slug": "acme", "tier": "pro", "created_at": NOW}
        )
        assert org == Organization(org_id="acme", name="Acme", slug="acme", tier="pro", created_at=NOW)


class TestReads:
    """Tests for organization and record reads."""

    @pytest.mark.asyncio
    async def test_get_organization_not_found(self) -> None:
        mock_conn = AsyncMock()
        mock_conn.execute.return_value = _result(None)
        repo = QuotaRepository(_mock_engine(mock_conn))
        assert await repo.get_organization("ghost") is None
        assert "lower(org_id) = lower(:oid)" in _sql_of(mock_conn.execute.call_args)

    @pytest.mark.asyncio
    async def test_get_record(self) -> None:
        mock_conn = AsyncMock()
        mock_conn.execute.return_value = _result(_make_row(used=42))
        repo = QuotaRepository(_mock_engine(mock_conn))
        record = await repo.get_record("ACME", QuotaType.PLUGINS)
        assert record is not None and record.used == 42
        assert mock_conn.execute.call_args.args[1] == {"oid": "ACME", "qt": "plugins"}

    @pytest.mark.asyncio
    async def test_list_records(self) -> None:
        rows = MagicMock()
        rows.mappings.return_value.all.return_value = [
            _make_row(),
            _make_row(quota_type="pipelines", quota_limit=10, used=1),
        ]
        mock_conn = AsyncMock()
        mock_conn.execute.return_value = rows
        repo = QuotaRepository(_mock_engine(mock_conn))
        records = await repo.list_records("acme")
        assert [r.quota_type for r in records] == [QuotaType.PLUGINS, QuotaType.PIPELINES]


class TestSaveOrganization:
    """Tests for organization upserts."""

    @pytest.mark.asyncio
    async def test_upsert(self) -> None:
        mock_conn = AsyncMock()
        repo = QuotaRepository(_mock_engine(mock_conn))
        org = Organization(org_id="acme", name="Acme", slug="acme", tier="pro", created_at=NOW)
        assert await repo.save_organization(org) is org
        assert "ON CONFLICT (org_id) DO UPDATE" in _sql_of(mock_conn.execute.call_args)
        assert mock_conn.execute.call_args.args[1]["tier"] == "pro"

    @pytest.mark.asyncio
    async def test_integrity_error_becomes_conflict(self) -> None:
        mock_conn = AsyncMock()
        mock_conn.execute.side_effect = IntegrityError("INSERT", {}, Exception("duplicate key"))
        repo = QuotaRepository(_mock_engine(mock_conn))
        org = Organization(org_id="acme", name="Acme", slug="taken", tier="pro", created_at=NOW)

        with pytest.raises(ConflictError) as exc_info:
            await repo.save_organization(org)

        assert exc_info.value.status_code == 409
        assert exc_info.value.context["slug"] == "taken"
        assert isinstance(exc_info.value.__cause__, IntegrityError)


class TestMutateRecord:
    """Tests for locked record mutation."""

    @pytest.mark.asyncio
    async def test_existing_row_locked_and_updated(self) -> None:
        mock_conn = AsyncMock()
        mock_conn.execute.side_effect = [_result(_make_row(used=10)), MagicMock()]
        repo = QuotaRepository(_mock_engine(mock_conn))

        record, outcome = await repo.mutate_record(
            "acme",
            QuotaType.PLUGINS,
            lambda r: (replace(r, used=r.used + 1), True),
            MagicMock(),
        )

        assert record.used == 11
        assert outcome is True
        calls = mock_conn.execute.call_args_list
        assert "FOR UPDATE" in _sql_of(calls[0])
        assert "UPDATE quota_usage SET" in _sql_of(calls[1])
        assert calls[1].args[1]["used"] == 11

    @pytest.mark.asyncio
    async def test_absent_row_inserted_then_locked(self) -> None:
        fresh = QuotaRecord("acme", QuotaType.PLUGINS, 100, 0, "developer", 3, NOW)
        mock_conn = AsyncMock()
        mock_conn.execute.side_effect = [
            _result(None),
            MagicMock(),
            _result(_make_row(used=0)),
            MagicMock(),
        ]
        repo = QuotaRepository(_mock_engine(mock_conn))

        record, _ = await repo.mutate_record(
            "acme",
            QuotaType.PLUGINS,
            lambda r: (replace(r, used=r.used + 1), True),
            lambda: fresh,
        )

        assert record.used == 1
        calls = mock_conn.execute.call_args_list
        assert "ON CONFLICT (org_id, quota_type) DO NOTHING" in _sql_of(calls[1])
        assert "FOR UPDATE" in _sql_of(calls[2])
        assert len(calls) == 4

    @pytest.mark.asyncio
    async def test_no_write_when_mutation_declines(self) -> None:
        mock_conn = AsyncMock()
        mock_conn.execute.side_effect = [_result(_make_row(used=100))]
        repo = QuotaRepository(_mock_engine(mock_conn))

        record, outcome = await repo.mutate_record(
            "acme", QuotaType.PLUGINS, lambda r: (None, False), MagicMock()
        )

        assert record.used == 100
        assert outcome is False
        assert mock_conn.execute.await_count == 1
