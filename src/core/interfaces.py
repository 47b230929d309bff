"""Abstract base classes: storage collaborators must implement these interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from src.core.types import Organization, QuotaRecord, QuotaType

RecordMutation = Callable[[QuotaRecord], "tuple[QuotaRecord | None, Any]"]
"""Pure function applied to the current record under lock.

Returns ``(new_record, outcome)``. ``new_record`` is persisted when not
``None``; ``outcome`` is handed back to the caller untouched.
"""

RecordFactory = Callable[[], QuotaRecord]


class QuotaStore(ABC):
    """Storage collaborator for organizations and their quota records."""

    @abstractmethod
    async def get_organization(self, org_id: str) -> Organization | None:
        """Look up organization metadata (tier, name)."""
        ...

    @abstractmethod
    async def save_organization(self, org: Organization) -> Organization:
        """Insert or replace organization metadata."""
        ...

    @abstractmethod
    async def get_record(self, org_id: str, quota_type: QuotaType) -> QuotaRecord | None:
        """Read the current record without locking."""
        ...

    @abstractmethod
    async def list_records(self, org_id: str) -> list[QuotaRecord]:
        """All records owned by an organization."""
        ...

    @abstractmethod
    async def mutate_record(
        self,
        org_id: str,
        quota_type: QuotaType,
        mutate: RecordMutation,
        create: RecordFactory,
    ) -> tuple[QuotaRecord, Any]:
        """Atomically read-modify-write one record.

        The record is created with ``create()`` when absent. ``mutate`` runs
        while the record is locked against concurrent mutation, so the
        check and the write it decides on form one indivisible step.
        Returns the record as stored afterwards and the mutation's outcome.
        """
        ...
