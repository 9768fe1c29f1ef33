"""Optimistic-concurrency version tracking for FHIR resources.

Every logical resource has a current version that starts at 1 and increases by
exactly 1 per recorded mutation, plus an append-only history of snapshots.
Updates and deletes carry the version the caller last saw; the bump is a
single conditional UPDATE keyed on that value, so of two writers holding the
same version exactly one succeeds and the other gets ConflictError.

Domain services receive a tracker through their constructor. A service built
without one uses NullVersionTracker and keeps working, just without history.
"""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from ehrfhir.fhir.errors import ConflictError, NotFoundError
from ehrfhir.models.common import HistoryAction, utc_now
from ehrfhir.models.history import HistoryEntry, ResourceVersionState
from ehrfhir.repositories.history import HistoryRepository

logger = logging.getLogger(__name__)


def _entry(row) -> HistoryEntry:
    return HistoryEntry(
        resource_type=row.resource_type,
        resource_id=row.resource_id,
        version_id=row.version_id,
        snapshot=row.snapshot,
        action=HistoryAction(row.action),
        recorded_at=row.recorded_at,
    )


class VersionTracker:
    """Records resource versions and history inside the caller's session."""

    def __init__(self, session: AsyncSession) -> None:
        self._repo = HistoryRepository(session)

    async def record_create(
        self, resource_type: str, resource_id: str, snapshot: dict[str, Any],
    ) -> int:
        """Start the history of a new resource at version 1.

        Raises ConflictError if the id already has version state, deleted or not.
        """
        existing = await self._repo.get_state(resource_type, resource_id)
        if existing is not None:
            raise ConflictError(resource_type, resource_id, None, existing.current_version)

        now = utc_now()
        await self._repo.insert_state(resource_type, resource_id, recorded_at=now)
        await self._repo.append_entry(
            resource_type=resource_type,
            resource_id=resource_id,
            version_id=1,
            action=HistoryAction.CREATE,
            snapshot=snapshot,
            recorded_at=now,
        )
        logger.info("Recorded %s/%s version 1 (create)", resource_type, resource_id)
        return 1

    async def record_update(
        self,
        resource_type: str,
        resource_id: str,
        expected_version: int,
        snapshot: dict[str, Any],
    ) -> int:
        """Move a live resource from *expected_version* to the next version.

        Raises:
            NotFoundError: no live version state for the id.
            ConflictError: the stored version is not *expected_version*.
        """
        new_version, recorded_at = await self._bump(
            resource_type, resource_id, expected_version, delete=False,
        )
        await self._repo.append_entry(
            resource_type=resource_type,
            resource_id=resource_id,
            version_id=new_version,
            action=HistoryAction.UPDATE,
            snapshot=snapshot,
            recorded_at=recorded_at,
        )
        logger.info("Recorded %s/%s version %d (update)", resource_type, resource_id, new_version)
        return new_version

    async def record_delete(
        self,
        resource_type: str,
        resource_id: str,
        expected_version: int,
        snapshot: dict[str, Any] | None = None,
    ) -> int:
        """Record deletion as a new version and mark the resource deleted.

        The delete entry carries *snapshot*, or the last live snapshot when
        omitted. Later updates and deletes of the id raise NotFoundError.
        """
        new_version, recorded_at = await self._bump(
            resource_type, resource_id, expected_version, delete=True,
        )
        if snapshot is None:
            previous = await self._repo.get_entry(resource_type, resource_id, expected_version)
            snapshot = previous.snapshot if previous is not None else {}
        await self._repo.append_entry(
            resource_type=resource_type,
            resource_id=resource_id,
            version_id=new_version,
            action=HistoryAction.DELETE,
            snapshot=snapshot,
            recorded_at=recorded_at,
        )
        logger.info("Recorded %s/%s version %d (delete)", resource_type, resource_id, new_version)
        return new_version

    async def _bump(
        self, resource_type: str, resource_id: str, expected_version: int, *, delete: bool,
    ) -> tuple[int, datetime]:
        now = utc_now()
        swapped = await self._repo.compare_and_swap(
            resource_type,
            resource_id,
            expected_version,
            recorded_at=now,
            delete=delete,
        )
        if swapped:
            return expected_version + 1, now

        state = await self._repo.get_state(resource_type, resource_id)
        if state is None or state.deleted:
            raise NotFoundError(resource_type, resource_id)
        logger.warning(
            "Version conflict on %s/%s: expected %d, current %d",
            resource_type, resource_id, expected_version, state.current_version,
        )
        raise ConflictError(resource_type, resource_id, expected_version, state.current_version)

    # --- Reads ---

    async def get_state(self, resource_type: str, resource_id: str) -> ResourceVersionState:
        row = await self._repo.get_state(resource_type, resource_id)
        if row is None:
            raise NotFoundError(resource_type, resource_id)
        return ResourceVersionState(
            resource_type=row.resource_type,
            resource_id=row.resource_id,
            current_version=row.current_version,
            last_updated=row.last_updated,
            deleted=row.deleted,
        )

    async def get_history(self, resource_type: str, resource_id: str) -> list[HistoryEntry]:
        """All entries for one resource, ascending by version. Empty for unknown ids."""
        rows = await self._repo.list_entries(resource_type, resource_id)
        return [_entry(row) for row in rows]

    async def list_instance_history(
        self, resource_type: str, resource_id: str, *, count: int = 20, offset: int = 0,
    ) -> tuple[list[HistoryEntry], int]:
        """One page of a resource's entries, ascending by version, plus the total."""
        total = await self._repo.count_entries(resource_type, resource_id)
        rows = await self._repo.list_entries(
            resource_type, resource_id, limit=count, offset=offset,
        )
        return [_entry(row) for row in rows], total

    async def get_version(
        self, resource_type: str, resource_id: str, version_id: int,
    ) -> HistoryEntry:
        row = await self._repo.get_entry(resource_type, resource_id, version_id)
        if row is None:
            raise NotFoundError(resource_type, resource_id, version_id)
        return _entry(row)

    async def list_type_history(
        self,
        resource_type: str,
        *,
        since: datetime | None = None,
        count: int = 20,
        offset: int = 0,
    ) -> tuple[list[HistoryEntry], int]:
        """Newest-first entries of every resource of one type, plus the total."""
        rows, total = await self._repo.list_recent_entries(
            resource_type=resource_type, since=since, limit=count, offset=offset,
        )
        return [_entry(row) for row in rows], total

    async def list_system_history(
        self,
        *,
        since: datetime | None = None,
        count: int = 20,
        offset: int = 0,
    ) -> tuple[list[HistoryEntry], int]:
        """Newest-first entries across all resource types, plus the total."""
        rows, total = await self._repo.list_recent_entries(
            since=since, limit=count, offset=offset,
        )
        return [_entry(row) for row in rows], total


class NullVersionTracker(VersionTracker):
    """Tracker that records nothing.

    Version arithmetic still behaves as if every call succeeded, so services
    can run without a history store.
    """

    def __init__(self) -> None:
        pass

    async def record_create(self, resource_type, resource_id, snapshot) -> int:
        return 1

    async def record_update(self, resource_type, resource_id, expected_version, snapshot) -> int:
        return expected_version + 1

    async def record_delete(
        self, resource_type, resource_id, expected_version, snapshot=None,
    ) -> int:
        return expected_version + 1

    async def get_state(self, resource_type: str, resource_id: str) -> ResourceVersionState:
        raise NotFoundError(resource_type, resource_id)

    async def get_history(self, resource_type: str, resource_id: str) -> list[HistoryEntry]:
        return []

    async def list_instance_history(
        self, resource_type: str, resource_id: str, *, count: int = 20, offset: int = 0,
    ) -> tuple[list[HistoryEntry], int]:
        return [], 0

    async def get_version(
        self, resource_type: str, resource_id: str, version_id: int,
    ) -> HistoryEntry:
        raise NotFoundError(resource_type, resource_id, version_id)

    async def list_type_history(
        self, resource_type: str, *, since=None, count: int = 20, offset: int = 0,
    ) -> tuple[list[HistoryEntry], int]:
        return [], 0

    async def list_system_history(
        self, *, since=None, count: int = 20, offset: int = 0,
    ) -> tuple[list[HistoryEntry], int]:
        return [], 0
