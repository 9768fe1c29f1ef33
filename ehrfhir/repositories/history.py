"""Version state + history repository: compare-and-swap versioning, append-only history.

Only add()/flush()/execute() are called here; the session dependency owns the
transaction, so a version bump and its history entry commit together.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ehrfhir.db.tables import ResourceHistoryRow, ResourceVersionRow
from ehrfhir.fhir.errors import ConflictError
from ehrfhir.models.common import utc_now


class HistoryRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # --- Version state ---

    async def get_state(
        self, resource_type: str, resource_id: str,
    ) -> ResourceVersionRow | None:
        result = await self._session.execute(
            select(ResourceVersionRow)
            .where(
                ResourceVersionRow.resource_type == resource_type,
                ResourceVersionRow.resource_id == resource_id,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def insert_state(
        self, resource_type: str, resource_id: str, *, recorded_at: datetime,
    ) -> ResourceVersionRow:
        row = ResourceVersionRow(
            resource_type=resource_type,
            resource_id=resource_id,
            current_version=1,
            deleted=False,
            last_updated=recorded_at,
        )
        self._session.add(row)
        try:
            await self._session.flush()
        except IntegrityError as exc:
            raise ConflictError(resource_type, resource_id, None) from exc
        return row

    async def compare_and_swap(
        self,
        resource_type: str,
        resource_id: str,
        expected_version: int,
        *,
        recorded_at: datetime,
        delete: bool = False,
    ) -> bool:
        """Bump current_version from *expected_version* to *expected_version* + 1.

        One conditional UPDATE; returns False when no live row holds
        *expected_version* (nothing is written in that case).
        """
        result = await self._session.execute(
            update(ResourceVersionRow)
            .where(
                ResourceVersionRow.resource_type == resource_type,
                ResourceVersionRow.resource_id == resource_id,
                ResourceVersionRow.current_version == expected_version,
                ResourceVersionRow.deleted.is_(False),
            )
            .values(
                current_version=ResourceVersionRow.current_version + 1,
                last_updated=recorded_at,
                deleted=delete,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # --- History entries ---

    async def append_entry(
        self,
        *,
        resource_type: str,
        resource_id: str,
        version_id: int,
        action: str,
        snapshot: dict[str, Any],
        recorded_at: datetime | None = None,
    ) -> ResourceHistoryRow:
        row = ResourceHistoryRow(
            resource_type=resource_type,
            resource_id=resource_id,
            version_id=version_id,
            action=action,
            snapshot=snapshot,
            recorded_at=recorded_at or utc_now(),
        )
        self._session.add(row)
        try:
            await self._session.flush()
        except IntegrityError as exc:
            # Unique (type, id, version) already taken by a concurrent writer
            raise ConflictError(resource_type, resource_id, version_id - 1) from exc
        return row

    async def list_entries(
        self,
        resource_type: str,
        resource_id: str,
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[ResourceHistoryRow]:
        stmt = (
            select(ResourceHistoryRow)
            .where(
                ResourceHistoryRow.resource_type == resource_type,
                ResourceHistoryRow.resource_id == resource_id,
            )
            .order_by(ResourceHistoryRow.version_id.asc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def count_entries(self, resource_type: str, resource_id: str) -> int:
        result = await self._session.execute(
            select(func.count())
            .select_from(ResourceHistoryRow)
            .where(
                ResourceHistoryRow.resource_type == resource_type,
                ResourceHistoryRow.resource_id == resource_id,
            )
        )
        return result.scalar_one()

    async def get_entry(
        self, resource_type: str, resource_id: str, version_id: int,
    ) -> ResourceHistoryRow | None:
        result = await self._session.execute(
            select(ResourceHistoryRow).where(
                ResourceHistoryRow.resource_type == resource_type,
                ResourceHistoryRow.resource_id == resource_id,
                ResourceHistoryRow.version_id == version_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_recent_entries(
        self,
        *,
        resource_type: str | None = None,
        since: datetime | None = None,
        limit: int,
        offset: int = 0,
    ) -> tuple[list[ResourceHistoryRow], int]:
        """Newest-first page of entries across one type (or all types) plus the total."""
        filters = []
        if resource_type is not None:
            filters.append(ResourceHistoryRow.resource_type == resource_type)
        if since is not None:
            filters.append(ResourceHistoryRow.recorded_at >= since)

        total_result = await self._session.execute(
            select(func.count()).select_from(ResourceHistoryRow).where(*filters)
        )
        total = total_result.scalar_one()

        result = await self._session.execute(
            select(ResourceHistoryRow)
            .where(*filters)
            .order_by(ResourceHistoryRow.recorded_at.desc(), ResourceHistoryRow.row_id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total
