"""Organization repository: primary rows and FHIR search."""

from collections.abc import Mapping, Sequence
from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ehrfhir.db.tables import OrganizationRow
from ehrfhir.fhir.search import SearchQuery
from ehrfhir.fhir.search_params import ORGANIZATION_SEARCH_PARAMS
from ehrfhir.models.common import utc_now
from ehrfhir.models.organization import OrganizationFields

ORGANIZATION_COLUMNS = (
    "id",
    "name",
    "active",
    "type_system",
    "type_code",
    "identifier_system",
    "identifier_value",
    "phone",
    "address_city",
    "partof_id",
    "version_id",
    "created_at",
    "updated_at",
)


class OrganizationRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self, *, organization_id: str, fields: OrganizationFields, version_id: int = 1,
    ) -> OrganizationRow:
        now = utc_now()
        row = OrganizationRow(
            id=organization_id,
            **fields.model_dump(),
            version_id=version_id,
            created_at=now,
            updated_at=now,
        )
        self._session.add(row)
        await self._session.flush()
        await self._session.refresh(row)
        return row

    async def get(self, organization_id: str) -> OrganizationRow | None:
        result = await self._session.execute(
            select(OrganizationRow).where(OrganizationRow.id == organization_id)
        )
        return result.scalar_one_or_none()

    async def update(
        self,
        row: OrganizationRow,
        *,
        fields: OrganizationFields,
        version_id: int,
        updated_at: datetime | None = None,
    ) -> OrganizationRow:
        for name, value in fields.model_dump().items():
            setattr(row, name, value)
        row.version_id = version_id
        row.updated_at = updated_at or utc_now()
        await self._session.flush()
        await self._session.refresh(row)
        return row

    async def delete(self, organization_id: str) -> bool:
        result = await self._session.execute(
            delete(OrganizationRow).where(OrganizationRow.id == organization_id)
        )
        return result.rowcount > 0

    async def search(
        self,
        params: Mapping[str, str | Sequence[str]],
        *,
        limit: int,
        offset: int = 0,
        sort: str | None = None,
    ) -> tuple[list[dict], int]:
        """Rows (as column mappings) matching the FHIR search params, plus the total."""
        query = SearchQuery("organizations", ORGANIZATION_COLUMNS, sort_key="name")
        query.apply_params(params, ORGANIZATION_SEARCH_PARAMS)
        query.apply_sort(sort, ORGANIZATION_SEARCH_PARAMS)

        total = (await self._session.execute(query.count_statement())).scalar_one()
        result = await self._session.execute(query.data_statement(limit, offset))
        return [dict(row) for row in result.mappings().all()], total
