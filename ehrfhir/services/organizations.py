"""Organization service: CRUD, PATCH and search over the Organization resource.

The service owns the organizations rows. Every mutation is also reported to
the version tracker, which decides (by compare-and-swap) whether it may happen:
the tracker call comes first, so a stale version never touches the row.
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from ehrfhir.fhir.errors import ConflictError, InvalidResourceError, NotFoundError
from ehrfhir.fhir.patching import apply_patch
from ehrfhir.fhir.versioning import NullVersionTracker, VersionTracker
from ehrfhir.models.common import new_resource_id, utc_now
from ehrfhir.models.organization import RESOURCE_TYPE, Organization, OrganizationFields
from ehrfhir.repositories.organizations import OrganizationRepository

logger = logging.getLogger(__name__)


class OrganizationService:
    def __init__(
        self,
        repo: OrganizationRepository,
        version_tracker: VersionTracker | None = None,
    ) -> None:
        self._repo = repo
        self._tracker = version_tracker or NullVersionTracker()

    async def create(self, resource: Any) -> Organization:
        fields = OrganizationFields.from_fhir(resource)
        organization_id = new_resource_id()
        row = await self._repo.create(organization_id=organization_id, fields=fields)
        organization = Organization.model_validate(row, from_attributes=True)
        version = await self._tracker.record_create(
            RESOURCE_TYPE, organization_id, organization.to_fhir(),
        )
        logger.info("Created %s/%s", RESOURCE_TYPE, organization_id)
        return organization.model_copy(update={"version_id": version})

    async def get(self, organization_id: str) -> Organization:
        row = await self._repo.get(organization_id)
        if row is None:
            raise NotFoundError(RESOURCE_TYPE, organization_id)
        return Organization.model_validate(row, from_attributes=True)

    async def update(
        self, organization_id: str, resource: Any, *, if_match: int | None = None,
    ) -> Organization:
        """Replace the resource. *if_match* is the version from an If-Match header."""
        if isinstance(resource, dict) and resource.get("id") not in (None, organization_id):
            raise InvalidResourceError(
                f"Resource id {resource.get('id')!r} does not match URL id {organization_id!r}."
            )
        fields = OrganizationFields.from_fhir(resource)
        return await self._write(organization_id, fields, if_match)

    async def patch(
        self,
        organization_id: str,
        content_type: str | None,
        body: bytes,
        *,
        if_match: int | None = None,
    ) -> Organization:
        current = await self.get(organization_id)
        patched = apply_patch(content_type, body, current.to_fhir())
        if not isinstance(patched, dict) or patched.get("id") != organization_id:
            raise InvalidResourceError("PATCH may not change the resource id.")
        fields = OrganizationFields.from_fhir(patched)
        return await self._write(organization_id, fields, if_match)

    async def delete(self, organization_id: str, *, if_match: int | None = None) -> int:
        """Delete the resource; returns the version recorded for the deletion."""
        current = await self.get(organization_id)
        expected = self._expected_version(current, if_match)
        version = await self._tracker.record_delete(
            RESOURCE_TYPE, organization_id, expected, current.to_fhir(),
        )
        await self._repo.delete(organization_id)
        logger.info("Deleted %s/%s at version %d", RESOURCE_TYPE, organization_id, version)
        return version

    async def search(
        self,
        params: Mapping[str, str | Sequence[str]],
        *,
        count: int,
        offset: int = 0,
    ) -> tuple[list[Organization], int]:
        sort = params.get("_sort")
        if not isinstance(sort, str):
            sort = sort[0] if sort else None
        rows, total = await self._repo.search(params, limit=count, offset=offset, sort=sort)
        return [Organization.model_validate(row) for row in rows], total

    # --- helpers ---

    @staticmethod
    def _expected_version(current: Organization, if_match: int | None) -> int:
        if if_match is not None and if_match != current.version_id:
            raise ConflictError(RESOURCE_TYPE, current.id, if_match, current.version_id)
        return current.version_id

    async def _write(
        self, organization_id: str, fields: OrganizationFields, if_match: int | None,
    ) -> Organization:
        row = await self._repo.get(organization_id)
        if row is None:
            raise NotFoundError(RESOURCE_TYPE, organization_id)
        current = Organization.model_validate(row, from_attributes=True)
        expected = self._expected_version(current, if_match)

        now = utc_now()
        updated = Organization(
            id=organization_id,
            **fields.model_dump(),
            version_id=expected + 1,
            created_at=current.created_at,
            updated_at=now,
        )
        version = await self._tracker.record_update(
            RESOURCE_TYPE, organization_id, expected, updated.to_fhir(),
        )
        row = await self._repo.update(row, fields=fields, version_id=version, updated_at=now)
        return Organization.model_validate(row, from_attributes=True)
