"""FastAPI dependency injection factories for repositories, tracker and services.

Each factory takes AsyncSession via Depends(get_async_session). FastAPI caches
the session per request, so a service and its version tracker share one
unit of work.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ehrfhir.db.session import get_async_session
from ehrfhir.fhir.versioning import VersionTracker
from ehrfhir.repositories.organizations import OrganizationRepository
from ehrfhir.services.organizations import OrganizationService

# ---------------------------------------------------------------------------
# Versioning
# ---------------------------------------------------------------------------


async def get_version_tracker(
    session: AsyncSession = Depends(get_async_session),
) -> VersionTracker:
    return VersionTracker(session)


# ---------------------------------------------------------------------------
# Organization
# ---------------------------------------------------------------------------


async def get_organization_repo(
    session: AsyncSession = Depends(get_async_session),
) -> OrganizationRepository:
    return OrganizationRepository(session)


async def get_organization_service(
    repo: OrganizationRepository = Depends(get_organization_repo),
    tracker: VersionTracker = Depends(get_version_tracker),
) -> OrganizationService:
    return OrganizationService(repo, version_tracker=tracker)
