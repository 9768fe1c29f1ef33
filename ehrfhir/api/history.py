"""FastAPI history endpoints.

GET /fhir/_history                                   - system history
GET /fhir/{resource_type}/_history                   - type history
GET /fhir/{resource_type}/{resource_id}/_history     - instance history
GET /fhir/{resource_type}/{resource_id}/_history/{version_id} - vread

All history interactions page with _count/_offset. System and type history
are newest first and accept _since (entries recorded at or after the given
instant); instance history is ascending by version. Reading the version that
records a delete is 410 Gone.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Header, Query, Response

from ehrfhir.api.dependencies import get_version_tracker
from ehrfhir.api.responses import FHIRResponse, resource_response
from ehrfhir.config.settings import Settings, get_settings
from ehrfhir.fhir.bundle import history_bundle
from ehrfhir.fhir.errors import GoneError, NotFoundError
from ehrfhir.fhir.search import parse_count, parse_offset
from ehrfhir.fhir.versioning import VersionTracker
from ehrfhir.models.common import HistoryAction

router = APIRouter(prefix="/fhir", tags=["history"])


@router.get("/_history")
async def system_history(
    since: datetime | None = Query(default=None, alias="_since"),
    count: str | None = Query(default=None, alias="_count"),
    offset: str | None = Query(default=None, alias="_offset"),
    tracker: VersionTracker = Depends(get_version_tracker),
    settings: Settings = Depends(get_settings),
) -> FHIRResponse:
    entries, total = await tracker.list_system_history(
        since=since,
        count=parse_count(count, settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE),
        offset=parse_offset(offset),
    )
    return FHIRResponse(content=history_bundle(entries, total, settings.FHIR_BASE_URL))


@router.get("/{resource_type}/_history")
async def type_history(
    resource_type: str,
    since: datetime | None = Query(default=None, alias="_since"),
    count: str | None = Query(default=None, alias="_count"),
    offset: str | None = Query(default=None, alias="_offset"),
    tracker: VersionTracker = Depends(get_version_tracker),
    settings: Settings = Depends(get_settings),
) -> FHIRResponse:
    entries, total = await tracker.list_type_history(
        resource_type,
        since=since,
        count=parse_count(count, settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE),
        offset=parse_offset(offset),
    )
    return FHIRResponse(content=history_bundle(entries, total, settings.FHIR_BASE_URL))


@router.get("/{resource_type}/{resource_id}/_history")
async def instance_history(
    resource_type: str,
    resource_id: str,
    count: str | None = Query(default=None, alias="_count"),
    offset: str | None = Query(default=None, alias="_offset"),
    tracker: VersionTracker = Depends(get_version_tracker),
    settings: Settings = Depends(get_settings),
) -> FHIRResponse:
    entries, total = await tracker.list_instance_history(
        resource_type,
        resource_id,
        count=parse_count(count, settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE),
        offset=parse_offset(offset),
    )
    if total == 0:
        raise NotFoundError(resource_type, resource_id)
    return FHIRResponse(content=history_bundle(entries, total, settings.FHIR_BASE_URL))


@router.get("/{resource_type}/{resource_id}/_history/{version_id}")
async def vread(
    resource_type: str,
    resource_id: str,
    version_id: int,
    if_none_match: str | None = Header(default=None),
    if_modified_since: str | None = Header(default=None),
    tracker: VersionTracker = Depends(get_version_tracker),
) -> Response:
    entry = await tracker.get_version(resource_type, resource_id, version_id)
    if entry.action == HistoryAction.DELETE:
        raise GoneError(resource_type, resource_id, version_id)
    return resource_response(
        entry.snapshot,
        version_id=entry.version_id,
        last_modified=entry.recorded_at,
        if_none_match=if_none_match,
        if_modified_since=if_modified_since,
    )
