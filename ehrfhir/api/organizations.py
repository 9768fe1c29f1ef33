"""FastAPI Organization endpoints.

POST   /fhir/Organization                 - create (version 1)
GET    /fhir/Organization                 - search (query string)
POST   /fhir/Organization/_search         - search (form body)
GET    /fhir/Organization/{id}            - read; If-None-Match / If-Modified-Since give 304
PUT    /fhir/Organization/{id}            - update; If-Match: W/"n" makes it conditional
PATCH  /fhir/Organization/{id}            - JSON Patch or JSON Merge Patch by Content-Type
DELETE /fhir/Organization/{id}            - delete (recorded as a new version)
"""

from collections.abc import Iterable
from typing import Any

from fastapi import APIRouter, Body, Depends, Header, Request, Response

from ehrfhir.api.dependencies import get_organization_service
from ehrfhir.api.responses import (
    FHIRResponse,
    parse_if_match,
    resource_response,
    weak_etag,
)
from ehrfhir.config.settings import Settings, get_settings
from ehrfhir.fhir.bundle import searchset_bundle
from ehrfhir.fhir.search import parse_count, parse_offset
from ehrfhir.models.organization import RESOURCE_TYPE, Organization
from ehrfhir.services.organizations import OrganizationService

router = APIRouter(prefix=f"/fhir/{RESOURCE_TYPE}", tags=["organizations"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _params_map(items: Iterable[tuple[str, Any]]) -> dict[str, list[str]]:
    """Group repeated query/form parameters; repeats are ANDed by the search builder."""
    params: dict[str, list[str]] = {}
    for name, value in items:
        params.setdefault(name, []).append(str(value))
    return params


def _first(params: dict[str, list[str]], name: str) -> str | None:
    values = params.get(name)
    return values[0] if values else None


def _read_response(
    organization: Organization,
    *,
    status_code: int = 200,
    location: str | None = None,
    if_none_match: str | None = None,
    if_modified_since: str | None = None,
) -> Response:
    return resource_response(
        organization.to_fhir(),
        version_id=organization.version_id,
        last_modified=organization.updated_at,
        status_code=status_code,
        location=location,
        if_none_match=if_none_match,
        if_modified_since=if_modified_since,
    )


async def _search(
    params: dict[str, list[str]], service: OrganizationService, settings: Settings,
) -> FHIRResponse:
    count = parse_count(
        _first(params, "_count"), settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE,
    )
    offset = parse_offset(_first(params, "_offset"))
    organizations, total = await service.search(params, count=count, offset=offset)
    return FHIRResponse(
        content=searchset_bundle(
            [organization.to_fhir() for organization in organizations],
            total,
            settings.FHIR_BASE_URL,
            RESOURCE_TYPE,
        ),
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("", status_code=201)
async def create_organization(
    resource: dict[str, Any] = Body(...),
    service: OrganizationService = Depends(get_organization_service),
    settings: Settings = Depends(get_settings),
) -> Response:
    organization = await service.create(resource)
    location = (
        f"{settings.FHIR_BASE_URL.rstrip('/')}/{RESOURCE_TYPE}/{organization.id}"
        f"/_history/{organization.version_id}"
    )
    return _read_response(organization, status_code=201, location=location)


@router.get("")
async def search_organizations(
    request: Request,
    service: OrganizationService = Depends(get_organization_service),
    settings: Settings = Depends(get_settings),
) -> FHIRResponse:
    return await _search(_params_map(request.query_params.multi_items()), service, settings)


@router.post("/_search")
async def search_organizations_form(
    request: Request,
    service: OrganizationService = Depends(get_organization_service),
    settings: Settings = Depends(get_settings),
) -> FHIRResponse:
    form = await request.form()
    items = [*request.query_params.multi_items(), *form.multi_items()]
    return await _search(_params_map(items), service, settings)


@router.get("/{organization_id}")
async def read_organization(
    organization_id: str,
    if_none_match: str | None = Header(default=None),
    if_modified_since: str | None = Header(default=None),
    service: OrganizationService = Depends(get_organization_service),
) -> Response:
    return _read_response(
        await service.get(organization_id),
        if_none_match=if_none_match,
        if_modified_since=if_modified_since,
    )


@router.put("/{organization_id}")
async def update_organization(
    organization_id: str,
    resource: dict[str, Any] = Body(...),
    if_match: str | None = Header(default=None),
    service: OrganizationService = Depends(get_organization_service),
) -> Response:
    organization = await service.update(
        organization_id, resource, if_match=parse_if_match(if_match),
    )
    return _read_response(organization)


@router.patch("/{organization_id}")
async def patch_organization(
    organization_id: str,
    request: Request,
    if_match: str | None = Header(default=None),
    service: OrganizationService = Depends(get_organization_service),
) -> Response:
    organization = await service.patch(
        organization_id,
        request.headers.get("content-type"),
        await request.body(),
        if_match=parse_if_match(if_match),
    )
    return _read_response(organization)


@router.delete("/{organization_id}", status_code=204)
async def delete_organization(
    organization_id: str,
    if_match: str | None = Header(default=None),
    service: OrganizationService = Depends(get_organization_service),
) -> Response:
    version = await service.delete(organization_id, if_match=parse_if_match(if_match))
    return Response(status_code=204, headers={"ETag": weak_etag(version)})
