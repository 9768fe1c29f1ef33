"""FHIR response helpers shared by the routers: media type, ETags, HTTP dates
and conditional reads."""

import re
from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime
from typing import Any

from fastapi import HTTPException, Response
from fastapi.responses import JSONResponse

FHIR_JSON = "application/fhir+json"

_ETAG_RE = re.compile(r'^(?:W/)?"?(\d+)"?$')


class FHIRResponse(JSONResponse):
    media_type = FHIR_JSON


def weak_etag(version_id: int) -> str:
    return f'W/"{version_id}"'


def _etag_version(value: str) -> int | None:
    match = _ETAG_RE.match(value.strip())
    return int(match.group(1)) if match else None


def parse_if_match(value: str | None) -> int | None:
    """Version number from an If-Match header (W/"3", "3" or 3)."""
    if value is None or not value.strip():
        return None
    version = _etag_version(value)
    if version is None:
        raise HTTPException(status_code=400, detail=f"Malformed If-Match header {value!r}.")
    return version


def etag_matches(if_none_match: str, version_id: int) -> bool:
    """True when an If-None-Match list names *version_id* (weak or strong) or is "*".

    Unparseable entries never match.
    """
    for candidate in if_none_match.split(","):
        candidate = candidate.strip()
        if candidate == "*" or _etag_version(candidate) == version_id:
            return True
    return False


def parse_http_date(value: str) -> datetime | None:
    """Parse an RFC 7231 date or an ISO 8601 instant; None when neither fits."""
    value = value.strip()
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def http_date(value: datetime) -> str:
    """RFC 7231 date for Last-Modified. Naive datetimes are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return format_datetime(value.astimezone(timezone.utc), usegmt=True)


def not_modified(
    version_id: int,
    last_modified: datetime,
    *,
    if_none_match: str | None = None,
    if_modified_since: str | None = None,
) -> bool:
    """Whether a read can be answered with 304.

    If-None-Match takes precedence over If-Modified-Since. Last-Modified has
    second precision, so the comparison drops microseconds.
    """
    if if_none_match:
        return etag_matches(if_none_match, version_id)
    if if_modified_since:
        since = parse_http_date(if_modified_since)
        if since is None:
            return False
        if last_modified.tzinfo is None:
            last_modified = last_modified.replace(tzinfo=timezone.utc)
        return last_modified.replace(microsecond=0) <= since
    return False


def resource_response(
    resource: dict[str, Any],
    *,
    version_id: int,
    last_modified: datetime,
    status_code: int = 200,
    location: str | None = None,
    if_none_match: str | None = None,
    if_modified_since: str | None = None,
) -> Response:
    headers = {"ETag": weak_etag(version_id), "Last-Modified": http_date(last_modified)}
    if status_code == 200 and not_modified(
        version_id,
        last_modified,
        if_none_match=if_none_match,
        if_modified_since=if_modified_since,
    ):
        return Response(status_code=304, headers=headers)
    if location is not None:
        headers["Location"] = location
    return FHIRResponse(content=resource, status_code=status_code, headers=headers)
