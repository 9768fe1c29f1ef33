"""FHIR Bundle and OperationOutcome envelopes.

Builders return plain JSON-ready dicts; the API layer returns them as-is.
"""

from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any

from ehrfhir.models.common import HistoryAction, utc_now
from ehrfhir.models.history import HistoryEntry

_HISTORY_REQUEST: dict[HistoryAction, tuple[str, str]] = {
    HistoryAction.CREATE: ("POST", "201 Created"),
    HistoryAction.UPDATE: ("PUT", "200 OK"),
    HistoryAction.DELETE: ("DELETE", "204 No Content"),
}


def _instant(value: datetime) -> str:
    return value.isoformat()


def history_bundle(
    entries: Sequence[HistoryEntry], total: int, base_url: str,
) -> dict[str, Any]:
    """Bundle of type "history", one entry per HistoryEntry in the given order."""
    base = base_url.rstrip("/")
    bundle_entries = []
    for entry in entries:
        method, status = _HISTORY_REQUEST[entry.action]
        bundle_entries.append({
            "fullUrl": (
                f"{base}/{entry.resource_type}/{entry.resource_id}"
                f"/_history/{entry.version_id}"
            ),
            "resource": entry.snapshot,
            "request": {
                "method": method,
                "url": f"{entry.resource_type}/{entry.resource_id}",
            },
            "response": {
                "status": status,
                "etag": f'W/"{entry.version_id}"',
                "lastModified": _instant(entry.recorded_at),
            },
        })

    return {
        "resourceType": "Bundle",
        "type": "history",
        "total": total,
        "timestamp": _instant(utc_now()),
        "entry": bundle_entries,
    }


def searchset_bundle(
    resources: Iterable[dict[str, Any]],
    total: int,
    base_url: str,
    resource_type: str,
) -> dict[str, Any]:
    base = base_url.rstrip("/")
    return {
        "resourceType": "Bundle",
        "type": "searchset",
        "total": total,
        "timestamp": _instant(utc_now()),
        "entry": [
            {
                "fullUrl": f"{base}/{resource_type}/{resource['id']}",
                "resource": resource,
                "search": {"mode": "match"},
            }
            for resource in resources
        ],
    }


def operation_outcome(severity: str, code: str, diagnostics: str) -> dict[str, Any]:
    return {
        "resourceType": "OperationOutcome",
        "issue": [
            {"severity": severity, "code": code, "diagnostics": diagnostics},
        ],
    }
