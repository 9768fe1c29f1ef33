"""Immutable version-tracking entities: ResourceVersionState, HistoryEntry."""

from typing import Any

from pydantic import Field

from ehrfhir.models.common import FHIRBase, HistoryAction, UTCTimestamp, VersionNumber


class ResourceVersionState(FHIRBase, frozen=True):
    """Current version of one logical resource instance.

    current_version strictly increases by exactly 1 per recorded mutation.
    """

    resource_type: str = Field(..., min_length=1, max_length=64)
    resource_id: str = Field(..., min_length=1, max_length=64)
    current_version: VersionNumber
    last_updated: UTCTimestamp
    deleted: bool = False

    @property
    def etag(self) -> str:
        """Weak ETag carrying the version, as FHIR servers send it."""
        return f'W/"{self.current_version}"'


class HistoryEntry(FHIRBase, frozen=True):
    """One append-only snapshot of a resource.

    Ordered ascending by version_id within a (resource_type, resource_id) group.
    """

    resource_type: str
    resource_id: str
    version_id: VersionNumber
    snapshot: dict[str, Any]
    action: HistoryAction
    recorded_at: UTCTimestamp
