"""Shared types, enums, and base models used across the FHIR domain models."""

from datetime import datetime, timezone
from enum import StrEnum
from typing import Annotated
from uuid import UUID

from pydantic import BaseModel, Field
from uuid_extensions import uuid7


def utc_now() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(tz=timezone.utc)


def new_uuid7() -> UUID:
    """Generate a new time-sortable UUID v7."""
    return uuid7()


def new_resource_id() -> str:
    """Logical id for a newly created resource (string form of a UUID v7)."""
    return str(new_uuid7())


# --- Reusable annotated types ---

UTCTimestamp = Annotated[
    datetime, Field(description="UTC timezone-aware timestamp.")
]
VersionNumber = Annotated[int, Field(ge=1, description="Resource version, starting at 1.")]


# --- Shared enums ---


class HistoryAction(StrEnum):
    """Mutation recorded by a history entry."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


# --- Base model ---


class FHIRBase(BaseModel):
    """Base model with common configuration for all Pydantic models in the service."""

    model_config = {
        "populate_by_name": True,
        "protected_namespaces": (),
    }
