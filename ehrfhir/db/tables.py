"""SQLAlchemy ORM table models for the EHR FHIR service.

Uses FlexJSON (JSONB on Postgres, JSON on SQLite) for resource snapshots.

Categories:
- VERSIONING: ResourceVersionRow (one row per logical resource, compare-and-swap
              target), ResourceHistoryRow (append-only, never updated)
- RESOURCES: OrganizationRow (primary resource row owned by its service)
"""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from ehrfhir.db.session import Base

# JSONB on PostgreSQL, plain JSON on SQLite (for tests)
FlexJSON = JSONB().with_variant(JSON(), "sqlite")


# ---------------------------------------------------------------------------
# Versioning
# ---------------------------------------------------------------------------


class ResourceVersionRow(Base):
    """Current version of one logical resource.

    current_version only moves through a conditional UPDATE keyed on its
    previous value, never by read-then-write.
    """

    __tablename__ = "resource_versions"

    resource_type: Mapped[str] = mapped_column(String(64), primary_key=True)
    resource_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    current_version: Mapped[int] = mapped_column(Integer, nullable=False)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class ResourceHistoryRow(Base):
    """Append-only resource snapshot. Surrogate PK (row_id)."""

    __tablename__ = "resource_history"
    __table_args__ = (
        UniqueConstraint(
            "resource_type", "resource_id", "version_id",
            name="uq_resource_history_version",
        ),
        Index("ix_resource_history_type_recorded", "resource_type", "recorded_at"),
    )

    row_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    resource_type: Mapped[str] = mapped_column(String(64), nullable=False)
    resource_id: Mapped[str] = mapped_column(String(64), nullable=False)
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)
    action: Mapped[str] = mapped_column(String(10), nullable=False)
    snapshot = mapped_column(FlexJSON, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True,
    )


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------


class OrganizationRow(Base):
    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    type_system: Mapped[str | None] = mapped_column(String(255), nullable=True)
    type_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    identifier_system: Mapped[str | None] = mapped_column(String(255), nullable=True)
    identifier_value: Mapped[str | None] = mapped_column(String(128), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    address_city: Mapped[str | None] = mapped_column(String(128), nullable=True)
    partof_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    version_id: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
