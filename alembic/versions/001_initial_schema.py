"""Initial schema: version state, resource history, organizations.

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # -- Versioning --
    op.create_table(
        "resource_versions",
        sa.Column("resource_type", sa.String(64), primary_key=True),
        sa.Column("resource_id", sa.String(64), primary_key=True),
        sa.Column("current_version", sa.Integer, nullable=False),
        sa.Column("deleted", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False),
    )

    # -- History (APPEND-ONLY) --
    op.create_table(
        "resource_history",
        sa.Column("row_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("resource_type", sa.String(64), nullable=False),
        sa.Column("resource_id", sa.String(64), nullable=False),
        sa.Column("version_id", sa.Integer, nullable=False),
        sa.Column("action", sa.String(10), nullable=False),
        sa.Column("snapshot", JSONB, nullable=False),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "resource_type", "resource_id", "version_id",
            name="uq_resource_history_version",
        ),
    )
    op.create_index(
        "ix_resource_history_recorded_at", "resource_history", ["recorded_at"],
    )
    op.create_index(
        "ix_resource_history_type_recorded", "resource_history",
        ["resource_type", "recorded_at"],
    )

    # -- Resources --
    op.create_table(
        "organizations",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("type_system", sa.String(255), nullable=True),
        sa.Column("type_code", sa.String(64), nullable=True),
        sa.Column("identifier_system", sa.String(255), nullable=True),
        sa.Column("identifier_value", sa.String(128), nullable=True),
        sa.Column("phone", sa.String(64), nullable=True),
        sa.Column("address_city", sa.String(128), nullable=True),
        sa.Column("partof_id", sa.String(64), nullable=True),
        sa.Column("version_id", sa.Integer, nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_organizations_name", "organizations", ["name"])


def downgrade() -> None:
    op.drop_table("organizations")
    op.drop_table("resource_history")
    op.drop_table("resource_versions")
