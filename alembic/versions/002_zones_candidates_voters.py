"""Zone registry: zones, candidates, voters and voter zone assignments.

Revision ID: 002
Revises: 001
Create Date: 2026-10-05
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision: str = "002"
down_revision: str | None = "001"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_CATEGORY_CHECK = "election_category IN ('yuva_pankh', 'karobari', 'trustees')"


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "zones",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("election_category", sa.String(20), nullable=False),
        sa.Column("seats", sa.Integer, nullable=False, server_default="1"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("display_order", sa.Integer, nullable=False, server_default="999"),
        *_timestamps(),
        sa.UniqueConstraint("election_category", "code", name="uq_zones_category_code"),
        sa.CheckConstraint("seats >= 0", name="ck_zones_seats_non_negative"),
        sa.CheckConstraint(_CATEGORY_CHECK, name="ck_zones_election_category"),
    )
    op.create_index("idx_zones_category_order", "zones", ["election_category", "display_order"])

    op.create_table(
        "candidates",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("zone_id", UUID(as_uuid=True), sa.ForeignKey("zones.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("kind", sa.String(20), nullable=False, server_default="nominee"),
        *_timestamps(),
        sa.CheckConstraint("kind IN ('nominee', 'none_of_above')", name="ck_candidates_kind"),
    )
    op.create_index("idx_candidates_zone_id", "candidates", ["zone_id"])
    # One NONE_OF_ABOVE per zone
    op.create_index(
        "uq_candidates_zone_none_of_above",
        "candidates",
        ["zone_id"],
        unique=True,
        postgresql_where=sa.text("kind = 'none_of_above'"),
    )

    op.create_table(
        "voters",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("voter_code", sa.String(50), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        *_timestamps(),
    )
    op.create_index("ix_voters_voter_code", "voters", ["voter_code"], unique=True)

    op.create_table(
        "voter_zone_assignments",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("voter_id", UUID(as_uuid=True), sa.ForeignKey("voters.id", ondelete="CASCADE"), nullable=False),
        sa.Column("election_category", sa.String(20), nullable=False),
        sa.Column("zone_id", UUID(as_uuid=True), sa.ForeignKey("zones.id", ondelete="RESTRICT"), nullable=False),
        sa.UniqueConstraint("voter_id", "election_category", name="uq_voter_zone_assignment"),
        sa.CheckConstraint(_CATEGORY_CHECK, name="ck_voter_zone_assignment_category"),
    )
    op.create_index("idx_voter_zone_assignments_zone_id", "voter_zone_assignments", ["zone_id"])


def downgrade() -> None:
    op.drop_table("voter_zone_assignments")
    op.drop_table("voters")
    op.drop_table("candidates")
    op.drop_table("zones")
