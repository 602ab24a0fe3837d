"""Ballot store: online_ballots and offline_ballots tables.

Revision ID: 003
Revises: 002
Create Date: 2026-10-06
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision: str = "003"
down_revision: str | None = "002"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _selection_columns() -> list[sa.Column]:
    return [
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("voter_id", UUID(as_uuid=True), sa.ForeignKey("voters.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("zone_id", UUID(as_uuid=True), sa.ForeignKey("zones.id", ondelete="RESTRICT"), nullable=False),
        sa.Column(
            "candidate_id",
            UUID(as_uuid=True),
            sa.ForeignKey("candidates.id", ondelete="RESTRICT"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "online_ballots",
        *_selection_columns(),
        sa.Column("cast_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("voter_id", "zone_id", "candidate_id", name="uq_online_ballot_selection"),
    )
    op.create_index("idx_online_ballots_zone_candidate", "online_ballots", ["zone_id", "candidate_id"])

    op.create_table(
        "offline_ballots",
        *_selection_columns(),
        sa.Column("recorded_by", UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("recorded_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("merged", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("merged_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("voter_id", "zone_id", "candidate_id", name="uq_offline_ballot_selection"),
    )
    op.create_index("idx_offline_ballots_zone_candidate", "offline_ballots", ["zone_id", "candidate_id"])
    op.create_index("idx_offline_ballots_merged", "offline_ballots", ["merged"])


def downgrade() -> None:
    op.drop_table("offline_ballots")
    op.drop_table("online_ballots")
