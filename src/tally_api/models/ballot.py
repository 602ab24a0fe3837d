"""Ballot store ORM models.

One row per selection: a voter filling three seats in a zone produces three
rows.  Both tables are append-only; the only mutation this service performs
is the one-way ``merged`` flip on offline ballots.
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from tally_api.models.base import Base, UUIDMixin


class OnlineBallot(Base, UUIDMixin):
    """A selection cast through the digital voting flow."""

    __tablename__ = "online_ballots"

    voter_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("voters.id", ondelete="RESTRICT"), nullable=False
    )
    zone_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("zones.id", ondelete="RESTRICT"), nullable=False
    )
    candidate_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("candidates.id", ondelete="RESTRICT"), nullable=False
    )
    cast_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("voter_id", "zone_id", "candidate_id", name="uq_online_ballot_selection"),
        Index("idx_online_ballots_zone_candidate", "zone_id", "candidate_id"),
    )


class OfflineBallot(Base, UUIDMixin):
    """A selection transcribed from a paper ballot by an offline-vote admin."""

    __tablename__ = "offline_ballots"

    voter_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("voters.id", ondelete="RESTRICT"), nullable=False
    )
    zone_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("zones.id", ondelete="RESTRICT"), nullable=False
    )
    candidate_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("candidates.id", ondelete="RESTRICT"), nullable=False
    )
    recorded_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    merged: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    merged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("voter_id", "zone_id", "candidate_id", name="uq_offline_ballot_selection"),
        Index("idx_offline_ballots_zone_candidate", "zone_id", "candidate_id"),
        Index("idx_offline_ballots_merged", "merged"),
    )
