"""Voter roll and per-category zone assignments (registration collaborator data)."""

import uuid

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from tally_api.models.base import Base, TimestampMixin, UUIDMixin
from tally_api.models.zone import CATEGORY_CHECK


class Voter(Base, UUIDMixin, TimestampMixin):
    """A registered voter identified by the printed voter code (VID)."""

    __tablename__ = "voters"

    voter_code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")


class VoterZoneAssignment(Base, UUIDMixin):
    """The zone a voter votes in for one election category."""

    __tablename__ = "voter_zone_assignments"

    voter_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("voters.id", ondelete="CASCADE"),
        nullable=False,
    )
    election_category: Mapped[str] = mapped_column(String(20), nullable=False)
    zone_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("zones.id", ondelete="RESTRICT"),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("voter_id", "election_category", name="uq_voter_zone_assignment"),
        CheckConstraint(CATEGORY_CHECK, name="ck_voter_zone_assignment_category"),
        Index("idx_voter_zone_assignments_zone_id", "zone_id"),
    )
