"""Candidate ORM model (owned by candidate management, read-only here)."""

import uuid

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tally_api.models.base import Base, TimestampMixin, UUIDMixin
from tally_api.models.zone import Zone


class Candidate(Base, UUIDMixin, TimestampMixin):
    """A nominee or the zone's single NONE_OF_ABOVE placeholder."""

    __tablename__ = "candidates"

    zone_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("zones.id", ondelete="RESTRICT"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False, server_default="nominee")

    zone: Mapped[Zone] = relationship(back_populates="candidates")

    __table_args__ = (
        CheckConstraint("kind IN ('nominee', 'none_of_above')", name="ck_candidates_kind"),
        Index("idx_candidates_zone_id", "zone_id"),
        Index(
            "uq_candidates_zone_none_of_above",
            "zone_id",
            unique=True,
            postgresql_where=text("kind = 'none_of_above'"),
            sqlite_where=text("kind = 'none_of_above'"),
        ),
    )
