"""Zone registry ORM model.

Zones are reference data owned by the registration system and read-only to
this service during an election cycle.
"""

from sqlalchemy import Boolean, CheckConstraint, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tally_api.models.base import Base, TimestampMixin, UUIDMixin

CATEGORY_CHECK = "election_category IN ('yuva_pankh', 'karobari', 'trustees')"


class Zone(Base, UUIDMixin, TimestampMixin):
    """A voting constituency with a fixed seat count for one election category."""

    __tablename__ = "zones"

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    election_category: Mapped[str] = mapped_column(String(20), nullable=False)
    seats: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=999, server_default="999")

    candidates: Mapped[list["Candidate"]] = relationship(back_populates="zone")  # noqa: F821

    __table_args__ = (
        UniqueConstraint("election_category", "code", name="uq_zones_category_code"),
        CheckConstraint("seats >= 0", name="ck_zones_seats_non_negative"),
        CheckConstraint(CATEGORY_CHECK, name="ck_zones_election_category"),
        Index("idx_zones_category_order", "election_category", "display_order"),
    )
