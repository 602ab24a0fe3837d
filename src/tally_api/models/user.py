"""User model for admin authentication and role-based access control."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from tally_api.models.base import Base, UUIDMixin


class User(Base, UUIDMixin):
    """Authenticated admin, analyst or viewer.

    ``is_offline_vote_admin`` marks the admins who record paper ballots.
    Those admins may never merge offline ballots into the tally.
    """

    __tablename__ = "users"

    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    is_offline_vote_admin: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def can_merge_offline_votes(self) -> bool:
        """Separation of duties: admins who record offline ballots cannot commit them."""
        return self.is_active and self.role == "admin" and not self.is_offline_vote_admin
