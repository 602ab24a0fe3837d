"""Results declaration ORM models.

DeclarationState is a single durable row (``id = 1``) so every service
instance reads and writes the same flag.  Challenges and one-time codes are
ephemeral and carry absolute expiry timestamps.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tally_api.models.base import Base, UUIDMixin

DECLARATION_STATE_ID = 1


class ChallengeState(enum.StrEnum):
    """Linear progress of a declaration challenge."""

    LOCKED = "locked"
    PASSWORD_OK = "password_ok"
    CODE1_SENT = "code1_sent"
    CODE1_VERIFIED = "code1_verified"
    CODE2_SENT = "code2_sent"
    CODE2_VERIFIED = "code2_verified"
    TOKEN_ISSUED = "token_issued"
    EXPIRED = "expired"


class DeclarationState(Base):
    """Whether results are visible on the public page."""

    __tablename__ = "declaration_state"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=DECLARATION_STATE_ID)
    declared: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    declared_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    declared_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (CheckConstraint(f"id = {DECLARATION_STATE_ID}", name="ck_declaration_state_singleton"),)


class DeclarationChallenge(Base, UUIDMixin):
    """One attempt at the password + two-code approval flow."""

    __tablename__ = "declaration_challenges"

    state: Mapped[str] = mapped_column(String(20), nullable=False, default=ChallengeState.LOCKED.value)
    started_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    failed_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    code1_verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    code2_verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    token_jti: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True)
    token_issued_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    codes: Mapped[list["OneTimeCode"]] = relationship(
        back_populates="challenge", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        CheckConstraint(
            "state IN ('locked', 'password_ok', 'code1_sent', 'code1_verified', "
            "'code2_sent', 'code2_verified', 'token_issued', 'expired')",
            name="ck_declaration_challenges_state",
        ),
        Index("idx_declaration_challenges_expires_at", "expires_at"),
    )


class OneTimeCode(Base, UUIDMixin):
    """A six-digit code sent to one principal; stored only as a digest."""

    __tablename__ = "one_time_codes"

    challenge_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("declaration_challenges.id", ondelete="CASCADE"),
        nullable=False,
    )
    purpose: Mapped[str] = mapped_column(String(50), nullable=False)
    principal: Mapped[int] = mapped_column(Integer, nullable=False)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    code_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    challenge: Mapped[DeclarationChallenge] = relationship(back_populates="codes")

    __table_args__ = (
        CheckConstraint("principal IN (1, 2)", name="ck_one_time_codes_principal"),
        Index("idx_one_time_codes_phone_purpose", "phone", "purpose"),
        Index("idx_one_time_codes_challenge_principal", "challenge_id", "principal"),
        Index("idx_one_time_codes_expires_at", "expires_at"),
    )
