"""Results declaration: singleton state, challenges and one-time codes.

Revision ID: 004
Revises: 003
Create Date: 2026-10-08
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision: str = "004"
down_revision: str | None = "003"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "declaration_state",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("declared", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("declared_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("declared_by", UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("id = 1", name="ck_declaration_state_singleton"),
    )
    op.execute("INSERT INTO declaration_state (id, declared) VALUES (1, false)")

    op.create_table(
        "declaration_challenges",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("state", sa.String(20), nullable=False),
        sa.Column("started_by", UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("failed_attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("code1_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("code2_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("token_jti", sa.String(64), nullable=True, unique=True),
        sa.Column("token_issued_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "state IN ('locked', 'password_ok', 'code1_sent', 'code1_verified', "
            "'code2_sent', 'code2_verified', 'token_issued', 'expired')",
            name="ck_declaration_challenges_state",
        ),
    )
    op.create_index("idx_declaration_challenges_expires_at", "declaration_challenges", ["expires_at"])

    op.create_table(
        "one_time_codes",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "challenge_id",
            UUID(as_uuid=True),
            sa.ForeignKey("declaration_challenges.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("purpose", sa.String(50), nullable=False),
        sa.Column("principal", sa.Integer, nullable=False),
        sa.Column("phone", sa.String(20), nullable=False),
        sa.Column("code_hash", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("principal IN (1, 2)", name="ck_one_time_codes_principal"),
    )
    op.create_index("idx_one_time_codes_phone_purpose", "one_time_codes", ["phone", "purpose"])
    op.create_index("idx_one_time_codes_challenge_principal", "one_time_codes", ["challenge_id", "principal"])
    op.create_index("idx_one_time_codes_expires_at", "one_time_codes", ["expires_at"])


def downgrade() -> None:
    op.drop_table("one_time_codes")
    op.drop_table("declaration_challenges")
    op.drop_table("declaration_state")
