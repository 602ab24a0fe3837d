"""Pydantic v2 schemas for the results declaration workflow."""

import enum
import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from tally_api.models.declaration import ChallengeState


class CodeRejection(enum.StrEnum):
    """Why a submitted one-time code did not advance the challenge."""

    INVALID_CODE = "invalid_code"
    EXPIRED = "expired"
    TOO_MANY_ATTEMPTS = "too_many_attempts"


class ChallengeStartRequest(BaseModel):
    """Shared results secret that unlocks a challenge."""

    secret: str = Field(min_length=1)


class CodeSubmitRequest(BaseModel):
    """One-time code entered for a principal."""

    principal: Literal[1, 2]
    code: str = Field(min_length=1, max_length=12)


class ChallengeResponse(BaseModel):
    """Current state of a declaration challenge."""

    challenge_id: uuid.UUID
    state: ChallengeState
    expires_at: datetime
    next_principal: int | None = Field(default=None, description="Principal whose code is expected next")


class CodeVerificationResult(BaseModel):
    """Structured code check outcome; mismatches are reported here, never raised."""

    accepted: bool
    state: ChallengeState
    reason: CodeRejection | None = None
    message: str


class DeclarationTokenResponse(BaseModel):
    """Capability token for declare/revoke."""

    declaration_token: str
    token_type: str = "declaration"
    expires_in: int = Field(description="Token lifetime in seconds")


class DeclarationActionRequest(BaseModel):
    """Body of declare and revoke calls."""

    declaration_token: str = Field(min_length=1)


class DeclarationStatusResponse(BaseModel):
    """Public declaration flag."""

    declared: bool
    declared_at: datetime | None = None


class DeclarationActionResponse(DeclarationStatusResponse):
    """Declare/revoke outcome; ``already_satisfied`` marks a no-op repeat."""

    already_satisfied: bool
    message: str
