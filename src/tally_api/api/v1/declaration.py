"""Results declaration API endpoints.

POST /declaration/challenges: check the secret, send principal 1's code
POST /declaration/challenges/{id}/codes: submit a principal's code
POST /declaration/challenges/{id}/resend: send a fresh code
POST /declaration/challenges/{id}/token: mint the declaration token
POST /declaration/declare, POST /declaration/revoke: token-gated flag flips
GET /declaration/status: public flag
"""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from tally_api.core.config import Settings, get_settings
from tally_api.core.dependencies import get_async_session, get_notifier_dependency, require_role
from tally_api.core.errors import ServiceError
from tally_api.lib.notifier import BaseNotifier
from tally_api.models.user import User
from tally_api.schemas.declaration import (
    ChallengeResponse,
    ChallengeStartRequest,
    CodeSubmitRequest,
    CodeVerificationResult,
    DeclarationActionRequest,
    DeclarationActionResponse,
    DeclarationStatusResponse,
    DeclarationTokenResponse,
)
from tally_api.services import declaration_gate_service, declaration_service

declaration_router = APIRouter(prefix="/declaration", tags=["declaration"])


# --- Challenge workflow (admins) ---


@declaration_router.post("/challenges", response_model=ChallengeResponse, status_code=201)
async def start_challenge(
    request: ChallengeStartRequest,
    current_user: Annotated[User, Depends(require_role("admin"))],
    session: Annotated[AsyncSession, Depends(get_async_session)],
    notifier: Annotated[BaseNotifier, Depends(get_notifier_dependency)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> ChallengeResponse:
    """Check the results secret and send the first principal's code."""
    try:
        challenge = await declaration_service.start_challenge(
            session, request.secret, current_user, notifier=notifier, settings=settings
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return declaration_service.to_response(challenge)


@declaration_router.post("/challenges/{challenge_id}/codes", response_model=CodeVerificationResult)
async def submit_code(
    challenge_id: uuid.UUID,
    request: CodeSubmitRequest,
    _current_user: Annotated[User, Depends(require_role("admin"))],
    session: Annotated[AsyncSession, Depends(get_async_session)],
    notifier: Annotated[BaseNotifier, Depends(get_notifier_dependency)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> CodeVerificationResult:
    """Verify a principal's code. A rejected code is a 200 with ``accepted=false``."""
    try:
        return await declaration_service.submit_code(
            session, challenge_id, request.principal, request.code, notifier=notifier, settings=settings
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e


@declaration_router.post("/challenges/{challenge_id}/resend", response_model=ChallengeResponse)
async def resend_code(
    challenge_id: uuid.UUID,
    _current_user: Annotated[User, Depends(require_role("admin"))],
    session: Annotated[AsyncSession, Depends(get_async_session)],
    notifier: Annotated[BaseNotifier, Depends(get_notifier_dependency)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> ChallengeResponse:
    """Send a fresh code to the principal whose code is outstanding."""
    try:
        challenge = await declaration_service.resend_code(session, challenge_id, notifier=notifier, settings=settings)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return declaration_service.to_response(challenge)


@declaration_router.post("/challenges/{challenge_id}/token", response_model=DeclarationTokenResponse)
async def issue_token(
    challenge_id: uuid.UUID,
    current_user: Annotated[User, Depends(require_role("admin"))],
    session: Annotated[AsyncSession, Depends(get_async_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> DeclarationTokenResponse:
    """Mint the declaration token once both principals are verified."""
    try:
        return await declaration_service.issue_token(session, challenge_id, actor=current_user, settings=settings)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e


# --- Gate (declaration token) ---


@declaration_router.post("/declare", response_model=DeclarationActionResponse)
async def declare_results(
    request: DeclarationActionRequest,
    session: Annotated[AsyncSession, Depends(get_async_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> DeclarationActionResponse:
    """Publish results. Repeating the call is a no-op."""
    try:
        outcome = await declaration_gate_service.declare(session, request.declaration_token, settings)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return DeclarationActionResponse(
        declared=outcome.declared,
        declared_at=outcome.declared_at,
        already_satisfied=outcome.already_satisfied,
        message="Results were already declared" if outcome.already_satisfied else "Results declared",
    )


@declaration_router.post("/revoke", response_model=DeclarationActionResponse)
async def revoke_results(
    request: DeclarationActionRequest,
    session: Annotated[AsyncSession, Depends(get_async_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> DeclarationActionResponse:
    """Hide results again. Repeating the call is a no-op."""
    try:
        outcome = await declaration_gate_service.revoke(session, request.declaration_token, settings)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
    return DeclarationActionResponse(
        declared=outcome.declared,
        declared_at=outcome.declared_at,
        already_satisfied=outcome.already_satisfied,
        message="Results were not declared" if outcome.already_satisfied else "Results declaration revoked",
    )


# --- Public ---


@declaration_router.get("/status", response_model=DeclarationStatusResponse)
async def get_status(
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> DeclarationStatusResponse:
    """Whether results are public. No authentication required."""
    outcome = await declaration_gate_service.get_status(session)
    return DeclarationStatusResponse(declared=outcome.declared, declared_at=outcome.declared_at)
