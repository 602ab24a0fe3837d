"""Offline ballot API endpoints.

POST /offline-ballots/{category}: record a paper ballot (offline-vote admins)
GET /offline-ballots/{category}/backlog: merged vs pending counts (admins)
POST /offline-ballots/{category}/merge: merge pending ballots (admins who do not enter ballots)
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from tally_api.core.dependencies import get_async_session, require_offline_vote_admin, require_role
from tally_api.core.errors import ServiceError
from tally_api.lib.tally import ElectionCategory
from tally_api.models.user import User
from tally_api.schemas.ballot import (
    MergeBacklogResponse,
    MergeResult,
    OfflineBallotCreateRequest,
    OfflineBallotCreateResponse,
)
from tally_api.services import ballot_service, reconciliation_service

offline_ballots_router = APIRouter(prefix="/offline-ballots", tags=["offline-ballots"])


@offline_ballots_router.post("/{category}", response_model=OfflineBallotCreateResponse, status_code=201)
async def record_offline_ballot(
    category: ElectionCategory,
    request: OfflineBallotCreateRequest,
    current_user: Annotated[User, Depends(require_offline_vote_admin)],
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> OfflineBallotCreateResponse:
    """Record the selections of one paper ballot."""
    try:
        return await ballot_service.record_offline_ballots(
            session,
            category=category,
            voter_code=request.voter_code,
            candidate_ids=request.candidate_ids,
            recorded_by=current_user,
            notes=request.notes,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e


@offline_ballots_router.get("/{category}/backlog", response_model=MergeBacklogResponse)
async def get_merge_backlog(
    category: ElectionCategory,
    _current_user: Annotated[User, Depends(require_role("admin"))],
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> MergeBacklogResponse:
    """Count merged and pending offline ballots."""
    return await ballot_service.get_merge_backlog(session, category)


@offline_ballots_router.post("/{category}/merge", response_model=MergeResult)
async def merge_offline_ballots(
    category: ElectionCategory,
    current_user: Annotated[User, Depends(require_role("admin"))],
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> MergeResult:
    """Merge every pending offline ballot of a category into the tally.

    Safe to retry: a repeat call merges nothing and returns zero counts.
    """
    try:
        return await reconciliation_service.merge_offline_ballots(
            session,
            category,
            authorized=current_user.can_merge_offline_votes,
            actor_id=current_user.id,
            actor_username=current_user.username,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
