"""Tally API endpoints.

GET /tally/{category}: every active zone of a category
GET /tally/{category}/winners: flat winners list
GET /tally/{category}/zones/{zone_id}: one zone
"""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tally_api.core.dependencies import get_async_session, require_role
from tally_api.core.errors import ServiceError
from tally_api.lib.tally import ElectionCategory
from tally_api.models.user import User
from tally_api.schemas.tally import CategoryTallyResponse, WinnersListResponse, ZoneTallyView
from tally_api.services import tally_service

tally_router = APIRouter(prefix="/tally", tags=["tally"])

ViewQuery = Annotated[str, Query(description="online, offline or merged")]


@tally_router.get("/{category}", response_model=CategoryTallyResponse)
async def get_category_tally(
    category: ElectionCategory,
    _current_user: Annotated[User, Depends(require_role("admin", "analyst"))],
    session: Annotated[AsyncSession, Depends(get_async_session)],
    view: ViewQuery = "merged",
) -> CategoryTallyResponse:
    """Rank candidates in every active zone of a category."""
    try:
        return await tally_service.compute_category_tally(session, category, view)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e


@tally_router.get("/{category}/winners", response_model=WinnersListResponse)
async def get_category_winners(
    category: ElectionCategory,
    _current_user: Annotated[User, Depends(require_role("admin", "analyst"))],
    session: Annotated[AsyncSession, Depends(get_async_session)],
    view: ViewQuery = "merged",
) -> WinnersListResponse:
    """List the winners of every active zone in a category."""
    try:
        return await tally_service.list_category_winners(session, category, view)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e


@tally_router.get("/{category}/zones/{zone_id}", response_model=ZoneTallyView)
async def get_zone_tally(
    category: ElectionCategory,
    zone_id: uuid.UUID,
    _current_user: Annotated[User, Depends(require_role("admin", "analyst"))],
    session: Annotated[AsyncSession, Depends(get_async_session)],
    view: ViewQuery = "merged",
) -> ZoneTallyView:
    """Rank a single zone's candidates and report its turnout."""
    try:
        return await tally_service.compute_zone_tally(session, zone_id, category, view)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e
