"""Audit trail API endpoint.

GET /audit lists merges, paper ballot entry, account grants and
declaration events for administrators.
"""

import math
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tally_api.core.dependencies import get_async_session, require_role
from tally_api.models.user import User
from tally_api.schemas.audit import AuditLogResponse, PaginatedAuditLogResponse
from tally_api.schemas.common import PaginationMeta, PaginationParams
from tally_api.services import audit_service

audit_router = APIRouter(prefix="/audit", tags=["audit"])


@audit_router.get("", response_model=PaginatedAuditLogResponse)
async def list_audit_logs(
    _current_user: Annotated[User, Depends(require_role("admin"))],
    session: Annotated[AsyncSession, Depends(get_async_session)],
    pagination: Annotated[PaginationParams, Depends()],
    action: Annotated[str | None, Query(max_length=30, description="Only this action")] = None,
    resource_type: Annotated[str | None, Query(max_length=50, description="Only this resource type")] = None,
) -> PaginatedAuditLogResponse:
    """List audit records newest first (admin only)."""
    logs, total = await audit_service.query_audit_logs(
        session,
        action=action,
        resource_type=resource_type,
        page=pagination.page,
        page_size=pagination.page_size,
    )
    return PaginatedAuditLogResponse(
        items=[AuditLogResponse.model_validate(log) for log in logs],
        pagination=PaginationMeta(
            total=total,
            page=pagination.page,
            page_size=pagination.page_size,
            total_pages=max(1, math.ceil(total / pagination.page_size)),
        ),
    )
