"""Audit logging service.

Records an immutable trail of merges, offline ballot entry and declaration
events.
"""

import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tally_api.models.audit_log import AuditLog

# Sentinel actor for events with no authenticated user (declare/revoke by token, CLI)
SYSTEM_USER_ID = uuid.UUID(int=0)
SYSTEM_USERNAME = "system"


async def log_action(
    session: AsyncSession,
    *,
    action: str,
    resource_type: str,
    user_id: uuid.UUID | None = None,
    username: str | None = None,
    resource_ids: list[str] | None = None,
    request_ip: str | None = None,
    request_endpoint: str | None = None,
    request_metadata: dict | None = None,
) -> AuditLog:
    """Create an immutable audit log record.

    Args:
        session: The database session.
        action: The action performed (merge, record_offline, challenge_start,
            token_issue, declare, revoke).
        resource_type: The resource type affected.
        user_id: The acting user's ID; defaults to the system actor.
        username: The acting user's username; defaults to the system actor.
        resource_ids: List of affected resource IDs.
        request_ip: The request IP address.
        request_endpoint: The API endpoint called.
        request_metadata: Additional context metadata.

    Returns:
        The created AuditLog record.
    """
    audit_log = AuditLog(
        user_id=user_id or SYSTEM_USER_ID,
        username=username or SYSTEM_USERNAME,
        action=action,
        resource_type=resource_type,
        resource_ids=resource_ids,
        request_ip=request_ip,
        request_endpoint=request_endpoint,
        request_metadata=request_metadata,
    )
    session.add(audit_log)
    await session.commit()
    return audit_log


async def query_audit_logs(
    session: AsyncSession,
    *,
    action: str | None = None,
    resource_type: str | None = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[AuditLog], int]:
    """Query audit logs newest first with optional filters.

    Returns:
        Tuple of (audit log records, total count).
    """
    query = select(AuditLog)
    count_query = select(func.count(AuditLog.id))

    if action is not None:
        query = query.where(AuditLog.action == action)
        count_query = count_query.where(AuditLog.action == action)
    if resource_type is not None:
        query = query.where(AuditLog.resource_type == resource_type)
        count_query = count_query.where(AuditLog.resource_type == resource_type)

    total = (await session.execute(count_query)).scalar_one()

    offset = (page - 1) * page_size
    query = query.order_by(AuditLog.timestamp.desc()).offset(offset).limit(page_size)
    result = await session.execute(query)
    return list(result.scalars().all()), total
