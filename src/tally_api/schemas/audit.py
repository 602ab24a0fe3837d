"""Audit trail Pydantic v2 schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from tally_api.schemas.common import PaginationMeta


class AuditLogResponse(BaseModel):
    """One recorded action."""

    id: UUID
    timestamp: datetime
    user_id: UUID
    username: str
    action: str
    resource_type: str
    resource_ids: list[str] | None = None
    request_ip: str | None = None
    request_endpoint: str | None = None
    request_metadata: dict | None = None

    model_config = {"from_attributes": True}


class PaginatedAuditLogResponse(BaseModel):
    """Page of audit records, newest first."""

    items: list[AuditLogResponse]
    pagination: PaginationMeta
