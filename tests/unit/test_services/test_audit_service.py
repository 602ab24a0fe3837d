"""Tests for the audit logging service module."""

import uuid
from unittest.mock import AsyncMock

import pytest

from tally_api.services.audit_service import SYSTEM_USER_ID, SYSTEM_USERNAME, log_action, query_audit_logs


class TestLogAction:
    """Tests for log_action."""

    @pytest.mark.asyncio
    async def test_creates_audit_log_record(self) -> None:
        session = AsyncMock()
        user_id = uuid.uuid4()

        await log_action(
            session,
            user_id=user_id,
            username="admin",
            action="merge",
            resource_type="offline_ballot",
            request_metadata={"category": "karobari"},
        )

        session.add.assert_called_once()
        session.commit.assert_awaited_once()
        added = session.add.call_args[0][0]
        assert added.user_id == user_id
        assert added.username == "admin"
        assert added.action == "merge"
        assert added.request_metadata == {"category": "karobari"}

    @pytest.mark.asyncio
    async def test_defaults_to_system_actor(self) -> None:
        session = AsyncMock()

        await log_action(session, action="declare", resource_type="declaration_state")

        added = session.add.call_args[0][0]
        assert added.user_id == SYSTEM_USER_ID
        assert added.username == SYSTEM_USERNAME


class TestQueryAuditLogs:
    """Tests for query_audit_logs against the database."""

    @pytest.mark.asyncio
    async def test_filters_by_action(self, async_session) -> None:
        await log_action(async_session, action="merge", resource_type="offline_ballot")
        await log_action(async_session, action="declare", resource_type="declaration_state")
        await log_action(async_session, action="merge", resource_type="offline_ballot")

        logs, total = await query_audit_logs(async_session, action="merge")

        assert total == 2
        assert {log.action for log in logs} == {"merge"}

    @pytest.mark.asyncio
    async def test_pagination(self, async_session) -> None:
        for _ in range(3):
            await log_action(async_session, action="merge", resource_type="offline_ballot")

        logs, total = await query_audit_logs(async_session, page=2, page_size=2)

        assert total == 3
        assert len(logs) == 1
