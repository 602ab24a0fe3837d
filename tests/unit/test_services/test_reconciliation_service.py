"""Unit tests for offline ballot reconciliation."""

import asyncio
import re
from collections.abc import AsyncGenerator
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import event, func, select
from sqlalchemy.exc import DBAPIError, OperationalError, ProgrammingError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from tally_api.core.errors import PermissionDeniedError, UnavailableError
from tally_api.lib.tally import ElectionCategory
from tally_api.models.audit_log import AuditLog
from tally_api.models.ballot import OfflineBallot
from tally_api.models.base import Base
from tally_api.schemas.ballot import MergeResult
from tally_api.services import reconciliation_service, tally_service


class TestMergeOfflineBallots:
    """Tests for merge_offline_ballots()."""

    @pytest.mark.asyncio
    async def test_merges_every_pending_row(self, zone_factory, cast_ballots, sample_user, async_session) -> None:
        seeded = await zone_factory(seats=2, candidate_count=2, voter_count=3)
        a, b = seeded.candidates
        v = seeded.voters
        await cast_ballots(seeded, [(v[0], a), (v[0], b), (v[1], a)], offline=True)

        result = await reconciliation_service.merge_offline_ballots(
            async_session,
            ElectionCategory.KAROBARI,
            authorized=sample_user.can_merge_offline_votes,
            actor_id=sample_user.id,
            actor_username=sample_user.username,
        )

        assert (result.merged_count, result.voter_count) == (3, 2)
        async_session.expire_all()
        rows = (await async_session.execute(select(OfflineBallot))).scalars().all()
        assert all(r.merged for r in rows)
        assert len({r.merged_at for r in rows}) == 1
        audit = (await async_session.execute(select(AuditLog).where(AuditLog.action == "merge"))).scalars().one()
        assert audit.request_metadata["merged_count"] == 3

    @pytest.mark.asyncio
    async def test_second_merge_is_a_no_op(self, zone_factory, cast_ballots, async_session) -> None:
        seeded = await zone_factory(voter_count=2)
        await cast_ballots(seeded, [(seeded.voters[0], seeded.candidates[0])], offline=True)

        first = await reconciliation_service.merge_offline_ballots(
            async_session, ElectionCategory.KAROBARI, authorized=True
        )
        second = await reconciliation_service.merge_offline_ballots(
            async_session, ElectionCategory.KAROBARI, authorized=True
        )

        assert first.merged_count == 1
        assert second == MergeResult(category=ElectionCategory.KAROBARI, merged_count=0, voter_count=0)
        assert second.already_satisfied
        merges = await async_session.execute(select(func.count(AuditLog.id)).where(AuditLog.action == "merge"))
        assert merges.scalar_one() == 1

    @pytest.mark.asyncio
    async def test_only_the_requested_category(self, zone_factory, cast_ballots, async_session) -> None:
        karobari = await zone_factory()
        trustees = await zone_factory(category="trustees")
        await cast_ballots(karobari, [(karobari.voters[0], karobari.candidates[0])], offline=True)
        await cast_ballots(trustees, [(trustees.voters[0], trustees.candidates[0])], offline=True)

        result = await reconciliation_service.merge_offline_ballots(
            async_session, ElectionCategory.TRUSTEES, authorized=True
        )

        assert result.merged_count == 1
        pending = await async_session.execute(select(OfflineBallot).where(OfflineBallot.merged.is_(False)))
        assert [r.zone_id for r in pending.scalars().all()] == [karobari.zone.id]

    @pytest.mark.asyncio
    async def test_merge_preserves_merged_view_totals(self, zone_factory, cast_ballots, async_session) -> None:
        seeded = await zone_factory(seats=1, candidate_count=2, voter_count=4)
        a, b = seeded.candidates
        v = seeded.voters
        await cast_ballots(seeded, [(v[0], a), (v[1], b)])
        await cast_ballots(seeded, [(v[2], a), (v[3], a)], offline=True)

        before = await tally_service.compute_zone_tally(async_session, seeded.zone.id, "karobari", "merged")
        await reconciliation_service.merge_offline_ballots(async_session, ElectionCategory.KAROBARI, authorized=True)
        after = await tally_service.compute_zone_tally(async_session, seeded.zone.id, "karobari", "merged")

        assert [(r.candidate_id, r.total_votes) for r in before.ranked] == [
            (r.candidate_id, r.total_votes) for r in after.ranked
        ]
        assert after.ranked[0].total_votes == 3

    @pytest.mark.asyncio
    async def test_offline_vote_admin_cannot_merge(
        self, zone_factory, cast_ballots, offline_admin, async_session
    ) -> None:
        seeded = await zone_factory()
        await cast_ballots(seeded, [(seeded.voters[0], seeded.candidates[0])], offline=True)

        with pytest.raises(PermissionDeniedError):
            await reconciliation_service.merge_offline_ballots(
                async_session, ElectionCategory.KAROBARI, authorized=offline_admin.can_merge_offline_votes
            )

        pending = await async_session.execute(
            select(func.count(OfflineBallot.id)).where(OfflineBallot.merged.is_(False))
        )
        assert pending.scalar_one() == 1

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self) -> None:
        session = AsyncMock()
        expected = MergeResult(category=ElectionCategory.KAROBARI, merged_count=2, voter_count=1)
        error = OperationalError("SELECT", {}, Exception("could not obtain lock"))
        with (
            patch.object(reconciliation_service, "_merge_once", AsyncMock(side_effect=[error, expected])),
            patch.object(reconciliation_service, "log_action", AsyncMock()) as log_action,
        ):
            result = await reconciliation_service.merge_offline_ballots(
                session, ElectionCategory.KAROBARI, authorized=True
            )

        assert result == expected
        session.rollback.assert_awaited_once()
        log_action.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_persistent_contention_is_unavailable(self) -> None:
        session = AsyncMock()
        error = OperationalError("SELECT", {}, Exception("deadlock detected"))
        settings = MagicMock(merge_max_attempts=3, merge_retry_backoff_seconds=0)
        merge_once = AsyncMock(side_effect=error)
        with (
            patch.object(reconciliation_service, "_merge_once", merge_once),
            patch.object(reconciliation_service, "get_settings", return_value=settings),
            pytest.raises(UnavailableError),
        ):
            await reconciliation_service.merge_offline_ballots(session, ElectionCategory.KAROBARI, authorized=True)

        assert merge_once.await_count == 3
        assert session.rollback.await_count == 3

    @pytest.mark.asyncio
    async def test_permanent_error_propagates_without_retry(self) -> None:
        session = AsyncMock()
        error = ProgrammingError("UPDATE", {}, Exception('column "merged_at" does not exist'))
        merge_once = AsyncMock(side_effect=error)
        with (
            patch.object(reconciliation_service, "_merge_once", merge_once),
            patch.object(reconciliation_service, "log_action", AsyncMock()) as log_action,
            pytest.raises(ProgrammingError),
        ):
            await reconciliation_service.merge_offline_ballots(session, ElectionCategory.KAROBARI, authorized=True)

        assert merge_once.await_count == 1
        session.rollback.assert_awaited_once()
        log_action.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_serialization_failure_is_retried(self) -> None:
        session = AsyncMock()
        orig = Exception("could not serialize access due to concurrent update")
        orig.sqlstate = "40001"
        error = DBAPIError("UPDATE", {}, orig)
        expected = MergeResult(category=ElectionCategory.KAROBARI, merged_count=1, voter_count=1)
        merge_once = AsyncMock(side_effect=[error, expected])
        with (
            patch.object(reconciliation_service, "_merge_once", merge_once),
            patch.object(reconciliation_service, "log_action", AsyncMock()),
        ):
            result = await reconciliation_service.merge_offline_ballots(
                session, ElectionCategory.KAROBARI, authorized=True
            )

        assert result == expected
        assert merge_once.await_count == 2

    @pytest.mark.asyncio
    async def test_update_repeats_unmerged_guard(self, zone_factory, cast_ballots, async_engine, async_session) -> None:
        seeded = await zone_factory(voter_count=2)
        await cast_ballots(seeded, [(seeded.voters[0], seeded.candidates[0])], offline=True)
        statements: list[str] = []

        def _capture(conn, cursor, statement, parameters, context, executemany) -> None:
            statements.append(statement)

        event.listen(async_engine.sync_engine, "before_cursor_execute", _capture)
        try:
            await reconciliation_service.merge_offline_ballots(
                async_session, ElectionCategory.KAROBARI, authorized=True
            )
        finally:
            event.remove(async_engine.sync_engine, "before_cursor_execute", _capture)

        updates = [s for s in statements if s.lstrip().upper().startswith("UPDATE OFFLINE_BALLOTS")]
        assert len(updates) == 1
        assert re.search(r"WHERE .*(offline_ballots\.)?merged IS (0|false)", updates[0], re.IGNORECASE | re.DOTALL)
        assert "RETURNING" in updates[0].upper()


class TestConcurrentMerge:
    """Two merges racing on separate connections."""

    @pytest.fixture
    async def async_engine(self, tmp_path: Path) -> AsyncGenerator[AsyncEngine]:
        """File-backed SQLite so each session holds its own connection."""
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'merge.db'}", poolclass=NullPool)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        yield engine
        await engine.dispose()

    @pytest.mark.asyncio
    async def test_racing_merges_count_each_row_once(
        self, zone_factory, cast_ballots, session_factory, async_session, monkeypatch
    ) -> None:
        # SQLite answers a lock upgrade with "database is locked"; the loser retries.
        monkeypatch.setenv("MERGE_MAX_ATTEMPTS", "20")
        monkeypatch.setenv("MERGE_RETRY_BACKOFF_SECONDS", "0.01")
        seeded = await zone_factory(candidate_count=2, voter_count=4)
        a, b = seeded.candidates
        v = seeded.voters
        await cast_ballots(seeded, [(v[0], a), (v[1], a), (v[2], b), (v[3], b), (v[3], a)], offline=True)
        pending = await async_session.execute(
            select(func.count(OfflineBallot.id)).where(OfflineBallot.merged.is_(False))
        )
        pending_count = pending.scalar_one()
        await async_session.commit()

        async def _merge() -> MergeResult:
            async with session_factory() as session:
                return await reconciliation_service.merge_offline_ballots(
                    session, ElectionCategory.KAROBARI, authorized=True
                )

        with patch.object(reconciliation_service, "log_action", AsyncMock()) as log_action:
            first, second = await asyncio.gather(_merge(), _merge())

        assert first.merged_count + second.merged_count == pending_count == 5
        async_session.expire_all()
        left = await async_session.execute(
            select(func.count(OfflineBallot.id)).where(OfflineBallot.merged.is_(False))
        )
        assert left.scalar_one() == 0
        assert log_action.await_count == sum(1 for r in (first, second) if r.merged_count)
