"""Offline ballot reconciliation.

The merge is the only writer of ``OfflineBallot.merged``.  It selects the
category's unmerged rows under a row lock, flips them with one shared
timestamp and commits, so a concurrent merge waits for the lock and then
finds nothing left to do.  The UPDATE repeats the ``merged = false`` guard and
counts only the rows it returns, so a row is merged and counted once even
where the database ignores the row lock.

Only transient failures are retried: operational errors, dropped
connections, serialization failures and deadlocks.  Any other database
error is rolled back and raised after the first attempt.
"""

import asyncio
import uuid

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from tally_api.core.clock import utcnow
from tally_api.core.config import get_settings
from tally_api.core.errors import PermissionDeniedError, UnavailableError
from tally_api.lib.tally import ElectionCategory
from tally_api.models.ballot import OfflineBallot
from tally_api.models.zone import Zone
from tally_api.schemas.ballot import MergeResult
from tally_api.services.audit_service import log_action

# serialization_failure, deadlock_detected
_RETRYABLE_SQLSTATES = frozenset({"40001", "40P01"})


def _is_transient(error: DBAPIError) -> bool:
    """True for lock contention and dropped connections, which a new transaction can clear."""
    if isinstance(error, OperationalError) or error.connection_invalidated:
        return True
    orig = error.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate is None:
        sqlstate = getattr(getattr(orig, "__cause__", None), "sqlstate", None)
    return sqlstate in _RETRYABLE_SQLSTATES


async def _merge_once(session: AsyncSession, category: ElectionCategory) -> MergeResult:
    category_zones = select(Zone.id).where(Zone.election_category == category)
    locked = await session.execute(
        select(OfflineBallot.id)
        .where(OfflineBallot.zone_id.in_(category_zones), OfflineBallot.merged.is_(False))
        .with_for_update()
    )
    ids = locked.scalars().all()
    if not ids:
        await session.rollback()
        return MergeResult(category=category, merged_count=0, voter_count=0)

    # Counts come from the rows this statement flipped, not the rows selected.
    flipped = await session.execute(
        update(OfflineBallot)
        .where(OfflineBallot.id.in_(ids), OfflineBallot.merged.is_(False))
        .values(merged=True, merged_at=utcnow())
        .returning(OfflineBallot.voter_id)
        .execution_options(synchronize_session=False)
    )
    voter_ids = flipped.scalars().all()
    await session.commit()
    return MergeResult(category=category, merged_count=len(voter_ids), voter_count=len(set(voter_ids)))


async def merge_offline_ballots(
    session: AsyncSession,
    category: ElectionCategory,
    *,
    authorized: bool,
    actor_id: uuid.UUID | None = None,
    actor_username: str | None = None,
) -> MergeResult:
    """Merge every unmerged offline ballot of a category, exactly once.

    Args:
        session: The database session.
        category: Election category to reconcile.
        authorized: Whether the caller may merge. Resolved by the caller from
            its role; offline-vote admins are never authorized.
        actor_id: Acting user's ID for the audit trail.
        actor_username: Acting user's username for the audit trail.

    Returns:
        Merged row and distinct voter counts; ``{0, 0}`` when nothing was pending.

    Raises:
        PermissionDeniedError: If ``authorized`` is false.
        UnavailableError: If the transaction kept failing on contention.
        DBAPIError: Any other database error, after one attempt.
    """
    if not authorized:
        msg = "Caller is not authorized to merge offline ballots"
        raise PermissionDeniedError(msg)

    settings = get_settings()
    attempts = settings.merge_max_attempts
    for attempt in range(1, attempts + 1):
        try:
            result = await _merge_once(session, category)
            break
        except DBAPIError as e:
            await session.rollback()
            if not _is_transient(e):
                raise
            logger.warning("Merge attempt {}/{} for {} failed: {}", attempt, attempts, category, e)
            if attempt == attempts:
                msg = f"Offline ballot merge for {category} is temporarily unavailable; retry"
                raise UnavailableError(msg) from e
            await asyncio.sleep(settings.merge_retry_backoff_seconds * attempt)

    if result.merged_count:
        logger.info(
            "Merged {} offline ballots from {} voters in {}", result.merged_count, result.voter_count, category
        )
        await log_action(
            session,
            user_id=actor_id,
            username=actor_username,
            action="merge",
            resource_type="offline_ballot",
            request_metadata={
                "category": str(category),
                "merged_count": result.merged_count,
                "voter_count": result.voter_count,
            },
        )
    else:
        logger.info("No unmerged offline ballots in {}", category)
    return result
