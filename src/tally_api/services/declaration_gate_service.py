"""Declaration gate: the public "results declared" flag.

The flag lives in a single row (``id = 1``) shared by every instance.
Declare and revoke take a row lock and accept only a declaration token;
repeating either call is reported as already satisfied rather than failing.
"""

from dataclasses import dataclass
from datetime import datetime

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tally_api.core.clock import utcnow
from tally_api.core.config import Settings
from tally_api.models.declaration import DECLARATION_STATE_ID, DeclarationState
from tally_api.services.audit_service import log_action
from tally_api.services.declaration_service import resolve_token


@dataclass(frozen=True)
class DeclarationOutcome:
    """Flag value after a declare/revoke call."""

    declared: bool
    declared_at: datetime | None
    already_satisfied: bool


async def _lock_state(session: AsyncSession) -> DeclarationState:
    result = await session.execute(
        select(DeclarationState).where(DeclarationState.id == DECLARATION_STATE_ID).with_for_update()
    )
    state = result.scalar_one_or_none()
    if state is None:
        state = DeclarationState(id=DECLARATION_STATE_ID, declared=False)
        session.add(state)
        await session.flush()
    return state


async def _set_declared(
    session: AsyncSession,
    token: str,
    declared: bool,
    settings: Settings | None,
) -> DeclarationOutcome:
    challenge = await resolve_token(session, token, settings)
    action = "declare" if declared else "revoke"

    state = await _lock_state(session)
    if state.declared == declared:
        outcome = DeclarationOutcome(declared=state.declared, declared_at=state.declared_at, already_satisfied=True)
        await session.commit()
        logger.info("Results {} requested again; nothing to do", action)
        return outcome

    state.declared = declared
    state.declared_at = utcnow() if declared else None
    state.declared_by = challenge.started_by if declared else None
    outcome = DeclarationOutcome(declared=declared, declared_at=state.declared_at, already_satisfied=False)
    await session.commit()

    await log_action(
        session,
        user_id=challenge.started_by,
        action=action,
        resource_type="declaration_state",
        resource_ids=[str(challenge.id)],
    )
    logger.info("Results {} (challenge {})", "declared" if declared else "revoked", challenge.id)
    return outcome


async def declare(session: AsyncSession, token: str, settings: Settings | None = None) -> DeclarationOutcome:
    """Make results visible on the public page.

    Raises:
        UnauthenticatedError: If the declaration token is missing, invalid or expired.
    """
    return await _set_declared(session, token, True, settings)


async def revoke(session: AsyncSession, token: str, settings: Settings | None = None) -> DeclarationOutcome:
    """Hide results from the public page again.

    Raises:
        UnauthenticatedError: If the declaration token is missing, invalid or expired.
    """
    return await _set_declared(session, token, False, settings)


async def get_status(session: AsyncSession) -> DeclarationOutcome:
    """Read the declaration flag without locking or writing."""
    result = await session.execute(select(DeclarationState).where(DeclarationState.id == DECLARATION_STATE_ID))
    state = result.scalar_one_or_none()
    if state is None:
        return DeclarationOutcome(declared=False, declared_at=None, already_satisfied=False)
    return DeclarationOutcome(declared=state.declared, declared_at=state.declared_at, already_satisfied=False)
