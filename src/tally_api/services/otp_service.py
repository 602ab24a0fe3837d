"""One-time code issuance, verification and cleanup.

Codes are six digits, single-use and time-bounded.  Only a SHA-256 digest
is stored.  Expiry is checked when a code is submitted; the cleanup loop
only reclaims space.
"""

import asyncio
import uuid
from datetime import datetime, timedelta
from enum import StrEnum

from loguru import logger
from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tally_api.core.clock import is_expired, utcnow
from tally_api.core.logging import mask_phone
from tally_api.core.security import generate_otp_code, hash_otp_code, secrets_match
from tally_api.lib.notifier import BaseNotifier
from tally_api.models.declaration import ChallengeState, DeclarationChallenge, OneTimeCode

RESULTS_DECLARATION_PURPOSE = "results_declaration"

# Stale challenges are kept this long past expiry for troubleshooting
CHALLENGE_RETENTION = timedelta(days=1)


class CodeCheck(StrEnum):
    """Outcome of comparing a submitted code with the outstanding one."""

    OK = "ok"
    INVALID = "invalid"
    EXPIRED = "expired"


async def issue_code(
    session: AsyncSession,
    *,
    challenge_id: uuid.UUID,
    principal: int,
    phone: str,
    notifier: BaseNotifier,
    expire_minutes: int,
) -> OneTimeCode:
    """Invalidate outstanding codes for the principal, store a new one and send it.

    The new code row is flushed, not committed; the caller commits once the
    challenge state is updated.

    Raises:
        NotificationError: If the notifier could not hand off the code.
    """
    now = utcnow()
    await session.execute(
        update(OneTimeCode)
        .where(
            OneTimeCode.challenge_id == challenge_id,
            OneTimeCode.principal == principal,
            OneTimeCode.used_at.is_(None),
        )
        .values(used_at=now)
        .execution_options(synchronize_session=False)
    )
    code = generate_otp_code()
    otp = OneTimeCode(
        challenge_id=challenge_id,
        purpose=RESULTS_DECLARATION_PURPOSE,
        principal=principal,
        phone=phone,
        code_hash=hash_otp_code(code),
        created_at=now,
        expires_at=now + timedelta(minutes=expire_minutes),
    )
    session.add(otp)
    await session.flush()

    await notifier.send_code(phone, code)
    logger.info("Sent declaration code for principal {} to {}", principal, mask_phone(phone))
    return otp


async def check_code(
    session: AsyncSession,
    *,
    challenge_id: uuid.UUID,
    principal: int,
    code: str,
    now: datetime | None = None,
) -> CodeCheck:
    """Compare ``code`` with the principal's latest outstanding code.

    A matching code is marked used.  When the outstanding code has expired
    the result is EXPIRED whatever was submitted.  Codes already used or
    superseded by a resend never match.
    """
    now = now or utcnow()
    result = await session.execute(
        select(OneTimeCode)
        .where(
            OneTimeCode.challenge_id == challenge_id,
            OneTimeCode.principal == principal,
            OneTimeCode.used_at.is_(None),
        )
        .order_by(OneTimeCode.created_at.desc())
        .limit(1)
    )
    otp = result.scalar_one_or_none()
    if otp is None:
        return CodeCheck.INVALID
    if is_expired(otp.expires_at, now):
        return CodeCheck.EXPIRED
    if not secrets_match(hash_otp_code(code), otp.code_hash):
        return CodeCheck.INVALID
    otp.used_at = now
    return CodeCheck.OK


async def purge_expired(session: AsyncSession, now: datetime | None = None) -> tuple[int, int]:
    """Delete expired codes and long-expired challenges; mark lapsed challenges expired.

    An expired code that is still outstanding on a live challenge is kept,
    so a late submission is answered as expired rather than as a wrong code.
    It goes once it is used, superseded, or its challenge has ended.

    Returns:
        Tuple of (codes deleted, challenges deleted).
    """
    now = now or utcnow()
    await session.execute(
        update(DeclarationChallenge)
        .where(
            DeclarationChallenge.expires_at <= now,
            DeclarationChallenge.state.not_in([ChallengeState.TOKEN_ISSUED, ChallengeState.EXPIRED]),
        )
        .values(state=ChallengeState.EXPIRED.value)
        .execution_options(synchronize_session=False)
    )
    finished = select(DeclarationChallenge.id).where(
        DeclarationChallenge.state.in_([ChallengeState.TOKEN_ISSUED, ChallengeState.EXPIRED])
    )
    codes = await session.execute(
        delete(OneTimeCode).where(
            OneTimeCode.expires_at <= now,
            or_(OneTimeCode.used_at.is_not(None), OneTimeCode.challenge_id.in_(finished)),
        )
    )
    challenges = await session.execute(
        delete(DeclarationChallenge).where(DeclarationChallenge.expires_at <= now - CHALLENGE_RETENTION)
    )
    await session.commit()
    return codes.rowcount or 0, challenges.rowcount or 0


async def declaration_cleanup_loop(interval: int) -> None:
    """Background asyncio loop that sweeps expired codes and challenges.

    Args:
        interval: Seconds between sweeps.
    """
    from tally_api.core.database import get_session_factory

    logger.info("Declaration cleanup loop started (interval={}s)", interval)

    while True:
        try:
            await asyncio.sleep(interval)
            factory = get_session_factory()
            async with factory() as session:
                codes, challenges = await purge_expired(session)
                if codes or challenges:
                    logger.info("Purged {} expired code(s) and {} stale challenge(s)", codes, challenges)
        except asyncio.CancelledError:
            logger.info("Declaration cleanup loop cancelled")
            break
        except Exception:
            logger.exception("Declaration cleanup loop error")
