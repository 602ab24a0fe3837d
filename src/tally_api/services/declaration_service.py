"""Declaration authority: the secret + two-code approval state machine.

States advance one step at a time::

    locked -> password_ok -> code1_sent -> code1_verified
           -> code2_sent -> code2_verified -> token_issued

Any state before ``token_issued`` can fall into ``expired``, which is
terminal.  Verifying principal 1's code immediately dispatches principal
2's code, so a healthy flow never rests in ``code1_verified``; it only
stays there when delivery of code 2 failed, and ``resend_code`` recovers.
"""

import uuid
from datetime import timedelta

import jwt
from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tally_api.core.clock import is_expired, utcnow
from tally_api.core.config import Settings, get_settings
from tally_api.core.errors import (
    InvalidArgumentError,
    NotFoundError,
    UnauthenticatedError,
    UnavailableError,
)
from tally_api.core.security import (
    create_declaration_token,
    decode_declaration_token,
    is_well_formed_otp,
    secrets_match,
)
from tally_api.lib.notifier import BaseNotifier, NotificationError, get_notifier
from tally_api.models.declaration import ChallengeState, DeclarationChallenge
from tally_api.models.user import User
from tally_api.schemas.declaration import (
    ChallengeResponse,
    CodeRejection,
    CodeVerificationResult,
    DeclarationTokenResponse,
)
from tally_api.services import otp_service
from tally_api.services.audit_service import log_action

# Principal whose code is outstanding in each *_sent state
_SENT_STATES = {ChallengeState.CODE1_SENT: 1, ChallengeState.CODE2_SENT: 2}

# Delivery-failure states and the principal whose code is still to be sent
_PENDING_DISPATCH = {ChallengeState.PASSWORD_OK: 1, ChallengeState.CODE1_VERIFIED: 2}

_SENT_STATE_FOR = {1: ChallengeState.CODE1_SENT, 2: ChallengeState.CODE2_SENT}
_VERIFIED_STATE_FOR = {1: ChallengeState.CODE1_VERIFIED, 2: ChallengeState.CODE2_VERIFIED}


def _require_secret(settings: Settings) -> str:
    if not settings.declaration_secret:
        msg = "Results declaration is not configured"
        raise UnavailableError(msg)
    return settings.declaration_secret


def _principal_phone(settings: Settings, principal: int) -> str:
    phones = settings.declaration_principal_phone_list
    if len(phones) != 2:
        msg = "Declaration principals are not configured"
        raise UnavailableError(msg)
    return phones[principal - 1]


def to_response(challenge: DeclarationChallenge) -> ChallengeResponse:
    """Serialize a challenge with the principal expected to submit next."""
    state = ChallengeState(challenge.state)
    return ChallengeResponse(
        challenge_id=challenge.id,
        state=state,
        expires_at=challenge.expires_at,
        next_principal=_SENT_STATES.get(state),
    )


async def get_challenge(session: AsyncSession, challenge_id: uuid.UUID) -> DeclarationChallenge:
    """Load a challenge row under lock.

    Raises:
        NotFoundError: If the challenge does not exist.
    """
    result = await session.execute(
        select(DeclarationChallenge).where(DeclarationChallenge.id == challenge_id).with_for_update()
    )
    challenge = result.scalar_one_or_none()
    if challenge is None:
        msg = f"Declaration challenge {challenge_id} not found"
        raise NotFoundError(msg)
    return challenge


async def _expire(session: AsyncSession, challenge: DeclarationChallenge) -> None:
    challenge.state = ChallengeState.EXPIRED.value
    await session.commit()
    logger.warning("Declaration challenge {} expired", challenge.id)


async def _dispatch(
    session: AsyncSession,
    challenge: DeclarationChallenge,
    principal: int,
    notifier: BaseNotifier,
    settings: Settings,
) -> None:
    """Send the principal's code and move to its *_sent state, committing either way.

    Raises:
        UnavailableError: If delivery failed; the challenge keeps its current
            state so the code can be resent.
    """
    challenge_id = challenge.id
    try:
        await otp_service.issue_code(
            session,
            challenge_id=challenge_id,
            principal=principal,
            phone=_principal_phone(settings, principal),
            notifier=notifier,
            expire_minutes=settings.otp_expire_minutes,
        )
    except NotificationError as e:
        await session.rollback()
        logger.error("Code delivery for challenge {} principal {} failed: {}", challenge_id, principal, e)
        msg = f"Could not deliver the code for principal {principal}; resend to retry"
        raise UnavailableError(msg) from e
    challenge.state = _SENT_STATE_FOR[principal].value
    await session.commit()


async def start_challenge(
    session: AsyncSession,
    secret: str,
    started_by: User | None = None,
    *,
    notifier: BaseNotifier | None = None,
    settings: Settings | None = None,
) -> DeclarationChallenge:
    """Check the shared secret, open a challenge and send principal 1's code.

    Args:
        session: The database session.
        secret: The shared results secret presented by the admin.
        started_by: The admin starting the flow.
        notifier: Delivery backend; defaults to the configured one.
        settings: Application settings; defaults to ``get_settings()``.

    Returns:
        The challenge in ``code1_sent``. If principal 1's code could not be
        delivered it is returned in ``password_ok`` instead, so the caller
        still holds its id and can ask for a resend.

    Raises:
        UnauthenticatedError: If the secret does not match. No challenge is created.
        UnavailableError: If declaration is not configured.
    """
    settings = settings or get_settings()
    expected = _require_secret(settings)
    _principal_phone(settings, 1)  # fail before any state change when principals are unset
    if not secrets_match(secret, expected):
        logger.warning(
            "Declaration challenge rejected: wrong secret (user={})", getattr(started_by, "username", None)
        )
        msg = "Invalid declaration secret"
        raise UnauthenticatedError(msg)

    now = utcnow()
    challenge = DeclarationChallenge(
        id=uuid.uuid4(),
        state=ChallengeState.PASSWORD_OK.value,
        started_by=started_by.id if started_by else None,
        created_at=now,
        expires_at=now + timedelta(minutes=settings.declaration_challenge_expire_minutes),
        failed_attempts=0,
    )
    session.add(challenge)
    await session.commit()
    await log_action(
        session,
        user_id=started_by.id if started_by else None,
        username=started_by.username if started_by else None,
        action="challenge_start",
        resource_type="declaration_challenge",
        resource_ids=[str(challenge.id)],
    )
    logger.info("Declaration challenge {} started", challenge.id)

    try:
        await _dispatch(session, challenge, 1, notifier or get_notifier(settings), settings)
    except UnavailableError:
        # The rollback expired the instance; reload the committed password_ok row.
        await session.refresh(challenge)
        logger.warning("Declaration challenge {} left in password_ok; resend code 1 to continue", challenge.id)
    return challenge


async def submit_code(
    session: AsyncSession,
    challenge_id: uuid.UUID,
    principal: int,
    code: str,
    *,
    notifier: BaseNotifier | None = None,
    settings: Settings | None = None,
) -> CodeVerificationResult:
    """Verify a principal's one-time code and advance the challenge.

    Wrong, used, or expired codes produce a result with ``accepted=False``
    instead of raising, so the caller can re-prompt.  A challenge that has
    expired or outlived its lifetime answers ``reason=expired`` before the
    principal is checked, so any submission to it reports the expiry rather
    than an out-of-turn error.

    Raises:
        NotFoundError: If the challenge does not exist.
        InvalidArgumentError: If the code is not six digits, or the principal
            is not the one whose code is outstanding.
        UnavailableError: If principal 2's code could not be delivered after
            principal 1 was verified.
    """
    settings = settings or get_settings()
    if principal not in (1, 2):
        msg = f"Principal must be 1 or 2, got {principal}"
        raise InvalidArgumentError(msg)
    if not is_well_formed_otp(code):
        msg = "Code must be exactly six digits"
        raise InvalidArgumentError(msg)

    challenge = await get_challenge(session, challenge_id)
    state = ChallengeState(challenge.state)
    now = utcnow()
    if state not in (ChallengeState.EXPIRED, ChallengeState.TOKEN_ISSUED) and is_expired(challenge.expires_at, now):
        await _expire(session, challenge)
        state = ChallengeState.EXPIRED
    if state == ChallengeState.EXPIRED:
        return CodeVerificationResult(
            accepted=False, state=state, reason=CodeRejection.EXPIRED, message="Challenge expired; start again"
        )
    if _SENT_STATES.get(state) != principal:
        msg = f"No code is outstanding for principal {principal} in state {state}"
        raise InvalidArgumentError(msg)

    outcome = await otp_service.check_code(
        session, challenge_id=challenge.id, principal=principal, code=code, now=now
    )
    if outcome == otp_service.CodeCheck.EXPIRED:
        await _expire(session, challenge)
        return CodeVerificationResult(
            accepted=False,
            state=ChallengeState.EXPIRED,
            reason=CodeRejection.EXPIRED,
            message="Code expired; start again",
        )
    if outcome == otp_service.CodeCheck.INVALID:
        challenge.failed_attempts += 1
        if challenge.failed_attempts >= settings.declaration_max_code_attempts:
            await _expire(session, challenge)
            return CodeVerificationResult(
                accepted=False,
                state=ChallengeState.EXPIRED,
                reason=CodeRejection.TOO_MANY_ATTEMPTS,
                message="Too many invalid codes; start again",
            )
        await session.commit()
        remaining = settings.declaration_max_code_attempts - challenge.failed_attempts
        return CodeVerificationResult(
            accepted=False,
            state=state,
            reason=CodeRejection.INVALID_CODE,
            message=f"Invalid code; {remaining} attempt(s) left",
        )

    verified = _VERIFIED_STATE_FOR[principal]
    challenge.state = verified.value
    if principal == 1:
        challenge.code1_verified_at = now
    else:
        challenge.code2_verified_at = now
    await session.commit()
    logger.info("Declaration challenge {} principal {} verified", challenge.id, principal)

    if principal == 1:
        await _dispatch(session, challenge, 2, notifier or get_notifier(settings), settings)
        return CodeVerificationResult(
            accepted=True, state=ChallengeState(challenge.state), message="Code accepted; code sent to principal 2"
        )
    return CodeVerificationResult(accepted=True, state=verified, message="Both principals verified")


async def resend_code(
    session: AsyncSession,
    challenge_id: uuid.UUID,
    *,
    notifier: BaseNotifier | None = None,
    settings: Settings | None = None,
) -> DeclarationChallenge:
    """Send a fresh code for the outstanding principal.

    In a *_sent state the previous codes are invalidated and the state is
    unchanged.  From ``password_ok`` or ``code1_verified`` (a failed
    delivery) the pending code is sent and the state advances.

    Raises:
        NotFoundError: If the challenge does not exist.
        InvalidArgumentError: If no code is awaiting delivery or entry,
            or the challenge has expired.
        UnavailableError: If delivery failed.
    """
    settings = settings or get_settings()
    challenge = await get_challenge(session, challenge_id)
    state = ChallengeState(challenge.state)
    if state != ChallengeState.EXPIRED and is_expired(challenge.expires_at):
        await _expire(session, challenge)
        state = ChallengeState.EXPIRED

    principal = _SENT_STATES.get(state) or _PENDING_DISPATCH.get(state)
    if principal is None:
        msg = f"Cannot resend a code in state {state}"
        raise InvalidArgumentError(msg)

    await _dispatch(session, challenge, principal, notifier or get_notifier(settings), settings)
    return challenge


async def issue_token(
    session: AsyncSession,
    challenge_id: uuid.UUID,
    *,
    actor: User | None = None,
    settings: Settings | None = None,
) -> DeclarationTokenResponse:
    """Mint the declaration capability token for a fully verified challenge.

    The token is signed with the declaration secret and bound to the
    challenge through ``cid`` and ``jti``.  The challenge's expiry is moved
    to the token's so cleanup keeps it while the token is live.

    Raises:
        NotFoundError: If the challenge does not exist.
        UnauthenticatedError: If the challenge lapsed before the token was
            requested; it is moved to ``expired``.
        InvalidArgumentError: If the challenge is not in ``code2_verified``.
    """
    settings = settings or get_settings()
    secret = _require_secret(settings)
    challenge = await get_challenge(session, challenge_id)
    state = ChallengeState(challenge.state)
    now = utcnow()
    if state not in (ChallengeState.EXPIRED, ChallengeState.TOKEN_ISSUED) and is_expired(challenge.expires_at, now):
        await _expire(session, challenge)
        state = ChallengeState.EXPIRED
    if state == ChallengeState.EXPIRED:
        msg = "Declaration challenge expired; start again"
        raise UnauthenticatedError(msg)
    if state != ChallengeState.CODE2_VERIFIED:
        msg = f"Token can only be issued after both codes are verified (state {state})"
        raise InvalidArgumentError(msg)

    token_id = uuid.uuid4().hex
    expires_minutes = settings.declaration_token_expire_minutes
    token = create_declaration_token(challenge.id, token_id, secret, expires_minutes=expires_minutes)
    challenge.state = ChallengeState.TOKEN_ISSUED.value
    challenge.token_jti = token_id
    challenge.token_issued_at = now
    challenge.expires_at = now + timedelta(minutes=expires_minutes)
    await session.commit()

    await log_action(
        session,
        user_id=actor.id if actor else None,
        username=actor.username if actor else None,
        action="token_issue",
        resource_type="declaration_challenge",
        resource_ids=[str(challenge.id)],
    )
    logger.info("Declaration token issued for challenge {}", challenge.id)
    return DeclarationTokenResponse(declaration_token=token, expires_in=expires_minutes * 60)


async def resolve_token(session: AsyncSession, token: str, settings: Settings | None = None) -> DeclarationChallenge:
    """Verify a declaration token and return the challenge it was minted for.

    Raises:
        UnauthenticatedError: If the token is malformed, expired, signed with
            another secret, or not bound to a ``token_issued`` challenge.
        UnavailableError: If declaration is not configured.
    """
    settings = settings or get_settings()
    secret = _require_secret(settings)
    try:
        payload = decode_declaration_token(token, secret)
        challenge_id = uuid.UUID(payload["cid"])
    except (jwt.InvalidTokenError, KeyError, ValueError) as e:
        msg = "Invalid or expired declaration token"
        raise UnauthenticatedError(msg) from e

    result = await session.execute(select(DeclarationChallenge).where(DeclarationChallenge.id == challenge_id))
    challenge = result.scalar_one_or_none()
    if (
        challenge is None
        or challenge.state != ChallengeState.TOKEN_ISSUED
        or challenge.token_jti is None
        or not secrets_match(payload["jti"], challenge.token_jti)
    ):
        msg = "Declaration token does not belong to a completed challenge"
        raise UnauthenticatedError(msg)
    return challenge
