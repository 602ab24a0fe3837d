"""Unit tests for one-time code storage and cleanup."""

import uuid
from datetime import timedelta

import pytest
from sqlalchemy import select

from tally_api.core.clock import utcnow
from tally_api.core.security import hash_otp_code
from tally_api.models.declaration import ChallengeState, DeclarationChallenge, OneTimeCode
from tally_api.services import otp_service
from tally_api.services.otp_service import CodeCheck


async def _challenge(session, *, expires_in: timedelta, state: ChallengeState = ChallengeState.CODE1_SENT):
    now = utcnow()
    challenge = DeclarationChallenge(
        id=uuid.uuid4(), state=state.value, created_at=now, expires_at=now + expires_in, failed_attempts=0
    )
    session.add(challenge)
    await session.commit()
    return challenge


class TestIssueAndCheck:
    """Tests for issue_code() and check_code()."""

    @pytest.mark.asyncio
    async def test_only_digest_is_stored(self, async_session, notifier) -> None:
        challenge = await _challenge(async_session, expires_in=timedelta(minutes=30))

        otp = await otp_service.issue_code(
            async_session,
            challenge_id=challenge.id,
            principal=1,
            phone="919800000001",
            notifier=notifier,
            expire_minutes=10,
        )

        assert otp.code_hash == hash_otp_code(notifier.last_code)
        assert otp.code_hash != notifier.last_code
        assert otp.purpose == otp_service.RESULTS_DECLARATION_PURPOSE

    @pytest.mark.asyncio
    async def test_code_is_single_use(self, async_session, notifier) -> None:
        challenge = await _challenge(async_session, expires_in=timedelta(minutes=30))
        await otp_service.issue_code(
            async_session, challenge_id=challenge.id, principal=1, phone="1", notifier=notifier, expire_minutes=10
        )
        code = notifier.last_code

        first = await otp_service.check_code(async_session, challenge_id=challenge.id, principal=1, code=code)
        second = await otp_service.check_code(async_session, challenge_id=challenge.id, principal=1, code=code)

        assert first == CodeCheck.OK
        assert second == CodeCheck.INVALID

    @pytest.mark.asyncio
    async def test_codes_are_per_principal(self, async_session, notifier) -> None:
        challenge = await _challenge(async_session, expires_in=timedelta(minutes=30))
        await otp_service.issue_code(
            async_session, challenge_id=challenge.id, principal=1, phone="1", notifier=notifier, expire_minutes=10
        )

        result = await otp_service.check_code(
            async_session, challenge_id=challenge.id, principal=2, code=notifier.last_code
        )

        assert result == CodeCheck.INVALID

    @pytest.mark.asyncio
    async def test_expired_code(self, async_session, notifier) -> None:
        challenge = await _challenge(async_session, expires_in=timedelta(minutes=30))
        await otp_service.issue_code(
            async_session, challenge_id=challenge.id, principal=1, phone="1", notifier=notifier, expire_minutes=10
        )

        result = await otp_service.check_code(
            async_session,
            challenge_id=challenge.id,
            principal=1,
            code=notifier.last_code,
            now=utcnow() + timedelta(minutes=11),
        )

        assert result == CodeCheck.EXPIRED


class TestPurgeExpired:
    """Tests for purge_expired()."""

    @pytest.mark.asyncio
    async def test_sweeps_codes_and_stale_challenges(self, async_session, notifier) -> None:
        live = await _challenge(async_session, expires_in=timedelta(minutes=30))
        lapsed = await _challenge(async_session, expires_in=timedelta(minutes=-1))
        stale = await _challenge(async_session, expires_in=timedelta(days=-2), state=ChallengeState.EXPIRED)
        now = utcnow()
        async_session.add_all(
            [
                OneTimeCode(
                    challenge_id=live.id,
                    purpose=otp_service.RESULTS_DECLARATION_PURPOSE,
                    principal=1,
                    phone="1",
                    code_hash=hash_otp_code("123456"),
                    created_at=now,
                    expires_at=now + timedelta(minutes=10),
                ),
                OneTimeCode(
                    challenge_id=lapsed.id,
                    purpose=otp_service.RESULTS_DECLARATION_PURPOSE,
                    principal=1,
                    phone="1",
                    code_hash=hash_otp_code("654321"),
                    created_at=now - timedelta(minutes=20),
                    expires_at=now - timedelta(minutes=10),
                ),
            ]
        )
        await async_session.commit()
        live_id, lapsed_id, stale_id = live.id, lapsed.id, stale.id

        codes, challenges = await otp_service.purge_expired(async_session)

        assert (codes, challenges) == (1, 1)
        async_session.expire_all()
        remaining = {c.id: c.state for c in (await async_session.execute(select(DeclarationChallenge))).scalars()}
        assert stale_id not in remaining
        assert remaining[live_id] == ChallengeState.CODE1_SENT
        assert remaining[lapsed_id] == ChallengeState.EXPIRED

    @pytest.mark.asyncio
    async def test_issued_tokens_keep_their_state(self, async_session) -> None:
        issued = await _challenge(async_session, expires_in=timedelta(minutes=-1), state=ChallengeState.TOKEN_ISSUED)
        issued_id = issued.id

        await otp_service.purge_expired(async_session)

        async_session.expire_all()
        row = (await async_session.execute(select(DeclarationChallenge))).scalars().one()
        assert row.id == issued_id
        assert row.state == ChallengeState.TOKEN_ISSUED

    @pytest.mark.asyncio
    async def test_outstanding_code_on_live_challenge_survives_sweep(self, async_session, notifier) -> None:
        challenge = await _challenge(async_session, expires_in=timedelta(minutes=30))
        await otp_service.issue_code(
            async_session,
            challenge_id=challenge.id,
            principal=1,
            phone="919800000001",
            notifier=notifier,
            expire_minutes=10,
        )
        await async_session.commit()
        later = utcnow() + timedelta(minutes=11)

        codes, _ = await otp_service.purge_expired(async_session, now=later)

        assert codes == 0
        outcome = await otp_service.check_code(
            async_session, challenge_id=challenge.id, principal=1, code=notifier.last_code, now=later
        )
        assert outcome == CodeCheck.EXPIRED

    @pytest.mark.asyncio
    async def test_superseded_codes_are_swept(self, async_session, notifier) -> None:
        challenge = await _challenge(async_session, expires_in=timedelta(minutes=30))
        for _ in range(2):
            await otp_service.issue_code(
                async_session,
                challenge_id=challenge.id,
                principal=1,
                phone="919800000001",
                notifier=notifier,
                expire_minutes=10,
            )
        await async_session.commit()

        codes, _ = await otp_service.purge_expired(async_session, now=utcnow() + timedelta(minutes=11))

        assert codes == 1
