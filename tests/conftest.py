"""Shared test fixtures for async database, sessions, seeded elections, and auth tokens."""

import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from dataclasses import dataclass

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import tally_api.models  # noqa: F401
from tally_api.core.config import Settings
from tally_api.core.security import create_access_token, hash_password
from tally_api.lib.notifier import BaseNotifier
from tally_api.models.ballot import OfflineBallot, OnlineBallot
from tally_api.models.base import Base
from tally_api.models.candidate import Candidate
from tally_api.models.user import User
from tally_api.models.voter import Voter, VoterZoneAssignment
from tally_api.models.zone import Zone

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_JWT_SECRET = "test-secret-key-not-for-production"
TEST_DECLARATION_SECRET = "declaration-secret-for-tests-only-0001"
TEST_PRINCIPAL_PHONES = "+91 98000 00001,+91 98000 00002"


@pytest.fixture(autouse=True)
def _settings_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Environment for services that read ``get_settings()`` directly."""
    monkeypatch.setenv("DATABASE_URL", TEST_DATABASE_URL)
    monkeypatch.setenv("JWT_SECRET_KEY", TEST_JWT_SECRET)
    monkeypatch.setenv("DECLARATION_SECRET", TEST_DECLARATION_SECRET)
    monkeypatch.setenv("DECLARATION_PRINCIPAL_PHONES", TEST_PRINCIPAL_PHONES)
    monkeypatch.setenv("MERGE_RETRY_BACKOFF_SECONDS", "0")


@pytest.fixture
def settings() -> Settings:
    """Test application settings."""
    return Settings(
        _env_file=None,
        database_url=TEST_DATABASE_URL,
        jwt_secret_key=TEST_JWT_SECRET,
        jwt_algorithm="HS256",
        jwt_access_token_expire_minutes=30,
        jwt_refresh_token_expire_days=7,
        declaration_secret=TEST_DECLARATION_SECRET,
        declaration_principal_phones=TEST_PRINCIPAL_PHONES,
        merge_retry_backoff_seconds=0,
    )


@pytest.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """Create an in-memory async SQLite engine shared by every session of a test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(async_engine, expire_on_commit=False)


@pytest.fixture
async def async_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession]:
    """Create a per-test async session."""
    async with session_factory() as session:
        yield session


async def _add_user(session: AsyncSession, username: str, *, role: str = "admin", offline: bool = False) -> User:
    user = User(
        id=uuid.uuid4(),
        username=username,
        email=f"{username}@test.com",
        hashed_password=hash_password("testpassword123"),
        role=role,
        is_active=True,
        is_offline_vote_admin=offline,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


@pytest.fixture
async def sample_user(async_session: AsyncSession) -> User:
    """An admin who may merge offline ballots."""
    return await _add_user(async_session, "testadmin")


@pytest.fixture
async def offline_admin(async_session: AsyncSession) -> User:
    """An admin who records paper ballots and may not merge them."""
    return await _add_user(async_session, "offlineadmin", offline=True)


@pytest.fixture
def admin_token(settings: Settings) -> str:
    """Generate a JWT access token for an admin user."""
    return create_access_token(
        subject="testadmin",
        role="admin",
        secret_key=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


class RecordingNotifier(BaseNotifier):
    """Captures sent codes instead of delivering them."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    @property
    def backend_name(self) -> str:
        return "recording"

    async def send_code(self, phone: str, code: str) -> None:
        self.sent.append((phone, code))

    @property
    def last_code(self) -> str:
        return self.sent[-1][1]


@pytest.fixture
def notifier() -> RecordingNotifier:
    """Notifier that records codes for the test to read back."""
    return RecordingNotifier()


@dataclass
class SeededZone:
    """A zone with candidates, registered voters and helpers to cast ballots."""

    zone: Zone
    candidates: list[Candidate]
    voters: list[Voter]
    none_of_above: Candidate | None = None


ZoneFactory = Callable[..., Awaitable[SeededZone]]


@pytest.fixture
def zone_factory(async_session: AsyncSession) -> ZoneFactory:
    """Build a zone with ``candidate_count`` nominees and ``voter_count`` assigned voters."""
    counter = {"n": 0}

    async def _create(
        *,
        category: str = "karobari",
        seats: int = 1,
        candidate_count: int = 3,
        voter_count: int = 10,
        with_none_of_above: bool = False,
        display_order: int = 999,
        test_voters: int = 0,
    ) -> SeededZone:
        counter["n"] += 1
        n = counter["n"]
        zone = Zone(
            id=uuid.uuid4(),
            code=f"Z{n:02d}",
            name=f"Zone {n}",
            election_category=category,
            seats=seats,
            is_active=True,
            display_order=display_order,
        )
        async_session.add(zone)
        candidates = [
            Candidate(id=uuid.uuid4(), zone_id=zone.id, name=f"Candidate {n}-{i}", kind="nominee")
            for i in range(candidate_count)
        ]
        none_of_above = None
        if with_none_of_above:
            none_of_above = Candidate(id=uuid.uuid4(), zone_id=zone.id, name="NOTA", kind="none_of_above")
            candidates.append(none_of_above)
        async_session.add_all(candidates)

        voters = []
        for i in range(voter_count + test_voters):
            prefix = "TEST_" if i >= voter_count else "V"
            voter = Voter(id=uuid.uuid4(), voter_code=f"{prefix}{n:02d}{i:04d}", name=f"Voter {i}", is_active=True)
            voters.append(voter)
            async_session.add(voter)
            async_session.add(
                VoterZoneAssignment(id=uuid.uuid4(), voter_id=voter.id, election_category=category, zone_id=zone.id)
            )
        await async_session.commit()
        return SeededZone(zone=zone, candidates=candidates, voters=voters, none_of_above=none_of_above)

    return _create


@pytest.fixture
def cast_ballots(async_session: AsyncSession) -> Callable[..., Awaitable[None]]:
    """Insert ballots: ``await cast_ballots(zone, [(voter, candidate), ...], offline=False)``."""

    async def _cast(
        seeded: SeededZone,
        selections: list[tuple[Voter, Candidate]],
        *,
        offline: bool = False,
        merged: bool = False,
    ) -> None:
        for voter, candidate in selections:
            if offline:
                async_session.add(
                    OfflineBallot(
                        id=uuid.uuid4(),
                        voter_id=voter.id,
                        zone_id=seeded.zone.id,
                        candidate_id=candidate.id,
                        merged=merged,
                    )
                )
            else:
                async_session.add(
                    OnlineBallot(id=uuid.uuid4(), voter_id=voter.id, zone_id=seeded.zone.id, candidate_id=candidate.id)
                )
        await async_session.commit()

    return _cast
