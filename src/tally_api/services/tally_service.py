"""Tally engine service.

Aggregates ballots per candidate for a zone and hands the counts to the
pure ranking and turnout functions in ``tally_api.lib.tally``.  Every
result is recomputed on demand; nothing here writes to the database.

Views:
    - online: OnlineBallot rows only
    - offline: every OfflineBallot row, merged or not
    - merged: online + offline.  The ``merged`` flag marks authoritative
      write-through for exports; it does not hide rows from this view.
      Voters present in both sources are counted in both and reported as
      ``overlapping_voters``.

Ballots cast by rehearsal voters (codes starting with the configured test
prefix) are left out of vote counts, participation and registration alike.
"""

import uuid

from loguru import logger
from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tally_api.core.config import get_settings
from tally_api.core.errors import InvalidArgumentError
from tally_api.lib.tally import (
    CandidateCount,
    CandidateKind,
    ElectionCategory,
    RankedCandidate,
    TallyView,
    Turnout,
    combine_counts,
    rank_candidates,
    split_winners,
)
from tally_api.models.ballot import OfflineBallot, OnlineBallot
from tally_api.models.voter import Voter
from tally_api.models.zone import Zone
from tally_api.schemas.tally import (
    CategoryTallyResponse,
    RankedCandidateResult,
    WinnerItem,
    WinnersListResponse,
    ZoneTallyView,
)
from tally_api.services import zone_service

_BallotModel = type[OnlineBallot] | type[OfflineBallot]


def parse_view(view: str | TallyView) -> TallyView:
    """Coerce a view selector, rejecting anything but online/offline/merged.

    Raises:
        InvalidArgumentError: If the view is unsupported.
    """
    try:
        return TallyView(view)
    except ValueError as e:
        msg = f"Unsupported tally view: {view!r}"
        raise InvalidArgumentError(msg) from e


def parse_category(category: str | ElectionCategory) -> ElectionCategory:
    """Coerce an election category.

    Raises:
        InvalidArgumentError: If the category is unknown.
    """
    try:
        return ElectionCategory(category)
    except ValueError as e:
        msg = f"Unknown election category: {category!r}"
        raise InvalidArgumentError(msg) from e


def _ballot_filters(model: _BallotModel, zone_id: uuid.UUID, test_prefix: str) -> list:
    conditions = [model.zone_id == zone_id]
    if test_prefix:
        conditions.append(~Voter.voter_code.startswith(test_prefix, autoescape=True))
    return conditions


async def _votes_by_candidate(
    session: AsyncSession, model: _BallotModel, zone_id: uuid.UUID, test_prefix: str
) -> dict[str, int]:
    result = await session.execute(
        select(model.candidate_id, func.count(model.id))
        .join(Voter, Voter.id == model.voter_id)
        .where(*_ballot_filters(model, zone_id, test_prefix))
        .group_by(model.candidate_id)
    )
    return {str(candidate_id): count for candidate_id, count in result.all()}


async def _voter_ids(
    session: AsyncSession, model: _BallotModel, zone_id: uuid.UUID, test_prefix: str
) -> set[uuid.UUID]:
    result = await session.execute(
        select(distinct(model.voter_id))
        .join(Voter, Voter.id == model.voter_id)
        .where(*_ballot_filters(model, zone_id, test_prefix))
    )
    return set(result.scalars().all())


def _to_result(entry: RankedCandidate) -> RankedCandidateResult:
    count = entry.count
    return RankedCandidateResult(
        rank=entry.rank,
        candidate_id=uuid.UUID(count.candidate_id),
        candidate_name=count.name,
        is_none_of_above=count.is_none_of_above,
        online_votes=count.online_votes,
        offline_votes=count.offline_votes,
        total_votes=count.total_votes,
        is_winner=entry.is_winner,
    )


async def _tally_zone(session: AsyncSession, zone: Zone, category: ElectionCategory, view: TallyView) -> ZoneTallyView:
    candidates = await zone_service.list_candidates(session, zone.id)
    known = {
        str(c.id): CandidateCount(candidate_id=str(c.id), name=c.name, kind=CandidateKind(c.kind)) for c in candidates
    }

    test_prefix = get_settings().test_voter_prefix
    online: dict[str, int] = {}
    offline: dict[str, int] = {}
    online_voters: set[uuid.UUID] = set()
    offline_voters: set[uuid.UUID] = set()
    if view in (TallyView.ONLINE, TallyView.MERGED):
        online = await _votes_by_candidate(session, OnlineBallot, zone.id, test_prefix)
        online_voters = await _voter_ids(session, OnlineBallot, zone.id, test_prefix)
    if view in (TallyView.OFFLINE, TallyView.MERGED):
        offline = await _votes_by_candidate(session, OfflineBallot, zone.id, test_prefix)
        offline_voters = await _voter_ids(session, OfflineBallot, zone.id, test_prefix)

    ranked = rank_candidates(combine_counts(online, offline, known), zone.seats)
    winners, others = split_winners(ranked)

    total_voters = await zone_service.count_registered_voters(session, zone.id, category, test_prefix=test_prefix)
    turnout = Turnout(total_voters=total_voters, voters_participated=len(online_voters | offline_voters))
    overlapping = len(online_voters & offline_voters) if view == TallyView.MERGED else 0

    return ZoneTallyView(
        zone_id=zone.id,
        zone_code=zone.code,
        zone_name=zone.name,
        category=category,
        view=view,
        seats=zone.seats,
        ranked=[_to_result(entry) for entry in ranked],
        winners=[_to_result(entry) for entry in winners],
        others=[_to_result(entry) for entry in others],
        total_voters=turnout.total_voters,
        voters_participated=turnout.voters_participated,
        turnout_percentage=turnout.percentage,
        overlapping_voters=overlapping,
    )


async def compute_zone_tally(
    session: AsyncSession,
    zone_id: uuid.UUID,
    category: ElectionCategory | str,
    view: TallyView | str,
) -> ZoneTallyView:
    """Rank a zone's candidates and compute its turnout for one view.

    Args:
        session: The database session.
        zone_id: The zone to tally.
        category: Election category the zone must belong to.
        view: online, offline or merged.

    Returns:
        The zone tally.

    Raises:
        InvalidArgumentError: If the view or category is unsupported.
        NotFoundError: If the zone is unknown or not in the category.
    """
    tally_view = parse_view(view)
    election_category = parse_category(category)
    zone = await zone_service.get_zone(session, zone_id, election_category)
    tally = await _tally_zone(session, zone, election_category, tally_view)
    logger.debug(
        "Tallied zone {} ({}, {}): {} candidates, turnout {}%",
        zone.code,
        election_category,
        tally_view,
        len(tally.ranked),
        tally.turnout_percentage,
    )
    return tally


async def compute_category_tally(
    session: AsyncSession,
    category: ElectionCategory | str,
    view: TallyView | str,
) -> CategoryTallyResponse:
    """Tally every active zone of a category in display order."""
    tally_view = parse_view(view)
    election_category = parse_category(category)
    zones = await zone_service.list_zones(session, election_category)
    tallies = [await _tally_zone(session, zone, election_category, tally_view) for zone in zones]
    return CategoryTallyResponse(category=election_category, view=tally_view, zones=tallies)


async def list_category_winners(
    session: AsyncSession,
    category: ElectionCategory | str,
    view: TallyView | str,
) -> WinnersListResponse:
    """Flatten the winners of every active zone in a category.

    NONE_OF_ABOVE may hold a winning slot; it is flagged rather than skipped
    so the consumer decides how to present it.
    """
    tally = await compute_category_tally(session, category, view)
    winners = [
        WinnerItem(
            zone_id=zone.zone_id,
            zone_code=zone.zone_code,
            zone_name=zone.zone_name,
            rank=entry.rank,
            candidate_id=entry.candidate_id,
            candidate_name=entry.candidate_name,
            total_votes=entry.total_votes,
            is_none_of_above=entry.is_none_of_above,
        )
        for zone in tally.zones
        for entry in zone.winners
    ]
    return WinnersListResponse(category=tally.category, view=tally.view, winners=winners)
