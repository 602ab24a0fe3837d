"""Ballot store service.

Offline ballots are transcribed from paper by offline-vote admins.  A
ballot is accepted only once per voter and category, and never for a voter
who already voted online.
"""

import uuid
from collections import Counter

from loguru import logger
from sqlalchemy import distinct, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tally_api.core.errors import ConflictError, InvalidArgumentError, NotFoundError, PermissionDeniedError
from tally_api.lib.tally import ElectionCategory
from tally_api.models.ballot import OfflineBallot, OnlineBallot
from tally_api.models.candidate import Candidate
from tally_api.models.user import User
from tally_api.models.zone import Zone
from tally_api.schemas.ballot import MergeBacklogResponse, OfflineBallotCreateResponse
from tally_api.services import zone_service
from tally_api.services.audit_service import log_action


def _category_zone_ids(category: ElectionCategory):
    return select(Zone.id).where(Zone.election_category == category)


async def _has_ballots(session: AsyncSession, model, voter_id: uuid.UUID, category: ElectionCategory) -> bool:
    result = await session.execute(
        select(func.count(model.id)).where(model.voter_id == voter_id, model.zone_id.in_(_category_zone_ids(category)))
    )
    return result.scalar_one() > 0


async def record_offline_ballots(
    session: AsyncSession,
    *,
    category: ElectionCategory,
    voter_code: str,
    candidate_ids: list[uuid.UUID],
    recorded_by: User,
    notes: str | None = None,
) -> OfflineBallotCreateResponse:
    """Record the selections of one paper ballot.

    Args:
        session: The database session.
        category: Election category of the ballot.
        voter_code: Printed voter code.
        candidate_ids: Selected candidates; duplicates are collapsed.
        recorded_by: The offline-vote admin entering the ballot.
        notes: Optional free-text remark.

    Returns:
        How many selections were stored.

    Raises:
        PermissionDeniedError: If the user is not an offline-vote admin.
        NotFoundError: If the voter is unknown.
        ConflictError: If the voter already has online or offline ballots
            in the category.
        InvalidArgumentError: If a candidate is outside the category or a
            zone's seat limit is exceeded.
    """
    if not (recorded_by.is_active and recorded_by.is_offline_vote_admin):
        msg = "Only offline-vote admins can record offline ballots"
        raise PermissionDeniedError(msg)

    voter = await zone_service.get_voter_by_code(session, voter_code)
    if voter is None:
        msg = f"Voter {voter_code} not found"
        raise NotFoundError(msg)

    if await _has_ballots(session, OnlineBallot, voter.id, category):
        msg = f"Voter {voter_code} has already voted online in {category}"
        raise ConflictError(msg)
    if await _has_ballots(session, OfflineBallot, voter.id, category):
        msg = f"Offline ballot already recorded for voter {voter_code} in {category}"
        raise ConflictError(msg)

    unique_ids = list(dict.fromkeys(candidate_ids))
    result = await session.execute(
        select(Candidate.id, Candidate.zone_id, Zone.seats)
        .join(Zone, Zone.id == Candidate.zone_id)
        .where(Candidate.id.in_(unique_ids), Zone.election_category == category)
    )
    rows = result.all()
    if len(rows) != len(unique_ids):
        msg = f"One or more candidates do not belong to {category}"
        raise InvalidArgumentError(msg)

    seats = {zone_id: zone_seats for _, zone_id, zone_seats in rows}
    per_zone = Counter(zone_id for _, zone_id, _ in rows)
    for zone_id, selected in per_zone.items():
        if selected > seats[zone_id]:
            msg = f"Zone {zone_id} allows {seats[zone_id]} selections, got {selected}"
            raise InvalidArgumentError(msg)

    for candidate_id, zone_id, _ in rows:
        session.add(
            OfflineBallot(
                voter_id=voter.id,
                zone_id=zone_id,
                candidate_id=candidate_id,
                recorded_by=recorded_by.id,
                notes=notes,
            )
        )
    try:
        await session.flush()
    except IntegrityError as e:
        await session.rollback()
        msg = f"Offline ballot already recorded for voter {voter_code} in {category}"
        raise ConflictError(msg) from e

    await log_action(
        session,
        user_id=recorded_by.id,
        username=recorded_by.username,
        action="record_offline",
        resource_type="offline_ballot",
        resource_ids=[str(voter.id)],
        request_metadata={"category": str(category), "selections": len(rows)},
    )
    logger.info("Recorded {} offline selections for voter {} in {}", len(rows), voter_code, category)
    return OfflineBallotCreateResponse(voter_code=voter_code, ballots_recorded=len(rows))


async def get_merge_backlog(session: AsyncSession, category: ElectionCategory) -> MergeBacklogResponse:
    """Summarize merged and pending offline ballots for a category."""
    in_category = OfflineBallot.zone_id.in_(_category_zone_ids(category))
    result = await session.execute(
        select(func.count(OfflineBallot.id), func.count(distinct(OfflineBallot.voter_id))).where(
            in_category, OfflineBallot.merged.is_(False)
        )
    )
    unmerged_count, unmerged_voters = result.one()
    merged = await session.execute(
        select(func.count(OfflineBallot.id)).where(in_category, OfflineBallot.merged.is_(True))
    )
    return MergeBacklogResponse(
        category=category,
        unmerged_count=unmerged_count,
        unmerged_voters=unmerged_voters,
        merged_count=merged.scalar_one(),
    )
