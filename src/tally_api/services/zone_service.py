"""Zone registry read service.

Zones, candidates and voter assignments are owned by the registration
system; this module only reads them.
"""

import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tally_api.core.errors import NotFoundError
from tally_api.lib.tally import ElectionCategory
from tally_api.models.candidate import Candidate
from tally_api.models.voter import Voter, VoterZoneAssignment
from tally_api.models.zone import Zone


async def get_zone(session: AsyncSession, zone_id: uuid.UUID, category: ElectionCategory) -> Zone:
    """Get a zone by ID, scoped to an election category.

    Args:
        session: The database session.
        zone_id: The zone UUID.
        category: The category the zone must belong to.

    Returns:
        The Zone.

    Raises:
        NotFoundError: If the zone does not exist or belongs to another category.
    """
    result = await session.execute(select(Zone).where(Zone.id == zone_id))
    zone = result.scalar_one_or_none()
    if zone is None or zone.election_category != category:
        msg = f"Zone {zone_id} not found in category {category}"
        raise NotFoundError(msg)
    return zone


async def list_zones(
    session: AsyncSession,
    category: ElectionCategory,
    *,
    active_only: bool = True,
) -> list[Zone]:
    """List the zones of a category in display order (ties by name)."""
    query = select(Zone).where(Zone.election_category == category)
    if active_only:
        query = query.where(Zone.is_active.is_(True))
    query = query.order_by(Zone.display_order, Zone.name)
    result = await session.execute(query)
    return list(result.scalars().all())


async def list_candidates(session: AsyncSession, zone_id: uuid.UUID) -> list[Candidate]:
    """List every candidate registered in a zone, NONE_OF_ABOVE included."""
    result = await session.execute(select(Candidate).where(Candidate.zone_id == zone_id).order_by(Candidate.id))
    return list(result.scalars().all())


async def count_registered_voters(
    session: AsyncSession,
    zone_id: uuid.UUID,
    category: ElectionCategory,
    *,
    test_prefix: str = "TEST_",
) -> int:
    """Count active voters assigned to a zone for a category.

    Voters whose code starts with ``test_prefix`` are rehearsal accounts and
    are not part of the electorate.
    """
    query = (
        select(func.count(VoterZoneAssignment.id))
        .join(Voter, Voter.id == VoterZoneAssignment.voter_id)
        .where(
            VoterZoneAssignment.zone_id == zone_id,
            VoterZoneAssignment.election_category == category,
            Voter.is_active.is_(True),
        )
    )
    if test_prefix:
        query = query.where(~Voter.voter_code.startswith(test_prefix, autoescape=True))
    result = await session.execute(query)
    return result.scalar_one()


async def get_voter_by_code(session: AsyncSession, voter_code: str) -> Voter | None:
    """Look up a voter by the printed voter code."""
    result = await session.execute(select(Voter).where(Voter.voter_code == voter_code))
    return result.scalar_one_or_none()

