"""Turnout figures for a zone."""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Turnout:
    """Registered voters, distinct participants, and the resulting percentage."""

    total_voters: int
    voters_participated: int

    @property
    def percentage(self) -> float:
        return turnout_percentage(self.voters_participated, self.total_voters)


def turnout_percentage(voters_participated: int, total_voters: int) -> float:
    """Participation as a percentage rounded to two decimals.

    Returns 0 when no voters are registered.  Participants need not be a
    subset of the registered count: a paper ballot may select candidates
    outside the voter's assigned zone, and deactivated voters keep their
    ballots but leave the register.  The result is capped at 100 for those
    cases only; callers must already have removed rehearsal voters from
    both figures.
    """
    if total_voters <= 0:
        return 0.0
    pct = round(voters_participated / total_voters * 100, 2)
    return min(max(pct, 0.0), 100.0)


def count_distinct_voters(*voter_id_sets: Iterable[Any]) -> int:
    """Count distinct voter ids across one or more ballot sources."""
    distinct: set[Any] = set()
    for voter_ids in voter_id_sets:
        distinct.update(voter_ids)
    return len(distinct)
