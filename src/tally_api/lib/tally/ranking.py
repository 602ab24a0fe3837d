"""Seat-based ranking of candidate vote counts.

Candidates are ordered by total votes descending.  Equal totals are broken
by candidate identifier ascending so the order is reproducible across runs
and processes; the tie-break carries no electoral meaning beyond that.
"""

from collections.abc import Iterable

from tally_api.lib.tally.types import CandidateCount, RankedCandidate


def ranking_key(count: CandidateCount) -> tuple[int, str]:
    """Sort key: most votes first, then lowest candidate id."""
    return (-count.total_votes, count.candidate_id)


def rank_candidates(counts: Iterable[CandidateCount], seats: int) -> list[RankedCandidate]:
    """Rank candidates and mark the first ``seats`` as winners.

    Args:
        counts: Per-candidate counts for a single zone.  Candidate ids must
            be unique.
        seats: Number of winnable positions in the zone.

    Returns:
        Ranked candidates; exactly ``min(seats, len(counts))`` are winners.

    Raises:
        ValueError: If ``seats`` is negative or a candidate id repeats.
    """
    if seats < 0:
        msg = f"seats must be >= 0, got {seats}"
        raise ValueError(msg)

    ordered = sorted(counts, key=ranking_key)
    seen: set[str] = set()
    for count in ordered:
        if count.candidate_id in seen:
            msg = f"Duplicate candidate id in zone ranking: {count.candidate_id}"
            raise ValueError(msg)
        seen.add(count.candidate_id)

    return [
        RankedCandidate(rank=position, count=count, is_winner=position <= seats)
        for position, count in enumerate(ordered, start=1)
    ]


def split_winners(ranked: list[RankedCandidate]) -> tuple[list[RankedCandidate], list[RankedCandidate]]:
    """Split a ranking into (winners, others), preserving order."""
    winners = [entry for entry in ranked if entry.is_winner]
    others = [entry for entry in ranked if not entry.is_winner]
    return winners, others


def combine_counts(
    online: dict[str, int],
    offline: dict[str, int],
    candidates: dict[str, CandidateCount],
) -> list[CandidateCount]:
    """Build per-candidate counts from online and offline vote maps.

    Every known candidate is included, zero-vote candidates too.  Candidate
    ids present only in the vote maps are kept with an empty name so no
    ballot goes uncounted.

    Args:
        online: Online votes keyed by candidate id.
        offline: Offline votes keyed by candidate id.
        candidates: Zone candidates keyed by id, carrying name and kind.

    Returns:
        One CandidateCount per candidate id.
    """
    ids = set(candidates) | set(online) | set(offline)
    combined = []
    for candidate_id in ids:
        base = candidates.get(candidate_id, CandidateCount(candidate_id=candidate_id))
        combined.append(
            CandidateCount(
                candidate_id=candidate_id,
                name=base.name,
                kind=base.kind,
                online_votes=online.get(candidate_id, 0),
                offline_votes=offline.get(candidate_id, 0),
            )
        )
    return combined
