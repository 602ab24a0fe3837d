"""Tally library: pure vote ranking and turnout arithmetic.

Public API:
    - ElectionCategory / TallyView / CandidateKind: domain enums
    - CandidateCount / RankedCandidate: ranking inputs and outputs
    - rank_candidates: order candidates and mark the top ``seats`` as winners
    - split_winners: separate winners from the remaining candidates
    - combine_counts: merge online and offline vote maps per candidate
    - Turnout / turnout_percentage / count_distinct_voters: participation figures
"""

from tally_api.lib.tally.ranking import combine_counts, rank_candidates, ranking_key, split_winners
from tally_api.lib.tally.turnout import Turnout, count_distinct_voters, turnout_percentage
from tally_api.lib.tally.types import (
    CandidateCount,
    CandidateKind,
    ElectionCategory,
    RankedCandidate,
    TallyView,
)

__all__ = [
    "CandidateCount",
    "CandidateKind",
    "ElectionCategory",
    "RankedCandidate",
    "TallyView",
    "Turnout",
    "combine_counts",
    "count_distinct_voters",
    "rank_candidates",
    "ranking_key",
    "split_winners",
    "turnout_percentage",
]
