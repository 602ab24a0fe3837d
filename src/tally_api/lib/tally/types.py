"""Vocabulary shared by the tally library, ORM models and schemas."""

from dataclasses import dataclass
from enum import StrEnum


class ElectionCategory(StrEnum):
    """Election bodies contested in one cycle; every zone belongs to exactly one."""

    YUVA_PANKH = "yuva_pankh"
    KAROBARI = "karobari"
    TRUSTEES = "trustees"


class TallyView(StrEnum):
    """Which ballot sources a tally counts."""

    ONLINE = "online"
    OFFLINE = "offline"
    MERGED = "merged"


class CandidateKind(StrEnum):
    """Regular nominee or the per-zone "none of the above" placeholder."""

    NOMINEE = "nominee"
    NONE_OF_ABOVE = "none_of_above"


@dataclass(frozen=True)
class CandidateCount:
    """Vote counts for one candidate in one zone."""

    candidate_id: str
    name: str = ""
    kind: CandidateKind = CandidateKind.NOMINEE
    online_votes: int = 0
    offline_votes: int = 0

    @property
    def total_votes(self) -> int:
        return self.online_votes + self.offline_votes

    @property
    def is_none_of_above(self) -> bool:
        return self.kind == CandidateKind.NONE_OF_ABOVE


@dataclass(frozen=True)
class RankedCandidate:
    """A candidate with its 1-based position in the zone ranking."""

    rank: int
    count: CandidateCount
    is_winner: bool
