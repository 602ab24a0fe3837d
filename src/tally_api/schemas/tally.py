"""Pydantic v2 schemas for tally endpoints."""

import uuid

from pydantic import BaseModel, Field

from tally_api.lib.tally import ElectionCategory, TallyView


class RankedCandidateResult(BaseModel):
    """One candidate's position in a zone tally."""

    rank: int = Field(ge=1)
    candidate_id: uuid.UUID
    candidate_name: str
    is_none_of_above: bool = Field(description="Placeholder candidate; UIs may render it differently")
    online_votes: int = Field(ge=0)
    offline_votes: int = Field(ge=0)
    total_votes: int = Field(ge=0)
    is_winner: bool


class ZoneTallyView(BaseModel):
    """Ranked results and turnout for one zone, computed on demand."""

    zone_id: uuid.UUID
    zone_code: str
    zone_name: str
    category: ElectionCategory
    view: TallyView
    seats: int = Field(ge=0)
    ranked: list[RankedCandidateResult]
    winners: list[RankedCandidateResult]
    others: list[RankedCandidateResult]
    total_voters: int = Field(ge=0, description="Registered voters assigned to the zone")
    voters_participated: int = Field(ge=0, description="Distinct voters with at least one ballot in the view")
    turnout_percentage: float = Field(ge=0, le=100)
    overlapping_voters: int = Field(
        default=0,
        ge=0,
        description="Merged view only: voters with both online and offline ballots (both are counted)",
    )


class CategoryTallyResponse(BaseModel):
    """Tallies for every active zone of a category, in display order."""

    category: ElectionCategory
    view: TallyView
    zones: list[ZoneTallyView]


class WinnerItem(BaseModel):
    """Flat winner row across zones."""

    zone_id: uuid.UUID
    zone_code: str
    zone_name: str
    rank: int
    candidate_id: uuid.UUID
    candidate_name: str
    total_votes: int
    is_none_of_above: bool


class WinnersListResponse(BaseModel):
    """All winners of a category."""

    category: ElectionCategory
    view: TallyView
    winners: list[WinnerItem]
