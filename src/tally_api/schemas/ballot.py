"""Pydantic v2 schemas for offline ballot entry and reconciliation."""

import uuid

from pydantic import BaseModel, Field

from tally_api.lib.tally import ElectionCategory


class OfflineBallotCreateRequest(BaseModel):
    """Selections transcribed from one paper ballot."""

    voter_code: str = Field(min_length=1, max_length=50, description="Printed voter ID (VID)")
    candidate_ids: list[uuid.UUID] = Field(
        min_length=1,
        description="Selected candidates across the category's zones, NONE_OF_ABOVE included",
    )
    notes: str | None = Field(default=None, max_length=1000)


class OfflineBallotCreateResponse(BaseModel):
    """Result of recording an offline ballot."""

    voter_code: str
    ballots_recorded: int


class MergeResult(BaseModel):
    """Outcome of a merge call; zero counts mean nothing was pending."""

    category: ElectionCategory
    merged_count: int = Field(ge=0, description="Offline ballot rows flipped to merged")
    voter_count: int = Field(ge=0, description="Distinct voters among the merged rows")

    @property
    def already_satisfied(self) -> bool:
        return self.merged_count == 0


class MergeBacklogResponse(BaseModel):
    """Pending and completed offline ballots for a category."""

    category: ElectionCategory
    unmerged_count: int
    unmerged_voters: int
    merged_count: int
