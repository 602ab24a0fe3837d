"""Unit tests for turnout arithmetic."""

import uuid

import pytest

from tally_api.lib.tally import Turnout, count_distinct_voters, turnout_percentage


class TestTurnoutPercentage:
    """Tests for turnout_percentage()."""

    def test_no_registered_voters_is_zero(self) -> None:
        assert turnout_percentage(0, 0) == 0.0

    def test_registered_but_no_ballots_is_zero(self) -> None:
        """100 registered voters and no ballots give 0%."""
        assert turnout_percentage(0, 100) == 0.0

    def test_rounds_to_two_decimals(self) -> None:
        assert turnout_percentage(1, 3) == 33.33
        assert turnout_percentage(2, 3) == 66.67

    def test_full_turnout(self) -> None:
        assert turnout_percentage(50, 50) == 100.0

    def test_participants_beyond_register_capped(self) -> None:
        # Paper ballots cast outside the assigned zone can outnumber the register.
        assert turnout_percentage(12, 10) == 100.0

    @pytest.mark.parametrize(("participated", "total"), [(0, 1), (3, 7), (7, 7), (9, 7), (5, 0), (0, -1)])
    def test_always_within_bounds(self, participated: int, total: int) -> None:
        assert 0.0 <= turnout_percentage(participated, total) <= 100.0


class TestTurnout:
    """Tests for the Turnout value object."""

    def test_percentage_property(self) -> None:
        assert Turnout(total_voters=200, voters_participated=50).percentage == 25.0


class TestCountDistinctVoters:
    """Tests for count_distinct_voters()."""

    def test_voter_with_many_selections_counts_once(self) -> None:
        voter = uuid.uuid4()
        assert count_distinct_voters([voter, voter, voter]) == 1

    def test_union_across_sources(self) -> None:
        a, b, c = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        assert count_distinct_voters([a, b], [b, c]) == 3

    def test_no_sources(self) -> None:
        assert count_distinct_voters() == 0
