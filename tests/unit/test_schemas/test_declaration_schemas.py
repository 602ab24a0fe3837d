"""Tests for declaration and offline ballot request schemas."""

import uuid

import pytest
from pydantic import ValidationError

from tally_api.lib.tally import ElectionCategory
from tally_api.schemas.ballot import MergeResult, OfflineBallotCreateRequest
from tally_api.schemas.declaration import CodeSubmitRequest, DeclarationActionRequest


class TestCodeSubmitRequest:
    def test_principal_must_be_one_or_two(self) -> None:
        with pytest.raises(ValidationError):
            CodeSubmitRequest(principal=3, code="123456")

    def test_valid(self) -> None:
        request = CodeSubmitRequest(principal=2, code="123456")
        assert request.principal == 2


class TestDeclarationActionRequest:
    def test_empty_token_rejected(self) -> None:
        with pytest.raises(ValidationError):
            DeclarationActionRequest(declaration_token="")


class TestOfflineBallotCreateRequest:
    def test_requires_a_selection(self) -> None:
        with pytest.raises(ValidationError):
            OfflineBallotCreateRequest(voter_code="V0001", candidate_ids=[])

    def test_parses_ids(self) -> None:
        candidate = uuid.uuid4()
        request = OfflineBallotCreateRequest(voter_code="V0001", candidate_ids=[str(candidate)])
        assert request.candidate_ids == [candidate]


class TestMergeResult:
    def test_zero_counts_are_already_satisfied(self) -> None:
        assert MergeResult(category=ElectionCategory.TRUSTEES, merged_count=0, voter_count=0).already_satisfied
        assert not MergeResult(category=ElectionCategory.TRUSTEES, merged_count=1, voter_count=1).already_satisfied

    def test_negative_counts_rejected(self) -> None:
        with pytest.raises(ValidationError):
            MergeResult(category=ElectionCategory.TRUSTEES, merged_count=-1, voter_count=0)
