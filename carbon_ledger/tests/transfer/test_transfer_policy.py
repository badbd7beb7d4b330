import pytest

from carbon_ledger.core.errors import ClaimedAtSameLevel, InvalidDirection
from carbon_ledger.transfer.policy import (
    TransferDirection,
    classify_direction,
    enforce_direction,
)


class TestTransferDirection:
    @pytest.mark.parametrize(
        "source_level, target_level, has_claims, allow_same_level, expected",
        [
            (1, 2, True, True, TransferDirection.DOWNSTREAM),
            (1, 5, False, False, TransferDirection.DOWNSTREAM),
            (3, 1, True, True, TransferDirection.UPSTREAM),
            (2, 2, False, True, TransferDirection.SAME_LEVEL),
            (2, 2, True, True, TransferDirection.SAME_LEVEL_BLOCKED),
            (2, 2, False, False, TransferDirection.INVALID),
        ],
    )
    def test_classify_direction(
        self, source_level, target_level, has_claims, allow_same_level, expected
    ):
        assert (
            classify_direction(source_level, target_level, has_claims, allow_same_level)
            == expected
        )

    def test_permitted_directions_pass(self):
        enforce_direction(TransferDirection.DOWNSTREAM, 1, 2)
        enforce_direction(TransferDirection.SAME_LEVEL, 2, 2)

    def test_upstream_is_invalid(self):
        with pytest.raises(InvalidDirection) as exc_info:
            enforce_direction(TransferDirection.UPSTREAM, 3, 1)
        assert exc_info.value.details == {
            "direction": "upstream",
            "source_level": 3,
            "target_level": 1,
        }

    def test_claimed_same_level_is_blocked(self):
        with pytest.raises(ClaimedAtSameLevel):
            enforce_direction(TransferDirection.SAME_LEVEL_BLOCKED, 2, 2)

    def test_disallowed_same_level_is_invalid(self):
        with pytest.raises(InvalidDirection):
            enforce_direction(TransferDirection.INVALID, 2, 2)
