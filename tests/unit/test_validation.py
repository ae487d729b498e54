"""
Unit tests for input validation.
"""

from decimal import Decimal

import pytest

from penny.utils.validation import (
    validate_address,
    validate_amount,
    validate_auction_id,
    validate_participants,
    validate_version,
    validate_weights,
)

A = "0x" + "11" * 20
B = "0x" + "22" * 20
C = "0x" + "33" * 20


class TestAddresses:
    """Tests for address and participant validation."""

    def test_valid(self):
        assert validate_address(A) == (True, "")

    @pytest.mark.parametrize("value", [None, "", 42, "0x1234", "11" * 21])
    def test_invalid(self, value):
        valid, err = validate_address(value, "seller")
        assert not valid
        assert err.startswith("seller")

    def test_participants_distinct(self):
        assert validate_participants(A, B, C)[0]

        valid, err = validate_participants(A, B, A.upper().replace("0X", "0x"))
        assert not valid
        assert "distinct" in err

    def test_participants_invalid_role(self):
        valid, err = validate_participants(A, "nope", C)
        assert not valid
        assert "bidder" in err


class TestAmounts:
    """Tests for monetary amounts."""

    @pytest.mark.parametrize("value", [Decimal("0"), Decimal("1.50"), 3, "99.99"])
    def test_valid(self, value):
        assert validate_amount(value)[0]

    @pytest.mark.parametrize("value", [1.5, True, None, "abc", "-1", "0.001", "NaN", "Infinity", "2000000000"])
    def test_invalid(self, value):
        assert not validate_amount(value)[0]


class TestMisc:
    """Tests for versions, auction ids and weights."""

    def test_version(self):
        assert validate_version(0)[0]
        assert validate_version(5)[0]
        assert not validate_version(-1)[0]
        assert not validate_version(True)[0]
        assert not validate_version("5")[0]

    def test_auction_id(self):
        assert validate_auction_id("auction-1")[0]
        assert not validate_auction_id("")[0]
        assert not validate_auction_id(None)[0]
        assert not validate_auction_id("x" * 129)[0]

    @pytest.mark.parametrize("weights,quorum,expected", [
        ([40, 40, 50], 80, True),
        ([40, 40, 50], 130, True),
        ([40, 40, 50], 131, False),
        ([40, 40, 50], 0, False),
        ([40, 40], 80, False),
        ([40, -1, 50], 80, False),
        ([40, 40, 50], None, False),
    ])
    def test_weights(self, weights, quorum, expected):
        assert validate_weights(weights, quorum)[0] is expected
