"""
test_stablecoin_core.py - Unit tests for constants, helpers and core types

Tests:
- System constants
- to_wad / from_wad / format_wad conversions
- require_amount validation
- EngineError details and message rendering
- TokenMove validation and immutability
- LiquidationResult totals
"""

import pytest
from dataclasses import FrozenInstanceError
from datetime import datetime
from decimal import Decimal

from stablecoin import (
    PRECISION, LIQUIDATION_THRESHOLD, LIQUIDATION_PRECISION, LIQUIDATION_BONUS,
    MIN_HEALTH_FACTOR, MAX_HEALTH_FACTOR, ORACLE_TIMEOUT,
    MOVE_PULL, MOVE_BURN,
    EngineError, InvalidAmount, HealthFactorBroken,
    TokenMove, EngineEvent, LiquidationResult, PriceRound,
    to_wad, from_wad, format_wad, require_amount,
)


class TestConstants:

    def test_fixed_point_scale(self):
        assert PRECISION == 10 ** 18
        assert MIN_HEALTH_FACTOR == PRECISION

    def test_liquidation_parameters(self):
        assert LIQUIDATION_THRESHOLD == 50
        assert LIQUIDATION_PRECISION == 100
        assert LIQUIDATION_BONUS == 10

    def test_max_health_factor_is_uint256_max(self):
        assert MAX_HEALTH_FACTOR == 2 ** 256 - 1

    def test_oracle_timeout_three_hours(self):
        assert ORACLE_TIMEOUT.total_seconds() == 3 * 3600


class TestWadConversion:

    def test_to_wad_int(self):
        assert to_wad(2000) == 2000 * 10 ** 18

    def test_to_wad_str_and_decimal(self):
        assert to_wad("0.5") == 5 * 10 ** 17
        assert to_wad(Decimal("1.25")) == 125 * 10 ** 16

    def test_to_wad_truncates_beyond_18_decimals(self):
        assert to_wad("0.0000000000000000019") == 1

    def test_to_wad_rejects_float(self):
        with pytest.raises(ValueError, match="float"):
            to_wad(0.1)

    def test_to_wad_rejects_non_finite(self):
        with pytest.raises(ValueError):
            to_wad(Decimal("NaN"))

    def test_from_wad(self):
        assert from_wad(5 * 10 ** 17) == Decimal("0.5")

    def test_format_wad(self):
        assert format_wad(to_wad(2000)) == "2,000.0000"

    def test_format_wad_sentinel(self):
        assert format_wad(MAX_HEALTH_FACTOR) == "max"


class TestRequireAmount:

    def test_positive_int_passes(self):
        assert require_amount(1) == 1

    @pytest.mark.parametrize("value", [0, -1, -10 ** 18])
    def test_non_positive_raises_invalid_amount(self, value):
        with pytest.raises(InvalidAmount) as exc:
            require_amount(value, "debt_to_cover")
        assert exc.value.details == {"debt_to_cover": value}

    @pytest.mark.parametrize("value", [1.0, "1", True, None, Decimal("1")])
    def test_non_int_raises_value_error(self, value):
        with pytest.raises(ValueError):
            require_amount(value)


class TestEngineError:

    def test_details_rendered_into_message(self):
        err = HealthFactorBroken("health factor below minimum", account="alice")
        assert err.details == {"account": "alice"}
        assert "account=alice" in str(err)
        assert isinstance(err, EngineError)

    def test_default_message_is_class_name(self):
        assert str(InvalidAmount()) == "InvalidAmount"


class TestTokenMove:

    def test_valid_move(self):
        move = TokenMove(kind=MOVE_PULL, token="WETH", account="alice", amount=5)
        assert move.kind == MOVE_PULL
        assert "alice→custody" in repr(move)

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValueError, match="Unknown token move kind"):
            TokenMove(kind="STEAL", token="WETH", account="alice", amount=5)

    def test_zero_amount_rejected(self):
        with pytest.raises(ValueError):
            TokenMove(kind=MOVE_BURN, token="DSC", account="alice", amount=0)

    def test_empty_token_rejected(self):
        with pytest.raises(ValueError):
            TokenMove(kind=MOVE_BURN, token="", account="alice", amount=1)

    def test_immutable(self):
        move = TokenMove(kind=MOVE_PULL, token="WETH", account="alice", amount=5)
        with pytest.raises(FrozenInstanceError):
            move.amount = 10


class TestValueTypes:

    def test_liquidation_result_total_seized(self):
        result = LiquidationResult(
            target="alice", liquidator="bob", asset="WETH",
            debt_covered=100, collateral_seized=50, bonus=5,
        )
        assert result.total_seized == 55
        assert result.moves == ()
        assert result.health_factor_before is None

    def test_price_round_defaults(self):
        reading = PriceRound(answer=1, updated_at=datetime(2025, 1, 1))
        assert reading.round_complete is True
        assert reading.round_id == 0

    def test_event_repr_includes_sequence(self):
        event = EngineEvent("DebtMinted", 7, datetime(2025, 1, 1), "alice", to_wad(100))
        assert "#7 DebtMinted alice" in repr(event)
