"""
test_positions.py - Unit tests for the PositionLedger

Tests:
- Deposits and withdrawals per asset
- Validation order (amount before asset)
- Debt increase / decrease and InsufficientDebt
- Snapshot / restore
- Aggregates
"""

import pytest

from stablecoin import (
    PositionLedger, MOVE_PUSH,
    AssetNotAllowed, InsufficientCollateral, InsufficientDebt, InvalidAmount,
    InvalidConfiguration,
)


@pytest.fixture
def positions():
    return PositionLedger(["WETH", "WBTC"])


class TestConstruction:

    def test_assets_in_order(self, positions):
        assert positions.collateral_assets == ("WETH", "WBTC")

    def test_duplicate_asset_rejected(self):
        with pytest.raises(InvalidConfiguration):
            PositionLedger(["WETH", "WETH"])


class TestCollateral:

    def test_deposit_accumulates(self, positions):
        positions.deposit("alice", "WETH", 5)
        positions.deposit("alice", "WETH", 7)
        assert positions.get_collateral("alice", "WETH") == 12
        assert positions.get_collateral("alice", "WBTC") == 0

    def test_zero_amount_checked_before_asset(self, positions):
        with pytest.raises(InvalidAmount):
            positions.deposit("alice", "DOGE", 0)

    def test_unknown_asset(self, positions):
        with pytest.raises(AssetNotAllowed):
            positions.deposit("alice", "DOGE", 1)

    def test_withdraw_returns_push(self, positions):
        positions.deposit("alice", "WETH", 10)
        move = positions.withdraw("alice", "WETH", 4, beneficiary="bob")
        assert move.kind == MOVE_PUSH
        assert move.account == "bob"
        assert move.amount == 4
        assert positions.get_collateral("alice", "WETH") == 6

    def test_withdraw_more_than_deposited(self, positions):
        positions.deposit("alice", "WETH", 10)
        with pytest.raises(InsufficientCollateral) as exc:
            positions.withdraw("alice", "WETH", 11, beneficiary="alice")
        assert exc.value.details["available"] == 10
        assert positions.get_collateral("alice", "WETH") == 10

    def test_balances_include_all_assets(self, positions):
        positions.deposit("alice", "WBTC", 3)
        assert positions.get_collateral_balances("alice") == {"WETH": 0, "WBTC": 3}
        assert positions.get_collateral_balances("nobody") == {"WETH": 0, "WBTC": 0}


class TestDebt:

    def test_increase_and_decrease(self, positions):
        positions.increase_debt("alice", 100)
        positions.decrease_debt("alice", 40)
        assert positions.get_debt("alice") == 60

    def test_decrease_beyond_debt(self, positions):
        positions.increase_debt("alice", 10)
        with pytest.raises(InsufficientDebt):
            positions.decrease_debt("alice", 11)
        assert positions.get_debt("alice") == 10

    def test_zero_debt_change_rejected(self, positions):
        with pytest.raises(InvalidAmount):
            positions.increase_debt("alice", 0)


class TestSnapshot:

    def test_restore_discards_later_changes(self, positions):
        positions.deposit("alice", "WETH", 10)
        positions.increase_debt("alice", 5)
        snap = positions.snapshot()

        positions.deposit("alice", "WETH", 1)
        positions.deposit("bob", "WBTC", 1)
        positions.decrease_debt("alice", 5)
        positions.restore(snap)

        assert positions.state_dict() == {
            'collateral': {'alice': {'WETH': 10}},
            'debt': {'alice': 5},
        }

    def test_snapshot_is_independent_copy(self, positions):
        positions.deposit("alice", "WETH", 10)
        snap = positions.snapshot()
        positions.restore(snap)
        positions.deposit("alice", "WETH", 10)
        positions.restore(snap)
        assert positions.get_collateral("alice", "WETH") == 10


class TestAggregates:

    def test_totals(self, positions):
        positions.deposit("alice", "WETH", 10)
        positions.deposit("bob", "WETH", 5)
        positions.increase_debt("alice", 3)
        positions.increase_debt("bob", 4)
        assert positions.total_collateral("WETH") == 15
        assert positions.total_debt() == 7
        assert positions.accounts() == {"alice", "bob"}
