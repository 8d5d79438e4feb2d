"""
conftest.py - Shared pytest fixtures for engine tests

Provides common fixtures used across unit, functional and conformance tests:
- Collateral tokens (WETH, WBTC) and the stable token (DSC)
- Price feeds at $2000 / $1000 with 8 decimals
- A two-asset engine and funded, approved users
- Snapshot and comparison utilities
"""

import pytest
from datetime import datetime
from typing import Any, Dict

from stablecoin import (
    Engine, InMemoryToken, StaticPriceFeed,
    to_wad,
)


T0 = datetime(2025, 1, 1)
ENGINE = "engine"
ETH_USD = 2000_00000000
BTC_USD = 1000_00000000
STARTING_BALANCE = to_wad(10)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def fund(token: InMemoryToken, account: str, amount: int, spender: str = ENGINE) -> None:
    """Mint amount of token to account and approve spender for the full balance."""
    token.mint(token.owner or "faucet", account, amount)
    token.approve(account, spender, token.balance_of(account))


def approve_stable(engine: Engine, account: str) -> None:
    """Let engine custody pull all of account's stable units."""
    stable = engine.get_stable_token()
    stable.approve(account, engine.custody, stable.balance_of(account))


def engine_state(engine: Engine, include_allowances: bool = True) -> Dict[str, Any]:
    """
    Everything an operation could change, for before/after comparisons.

    Allowances consumed by a compensated pull are not restored, so rollback
    checks pass include_allowances=False.
    """
    tokens = {asset: engine.get_collateral_token(asset) for asset in engine.get_collateral_assets()}
    stable = engine.get_stable_token()
    tokens[stable.symbol] = stable
    state = {
        'positions': engine.positions.state_dict(),
        'balances': {sym: dict(tok.balances) for sym, tok in tokens.items()},
        'supply': {sym: tok.total_supply() for sym, tok in tokens.items()},
        'events': len(engine.event_log),
    }
    if include_allowances:
        state['allowances'] = {sym: dict(tok.allowances) for sym, tok in tokens.items()}
    return state


def state_equals(before: Dict[str, Any], after: Dict[str, Any]) -> bool:
    """Compare two engine_state() captures, ignoring zero-valued entries."""
    def strip(d):
        if isinstance(d, dict):
            stripped = {k: strip(v) for k, v in d.items()}
            return {k: v for k, v in stripped.items() if v != 0 and v != {}}
        return d
    return strip(before) == strip(after)


def build_engine(eth_answer: int = ETH_USD, btc_answer: int = BTC_USD):
    """
    Fresh two-asset engine outside pytest fixtures (for hypothesis tests).

    Returns:
        (engine, tokens, feeds) with tokens and feeds keyed by symbol.
    """
    tokens = {
        "WETH": InMemoryToken("WETH"),
        "WBTC": InMemoryToken("WBTC"),
        "DSC": InMemoryToken("DSC", owner=ENGINE),
    }
    feeds = {
        "WETH": StaticPriceFeed(eth_answer, decimals=8, updated_at=T0),
        "WBTC": StaticPriceFeed(btc_answer, decimals=8, updated_at=T0),
    }
    engine = Engine(
        ["WETH", "WBTC"],
        [feeds["WETH"], feeds["WBTC"]],
        tokens["DSC"],
        collateral_tokens={"WETH": tokens["WETH"], "WBTC": tokens["WBTC"]},
        initial_time=T0,
    )
    return engine, tokens, feeds


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def weth():
    return InMemoryToken("WETH", "Wrapped Ether")


@pytest.fixture
def wbtc():
    return InMemoryToken("WBTC", "Wrapped Bitcoin")


@pytest.fixture
def dsc():
    """Stable token; only the engine custody account may mint."""
    return InMemoryToken("DSC", "Decentralized Stable Coin", owner=ENGINE)


@pytest.fixture
def eth_feed():
    return StaticPriceFeed(ETH_USD, decimals=8, updated_at=T0)


@pytest.fixture
def btc_feed():
    return StaticPriceFeed(BTC_USD, decimals=8, updated_at=T0)


# =============================================================================
# ENGINE FIXTURES
# =============================================================================

@pytest.fixture
def engine(weth, wbtc, dsc, eth_feed, btc_feed):
    """Two-asset engine at T0, nothing deposited."""
    return Engine(
        ["WETH", "WBTC"],
        [eth_feed, btc_feed],
        dsc,
        collateral_tokens={"WETH": weth, "WBTC": wbtc},
        initial_time=T0,
    )


@pytest.fixture
def funded_engine(engine, weth, wbtc):
    """Engine with alice and bob each holding 10 WETH and 10 WBTC, approved to custody."""
    for user in ("alice", "bob"):
        fund(weth, user, STARTING_BALANCE)
        fund(wbtc, user, STARTING_BALANCE)
    return engine


@pytest.fixture
def minted_engine(funded_engine):
    """alice has deposited 10 WETH and minted 100 DSC (health factor 100)."""
    funded_engine.deposit_collateral_and_mint_debt("alice", "WETH", STARTING_BALANCE, to_wad(100))
    return funded_engine


@pytest.fixture
def liquidatable_engine(minted_engine, eth_feed, weth, dsc):
    """
    alice is liquidatable after ETH drops to $18 (health factor 0.9).

    The liquidator deposited 20 WETH and minted 100 DSC at $2000, and has
    approved custody to pull those DSC.
    """
    engine = minted_engine
    fund(weth, "liquidator", to_wad(20))
    engine.deposit_collateral_and_mint_debt("liquidator", "WETH", to_wad(20), to_wad(100))
    approve_stable(engine, "liquidator")
    eth_feed.update_answer(18_00000000)
    return engine
