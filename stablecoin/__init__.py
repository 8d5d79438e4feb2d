"""
stablecoin - Over-collateralized stable-unit issuance engine

Users lock approved collateral, mint stable units against it while their
health factor stays at or above the minimum, and anyone may liquidate a
position that falls below it.

Usage:
    from stablecoin import Engine, InMemoryToken, StaticPriceFeed, to_wad

    weth = InMemoryToken("WETH")
    dsc = InMemoryToken("DSC", owner="engine")
    eth_usd = StaticPriceFeed(2000_00000000)

    engine = Engine(["WETH"], [eth_usd], dsc, collateral_tokens={"WETH": weth})

    weth.mint("faucet", "alice", to_wad(10))
    weth.approve("alice", "engine", to_wad(10))
    engine.deposit_collateral_and_mint_debt("alice", "WETH", to_wad(10), to_wad(100))
"""

# Core types
from .core import (
    PriceRound,
    PriceFeed,
    TokenLedger,
    TokenMove,
    EngineEvent,
    AccountInformation,
    LiquidationResult,
    to_wad,
    from_wad,
    format_wad,
    require_amount,
)

# Constants
from .core import (
    PRECISION,
    WAD_DECIMALS,
    LIQUIDATION_THRESHOLD,
    LIQUIDATION_PRECISION,
    LIQUIDATION_BONUS,
    MIN_HEALTH_FACTOR,
    MAX_HEALTH_FACTOR,
    ORACLE_TIMEOUT,
    DEFAULT_FEED_DECIMALS,
    DEFAULT_CUSTODY,
    MOVE_PULL,
    MOVE_PUSH,
    MOVE_MINT,
    MOVE_BURN,
    EVENT_COLLATERAL_DEPOSITED,
    EVENT_COLLATERAL_REDEEMED,
    EVENT_DEBT_MINTED,
    EVENT_DEBT_BURNED,
    EVENT_LIQUIDATION,
)

# Exceptions
from .core import (
    EngineError,
    InvalidAmount,
    AssetNotAllowed,
    AssetConfigMismatch,
    InvalidConfiguration,
    TransferFailed,
    MintFailed,
    BurnFailed,
    InsufficientCollateral,
    InsufficientDebt,
    HealthFactorBroken,
    HealthFactorOk,
    LiquidationDidNotImprove,
    InvalidPriceFeed,
    ReentrantCall,
)

# Oracle
from .oracle import OracleAdapter, StaticPriceFeed, TimeSeriesPriceFeed

# Tokens
from .tokens import TokenLedgerAdapter, InMemoryToken

# Positions
from .positions import PositionLedger, PositionSnapshot

# Solvency
from .solvency import (
    SolvencyEngine,
    calculate_usd_value,
    calculate_token_amount_from_usd,
    calculate_collateral_value,
    calculate_health_factor,
    max_mintable,
)

# Liquidation
from .liquidation import LiquidationEngine, calculate_liquidation_amounts

# Engine
from .engine import Engine

# Simulation
from .simulation import (
    generate_price_paths,
    price_to_answer,
    run_stress_scenario,
    StressReport,
    StepMetrics,
)


__all__ = [
    # Core types
    'PriceRound',
    'PriceFeed',
    'TokenLedger',
    'TokenMove',
    'EngineEvent',
    'AccountInformation',
    'LiquidationResult',
    'to_wad',
    'from_wad',
    'format_wad',
    'require_amount',

    # Constants
    'PRECISION',
    'WAD_DECIMALS',
    'LIQUIDATION_THRESHOLD',
    'LIQUIDATION_PRECISION',
    'LIQUIDATION_BONUS',
    'MIN_HEALTH_FACTOR',
    'MAX_HEALTH_FACTOR',
    'ORACLE_TIMEOUT',
    'DEFAULT_FEED_DECIMALS',
    'DEFAULT_CUSTODY',
    'MOVE_PULL',
    'MOVE_PUSH',
    'MOVE_MINT',
    'MOVE_BURN',
    'EVENT_COLLATERAL_DEPOSITED',
    'EVENT_COLLATERAL_REDEEMED',
    'EVENT_DEBT_MINTED',
    'EVENT_DEBT_BURNED',
    'EVENT_LIQUIDATION',

    # Exceptions
    'EngineError',
    'InvalidAmount',
    'AssetNotAllowed',
    'AssetConfigMismatch',
    'InvalidConfiguration',
    'TransferFailed',
    'MintFailed',
    'BurnFailed',
    'InsufficientCollateral',
    'InsufficientDebt',
    'HealthFactorBroken',
    'HealthFactorOk',
    'LiquidationDidNotImprove',
    'InvalidPriceFeed',
    'ReentrantCall',

    # Oracle
    'OracleAdapter',
    'StaticPriceFeed',
    'TimeSeriesPriceFeed',

    # Tokens
    'TokenLedgerAdapter',
    'InMemoryToken',

    # Positions
    'PositionLedger',
    'PositionSnapshot',

    # Solvency
    'SolvencyEngine',
    'calculate_usd_value',
    'calculate_token_amount_from_usd',
    'calculate_collateral_value',
    'calculate_health_factor',
    'max_mintable',

    # Liquidation
    'LiquidationEngine',
    'calculate_liquidation_amounts',

    # Engine
    'Engine',

    # Simulation
    'generate_price_paths',
    'price_to_answer',
    'run_stress_scenario',
    'StressReport',
    'StepMetrics',
]

__version__ = '1.0.0'
