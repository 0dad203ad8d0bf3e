"""
cdp_ledger - Collateralized-Debt Accounting Engine

Account holders deposit approved collateral, mint a synthetic value unit
against it up to a 200% overcollateralization threshold, and can be
liquidated by third parties once their health factor drops below 1.0.

Usage:
    from cdp_ledger import CollateralEngine, StaticPriceOracle, PRECISION

    oracle = StaticPriceOracle({"WETH": 2000 * 10**8})
    engine = CollateralEngine(["WETH"], [oracle], debt_token, custody)

    engine.deposit_collateral("alice", "WETH", 1 * PRECISION)
    engine.mint("alice", 1000 * PRECISION)       # health factor exactly 1.0

    oracle.update_price("WETH", 1000 * 10**8)    # alice is now liquidatable
    engine.liquidate("bob", "alice", "WETH", 500 * PRECISION)
"""

# Core types
from .core import (
    PriceOracle,
    DebtToken,
    Custody,
    Asset,
    CollateralEntry,
    CollateralDeposited,
    CollateralRedeemed,
    LiquidationResult,
    EngineError,
    InvalidAmount,
    InvalidAccount,
    UnsupportedAsset,
    InsufficientCollateral,
    InsufficientDebt,
    TransferFailed,
    MintFailed,
    BurnFailed,
    BreaksHealthFactor,
    HealthFactorOk,
    HealthFactorNotImproved,
    PriceUnavailable,
    ConfigurationMismatch,
    Reentrancy,
    ArithmeticOverflow,
    ArithmeticUnderflow,
    PRECISION,
    LIQUIDATION_THRESHOLD,
    LIQUIDATION_BONUS,
    LIQUIDATION_PRECISION,
    MIN_HEALTH_FACTOR,
    MAX_HEALTH_FACTOR,
    FEED_PRECISION,
    ADDITIONAL_FEED_PRECISION,
    UINT256_MAX,
)

# Fixed-point arithmetic
from .fixed_point import (
    checked_add,
    checked_sub,
    checked_mul,
    checked_div,
    mul_div,
)

# Components
from .collateral import CollateralLedger
from .valuation import ValuationEngine, calculate_usd_value, calculate_asset_amount
from .health import HealthFactorEngine, calculate_health_factor
from .guard import ReentrancyGuard
from .liquidation import LiquidationStage, calculate_seizure, quote_seizure
from .engine import CollateralEngine

# Oracles
from .price_feeds import StaticPriceOracle, TimeSeriesPriceOracle, DEFAULT_STALE_AFTER

# Configuration
from .config import (
    AssetConfig,
    OracleConfig,
    EngineConfig,
    load_config,
    parse_config,
    build_engine,
    build_price_oracle,
)

__all__ = [
    # Protocols
    'PriceOracle', 'DebtToken', 'Custody',
    # Records
    'Asset', 'CollateralEntry', 'CollateralDeposited', 'CollateralRedeemed',
    'LiquidationResult',
    # Errors
    'EngineError', 'InvalidAmount', 'InvalidAccount', 'UnsupportedAsset', 'InsufficientCollateral',
    'InsufficientDebt', 'TransferFailed', 'MintFailed', 'BurnFailed',
    'BreaksHealthFactor', 'HealthFactorOk', 'HealthFactorNotImproved',
    'PriceUnavailable', 'ConfigurationMismatch', 'Reentrancy', 'ArithmeticOverflow',
    'ArithmeticUnderflow',
    # Constants
    'PRECISION', 'LIQUIDATION_THRESHOLD', 'LIQUIDATION_BONUS', 'LIQUIDATION_PRECISION',
    'MIN_HEALTH_FACTOR', 'MAX_HEALTH_FACTOR', 'FEED_PRECISION',
    'ADDITIONAL_FEED_PRECISION', 'UINT256_MAX',
    # Fixed point
    'checked_add', 'checked_sub', 'checked_mul', 'checked_div', 'mul_div',
    # Components
    'CollateralLedger', 'ValuationEngine', 'calculate_usd_value', 'calculate_asset_amount',
    'HealthFactorEngine', 'calculate_health_factor', 'ReentrancyGuard',
    'LiquidationStage', 'calculate_seizure', 'quote_seizure',
    'CollateralEngine',
    # Oracles
    'StaticPriceOracle', 'TimeSeriesPriceOracle', 'DEFAULT_STALE_AFTER',
    # Configuration
    'AssetConfig', 'OracleConfig', 'EngineConfig',
    'load_config', 'parse_config', 'build_engine', 'build_price_oracle',
]

__version__ = '1.0.0'
