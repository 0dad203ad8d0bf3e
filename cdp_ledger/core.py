"""
Core types for the collateralized-debt engine.

This module provides the foundational data structures and protocols:
1. Constants: fixed-point scale, liquidation parameters, numeric width
2. Protocols: PriceOracle, DebtToken, Custody (external collaborators)
3. Immutable data structures: Asset, CollateralEntry, events, LiquidationResult
4. Exceptions: EngineError and the domain-specific error types
5. Validation helpers shared by every entry point

Nothing in this module holds or mutates engine state.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Optional, Protocol, Tuple, runtime_checkable


# ============================================================================
# CONSTANTS
# ============================================================================

# 18-decimal fixed-point scale used for values, prices and health factors.
PRECISION = 10 ** 18

# Only LIQUIDATION_THRESHOLD / LIQUIDATION_PRECISION of collateral value
# counts toward solvency (50% => 200% overcollateralization).
LIQUIDATION_THRESHOLD = 50
LIQUIDATION_BONUS = 10
LIQUIDATION_PRECISION = 100

MIN_HEALTH_FACTOR = PRECISION

# Native decimals of the reference price feed.
DEFAULT_FEED_DECIMALS = 8
FEED_PRECISION = 10 ** DEFAULT_FEED_DECIMALS
ADDITIONAL_FEED_PRECISION = PRECISION // FEED_PRECISION

# Numeric width of every stored amount and intermediate product.
UINT256_MAX = 2 ** 256 - 1

# Health factor reported for accounts without debt.
MAX_HEALTH_FACTOR = UINT256_MAX


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from asset id to quantity held by one account.
BalanceMap = Dict[str, int]

# Raw oracle reading: (price in feed decimals, valid flag).
PriceReading = Tuple[int, bool]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class PriceOracle(Protocol):
    """
    Price feed for one or more collateral assets.

    Readings are treated as potentially stale or adversarial. The engine
    rejects any reading that is flagged invalid or carries a non-positive
    price.
    """

    def latest_price(self, asset_id: str) -> PriceReading:
        """Return (price, valid) for the asset, price in the feed's native decimals."""
        ...


@runtime_checkable
class DebtToken(Protocol):
    """
    Mintable/burnable ledger of the synthetic value unit.

    The engine is the only minter. Failures are reported by returning False
    (or by raising); the engine never retries.
    """

    def mint(self, account: str, amount: int) -> bool:
        ...

    def burn(self, amount: int) -> Optional[bool]:
        """Destroy tokens held by the engine. None or True means success."""
        ...

    def transfer_from(self, holder: str, recipient: str, amount: int) -> bool:
        ...

    def transfer(self, recipient: str, amount: int) -> bool:
        """Send tokens held by the engine. Only used to undo a pull."""
        ...


@runtime_checkable
class Custody(Protocol):
    """Transfer primitives for collateral assets held by the engine."""

    def transfer_in(self, asset_id: str, sender: str, amount: int) -> bool:
        ...

    def transfer_out(self, asset_id: str, recipient: str, amount: int) -> bool:
        ...


# ============================================================================
# EXCEPTIONS
# ============================================================================

class EngineError(Exception):
    """Base exception for all engine errors."""
    pass


class InvalidAmount(EngineError):
    """Raised when an amount is zero, negative or not an integer."""
    pass


class InvalidAccount(EngineError):
    """Raised when a caller or target identity is missing or empty."""
    pass


class UnsupportedAsset(EngineError):
    """Raised when an asset is not in the registry."""
    pass


class InsufficientCollateral(EngineError):
    """Raised when a debit exceeds the account's collateral balance."""
    pass


class InsufficientDebt(EngineError):
    """Raised when a debt reduction exceeds the account's outstanding debt."""
    pass


class TransferFailed(EngineError):
    """Raised when the custody collaborator reports a failed transfer."""
    pass


class MintFailed(EngineError):
    """Raised when the debt token refuses to mint."""
    pass


class BurnFailed(EngineError):
    """Raised when pulling or burning debt tokens fails."""
    pass


class BreaksHealthFactor(EngineError):
    """Raised when an operation would leave an account below MIN_HEALTH_FACTOR."""

    def __init__(self, ratio: int, account: Optional[str] = None):
        self.ratio = ratio
        self.account = account
        who = f" for {account}" if account else ""
        super().__init__(f"Health factor {ratio}{who} is below {MIN_HEALTH_FACTOR}")


class HealthFactorOk(EngineError):
    """Raised when liquidation is attempted on a healthy account."""
    pass


class HealthFactorNotImproved(EngineError):
    """Raised when a liquidation does not raise the target's health factor."""
    pass


class PriceUnavailable(EngineError):
    """Raised when an oracle reading is invalid, stale or non-positive."""
    pass


class ConfigurationMismatch(EngineError):
    """Raised when the asset registry cannot be built from the supplied lists."""
    pass


class Reentrancy(EngineError):
    """Raised when a mutating entry point is entered while another is running."""
    pass


class ArithmeticOverflow(EngineError):
    """Raised when a fixed-point result does not fit in the numeric width."""
    pass


class ArithmeticUnderflow(EngineError):
    """Raised when a checked subtraction would go below zero."""
    pass


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Asset:
    """
    Registry entry for an approved collateral type.

    Attributes:
        asset_id: Unique identifier of the collateral asset.
        oracle: Price feed consulted for this asset.
        feed_decimals: Native decimals of the oracle's price (0..18).
    """
    asset_id: str
    oracle: PriceOracle
    feed_decimals: int = DEFAULT_FEED_DECIMALS

    def __post_init__(self):
        if not self.asset_id or not self.asset_id.strip():
            raise ConfigurationMismatch("Asset id cannot be empty")
        if isinstance(self.feed_decimals, bool) or not isinstance(self.feed_decimals, int):
            raise ConfigurationMismatch(f"feed_decimals must be int, got {self.feed_decimals!r}")
        if not 0 <= self.feed_decimals <= 18:
            raise ConfigurationMismatch(
                f"feed_decimals for {self.asset_id} must be in 0..18, got {self.feed_decimals}"
            )

    @property
    def price_adjustment(self) -> int:
        """Factor lifting a raw feed price to 18-decimal fixed point."""
        return 10 ** (18 - self.feed_decimals)

    def __repr__(self) -> str:
        return f"Asset({self.asset_id}, decimals={self.feed_decimals})"


@dataclass(frozen=True, slots=True)
class CollateralEntry:
    """
    Audit record of a single collateral ledger mutation.

    Attributes:
        account: Account whose balance changed.
        asset: Asset id.
        delta: Signed change (positive for credit, negative for debit).
        balance: Balance after the change.
    """
    account: str
    asset: str
    delta: int
    balance: int


@dataclass(frozen=True, slots=True)
class CollateralDeposited:
    """Observable event: collateral credited to an account."""
    account: str
    asset: str
    amount: int


@dataclass(frozen=True, slots=True)
class CollateralRedeemed:
    """Observable event: collateral debited from one account and sent to a recipient."""
    redeemed_from: str
    redeemed_to: str
    amount: int
    asset: str


@dataclass(frozen=True, slots=True)
class LiquidationResult:
    """
    Outcome of a completed liquidation.

    Attributes:
        target: Liquidated account.
        liquidator: Account that supplied the debt tokens and received collateral.
        asset: Seized collateral asset.
        debt_covered: Debt burned on behalf of the target.
        base_amount: Collateral equivalent of debt_covered.
        bonus: Incentive on top of base_amount.
        total_seized: base_amount + bonus.
        starting_health: Target health factor before liquidation.
        ending_health: Target health factor after liquidation.
    """
    target: str
    liquidator: str
    asset: str
    debt_covered: int
    base_amount: int
    bonus: int
    total_seized: int
    starting_health: int
    ending_health: int


# ============================================================================
# VALIDATION HELPERS
# ============================================================================

def require_positive(amount: int, what: str = "amount") -> int:
    """
    Validate an externally supplied quantity.

    Raises:
        InvalidAmount: if amount is not an int, is a bool, or is <= 0.
        ArithmeticOverflow: if amount does not fit in UINT256.
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(f"{what} must be an integer, got {type(amount).__name__}")
    if amount <= 0:
        raise InvalidAmount(f"{what} must be greater than zero, got {amount}")
    if amount > UINT256_MAX:
        raise ArithmeticOverflow(f"{what} {amount} exceeds uint256")
    return amount


def require_account(account: str) -> str:
    """
    Validate an explicit caller identity.

    Raises:
        InvalidAccount: if account is not a non-blank string.
    """
    if not isinstance(account, str) or not account.strip():
        raise InvalidAccount(f"Account identity cannot be empty, got {account!r}")
    return account
