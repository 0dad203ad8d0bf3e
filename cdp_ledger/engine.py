"""
engine.py - Stateful collateralized-debt engine

The CollateralEngine is the central state manager. It is the only object that
mutates collateral balances and debt, and every mutation goes through an
atomic unit: all ledger and external effects of a public call apply, or none
do.

Key responsibilities:
    - Position operations: deposit, mint, redeem, burn and their compositions
    - Liquidation entry point (sizing and state machine live in liquidation.py)
    - Post-mutation solvency checks on every affected account
    - Engine-wide reentrancy guard
    - Observable events for external indexers
    - Read-only projections: values, health factors, summaries, audits
"""

from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union
import logging

from .core import (
    # Types
    Asset, CollateralDeposited, CollateralRedeemed, LiquidationResult,
    Custody, DebtToken, PriceOracle,
    # Constants
    DEFAULT_FEED_DECIMALS, MIN_HEALTH_FACTOR,
    # Exceptions
    BurnFailed, ConfigurationMismatch, InsufficientDebt, MintFailed, TransferFailed,
    # Helpers
    require_account, require_positive,
)
from .collateral import CollateralLedger, LedgerSnapshot
from .fixed_point import checked_add, checked_sub
from .guard import ReentrancyGuard
from .health import HealthFactorEngine, calculate_health_factor
from .valuation import ValuationEngine
from . import liquidation

logger = logging.getLogger(__name__)

Event = Union[CollateralDeposited, CollateralRedeemed]
EventSubscriber = Callable[[Event], None]


@dataclass(frozen=True, slots=True)
class _Snapshot:
    collateral: LedgerSnapshot
    debt: Dict[str, int]
    events: int


class CollateralEngine:
    """
    Collateral/debt accounting with atomic, solvency-checked operations.

    Every public mutating method takes the caller's identity explicitly and
    either completes or raises an EngineError with no visible effect.

    Args:
        asset_ids: Approved collateral assets, in registry order.
        oracles: Price oracle for each asset (same length as asset_ids).
        debt_token: Ledger of the synthetic value unit; the engine mints,
            pulls and burns through it.
        custody: Collateral transfer primitives.
        feed_decimals: Optional per-asset native oracle decimals (default 8).
        name: Identity of the engine itself on the debt token ledger.
        verbose: Log one INFO line per committed operation.

    Raises:
        ConfigurationMismatch: if the lists differ in length, an asset is
            listed twice, or feed decimals are out of range.

    Thread Safety:
        Not thread-safe. The reentrancy guard rejects nested calls; it does
        not serialize concurrent threads.

    Example:
        engine = CollateralEngine(["WETH"], [oracle], dsc, vault)
        engine.deposit_collateral_and_mint("alice", "WETH", 10 * PRECISION, 5_000 * PRECISION)
        engine.health_factor("alice")
    """

    def __init__(
        self,
        asset_ids: Sequence[str],
        oracles: Sequence[PriceOracle],
        debt_token: DebtToken,
        custody: Custody,
        feed_decimals: Optional[Mapping[str, int]] = None,
        name: str = "engine",
        verbose: bool = True,
    ):
        asset_ids = list(asset_ids)
        oracles = list(oracles)
        if len(asset_ids) != len(oracles):
            raise ConfigurationMismatch(
                f"{len(asset_ids)} assets but {len(oracles)} oracles"
            )
        feed_decimals = dict(feed_decimals or {})
        unknown = set(feed_decimals) - set(asset_ids)
        if unknown:
            raise ConfigurationMismatch(f"feed_decimals for unregistered assets: {sorted(unknown)}")

        registry: Dict[str, Asset] = {}
        for asset_id, oracle in zip(asset_ids, oracles):
            if asset_id in registry:
                raise ConfigurationMismatch(f"Asset {asset_id} listed twice")
            registry[asset_id] = Asset(
                asset_id, oracle, feed_decimals.get(asset_id, DEFAULT_FEED_DECIMALS)
            )

        self.name = name
        self.verbose = verbose
        self.debt_token = debt_token
        self.custody = custody
        self.registry: Mapping[str, Asset] = MappingProxyType(registry)
        self.collateral = CollateralLedger()
        self.valuation = ValuationEngine(self.registry)
        self.health = HealthFactorEngine(self.account_summary)
        self.events: List[Event] = []
        self._debt: Dict[str, int] = {}
        self._guard = ReentrancyGuard()
        self._subscribers: List[EventSubscriber] = []
        # Compensations for external effects of the in-flight call
        self._undo: Optional[List[Tuple[str, Callable[[], Any]]]] = None

    # ========================================================================
    # READ ACCESSORS (never mutate, never take the guard)
    # ========================================================================

    @property
    def collateral_assets(self) -> List[str]:
        """Registered collateral assets in registry order."""
        return list(self.registry)

    def oracle_for(self, asset_id: str) -> PriceOracle:
        return self.valuation.asset(asset_id).oracle

    def collateral_balance(self, account: str, asset_id: str) -> int:
        return self.collateral.balance_of(account, asset_id)

    def debt_of(self, account: str) -> int:
        return self._debt.get(account, 0)

    def usd_value(self, asset_id: str, amount: int) -> int:
        return self.valuation.usd_value(asset_id, amount)

    def token_amount_for_usd(self, asset_id: str, usd_amount: int) -> int:
        return self.valuation.asset_amount_for_value(asset_id, usd_amount)

    def total_collateral_value(self, account: str) -> int:
        """Value of every registered asset the account holds."""
        return self.valuation.total_collateral_value(self.collateral.balances(account))

    def account_summary(self, account: str) -> Tuple[int, int]:
        """Return (total_debt, total_collateral_value) for the account."""
        return self.debt_of(account), self.total_collateral_value(account)

    def health_factor(self, account: str) -> int:
        return self.health.health_factor(account)

    @staticmethod
    def calculate_health_factor(total_debt: int, collateral_value: int) -> int:
        return calculate_health_factor(total_debt, collateral_value)

    def quote_liquidation(self, asset_id: str, debt_to_cover: int) -> Tuple[int, int, int]:
        """Return (base_amount, bonus, total_seized) for covering debt_to_cover with asset_id."""
        require_positive(debt_to_cover, "debt_to_cover")
        return liquidation.quote_seizure(self.valuation, asset_id, debt_to_cover)

    def accounts(self) -> List[str]:
        """Every account with a collateral or debt entry, sorted."""
        return sorted(self.collateral.accounts() | set(self._debt))

    def verify_solvency(self) -> Dict[str, Any]:
        """
        Check the global solvency invariant over all accounts.

        Returns:
            Dict with keys:
            - 'valid': bool - True if every indebted account is at or above
              MIN_HEALTH_FACTOR
            - 'health_factors': Dict[str, int] - health factor per indebted account
            - 'violations': List[Dict] - account, debt, collateral_value, health_factor

        Example:
            report = engine.verify_solvency()
            assert report['valid'], report['violations']
        """
        health_factors = {}
        violations = []
        for account in self.accounts():
            debt, value = self.account_summary(account)
            if debt == 0:
                continue
            ratio = calculate_health_factor(debt, value)
            health_factors[account] = ratio
            if ratio < MIN_HEALTH_FACTOR:
                violations.append({
                    'account': account,
                    'debt': debt,
                    'collateral_value': value,
                    'health_factor': ratio,
                })
        return {
            'valid': len(violations) == 0,
            'health_factors': health_factors,
            'violations': violations,
        }

    def subscribe(self, callback: EventSubscriber) -> None:
        """Register a callback that receives every event of each committed operation."""
        self._subscribers.append(callback)

    @property
    def in_flight(self) -> bool:
        """True while a mutating entry point is executing."""
        return self._guard.held

    # ========================================================================
    # POSITION OPERATIONS (Mutating)
    # ========================================================================

    def deposit_collateral(self, account: str, asset_id: str, amount: int) -> None:
        """
        Deposit collateral: credit the ledger, then pull the asset into custody.

        Raises:
            InvalidAccount, InvalidAmount, UnsupportedAsset, TransferFailed, Reentrancy
        """
        require_account(account)
        require_positive(amount)
        self.valuation.asset(asset_id)
        with self._atomic("deposit_collateral"):
            self._deposit(account, asset_id, amount)
        self._log("deposit_collateral %s: %s %s", account, amount, asset_id)

    def mint(self, account: str, amount: int) -> None:
        """
        Mint value units against the account's collateral.

        Debt is increased and solvency asserted before the token is minted.

        Raises:
            InvalidAccount, InvalidAmount, BreaksHealthFactor, PriceUnavailable,
            MintFailed, Reentrancy
        """
        require_account(account)
        require_positive(amount)
        with self._atomic("mint"):
            self._mint(account, amount)
        self._log("mint %s: %s", account, amount)

    def redeem_collateral(self, account: str, asset_id: str, amount: int) -> None:
        """
        Withdraw collateral back to the account.

        Solvency is checked after the withdrawal, so an indebted account cannot
        redeem below its threshold.

        Raises:
            InvalidAccount, InvalidAmount, UnsupportedAsset, InsufficientCollateral,
            TransferFailed, BreaksHealthFactor, PriceUnavailable, Reentrancy
        """
        require_account(account)
        require_positive(amount)
        self.valuation.asset(asset_id)
        with self._atomic("redeem_collateral"):
            self._redeem(asset_id, amount, account, account)
            self.health.assert_solvent(account)
        self._log("redeem_collateral %s: %s %s", account, amount, asset_id)

    def burn(self, account: str, amount: int) -> None:
        """
        Repay debt with value units held by the account.

        Raises:
            InvalidAccount, InvalidAmount, InsufficientDebt, BurnFailed, Reentrancy
        """
        require_account(account)
        require_positive(amount)
        with self._atomic("burn"):
            self._burn_debt(amount, on_behalf_of=account, token_holder=account)
            self.health.assert_solvent(account)
        self._log("burn %s: %s", account, amount)

    def deposit_collateral_and_mint(
        self, account: str, asset_id: str, collateral_amount: int, mint_amount: int
    ) -> None:
        """
        Deposit, then mint, as one atomic operation.

        Raises:
            Any error of deposit_collateral or mint (InvalidAccount,
            InvalidAmount, ...); either both effects apply or neither does.
        """
        require_account(account)
        require_positive(collateral_amount, "collateral_amount")
        require_positive(mint_amount, "mint_amount")
        self.valuation.asset(asset_id)
        with self._atomic("deposit_collateral_and_mint"):
            self._deposit(account, asset_id, collateral_amount)
            self._mint(account, mint_amount)
        self._log(
            "deposit_collateral_and_mint %s: %s %s, minted %s",
            account, collateral_amount, asset_id, mint_amount,
        )

    def redeem_collateral_for_debt(
        self, account: str, asset_id: str, collateral_amount: int, burn_amount: int
    ) -> None:
        """
        Burn, then redeem, as one atomic operation.

        Raises:
            Any error of burn or redeem_collateral (InvalidAccount,
            InvalidAmount, ...); either both effects apply or neither does.
        """
        require_account(account)
        require_positive(collateral_amount, "collateral_amount")
        require_positive(burn_amount, "burn_amount")
        self.valuation.asset(asset_id)
        with self._atomic("redeem_collateral_for_debt"):
            self._burn_debt(burn_amount, on_behalf_of=account, token_holder=account)
            self._redeem(asset_id, collateral_amount, account, account)
            self.health.assert_solvent(account)
        self._log(
            "redeem_collateral_for_debt %s: burned %s, redeemed %s %s",
            account, burn_amount, collateral_amount, asset_id,
        )

    def liquidate(
        self, liquidator: str, target: str, asset_id: str, debt_to_cover: int
    ) -> LiquidationResult:
        """
        Liquidate part of an unhealthy position.

        The liquidator burns debt_to_cover of their own value units on the
        target's behalf and receives the equivalent collateral plus a 10% bonus.

        Raises:
            InvalidAccount, InvalidAmount, UnsupportedAsset, HealthFactorOk,
            InsufficientCollateral, TransferFailed, BurnFailed, HealthFactorNotImproved,
            BreaksHealthFactor, PriceUnavailable, Reentrancy
        """
        require_account(liquidator)
        require_account(target)
        require_positive(debt_to_cover, "debt_to_cover")
        self.valuation.asset(asset_id)
        with self._atomic("liquidate"):
            result = liquidation.execute_liquidation(
                self, liquidator, target, asset_id, debt_to_cover
            )
        self._log(
            "liquidate %s by %s: covered %s, seized %s %s, health %s -> %s",
            target, liquidator, debt_to_cover, result.total_seized, asset_id,
            result.starting_health, result.ending_health,
        )
        return result

    # ========================================================================
    # INTERNAL STEPS (only valid inside an atomic unit)
    # ========================================================================

    def _deposit(self, account: str, asset_id: str, amount: int) -> None:
        self.collateral.credit(account, asset_id, amount)
        self._emit(CollateralDeposited(account, asset_id, amount))
        self._pull_collateral(asset_id, account, amount)

    def _mint(self, account: str, amount: int) -> None:
        self._debt[account] = checked_add(self.debt_of(account), amount)
        self.health.assert_solvent(account)
        if not self.debt_token.mint(account, amount):
            raise MintFailed(f"Debt token refused to mint {amount} to {account}")

    def _redeem(self, asset_id: str, amount: int, redeemed_from: str, redeemed_to: str) -> None:
        self.collateral.debit(redeemed_from, asset_id, amount)
        self._emit(CollateralRedeemed(redeemed_from, redeemed_to, amount, asset_id))
        self._push_collateral(asset_id, redeemed_to, amount)

    def _burn_debt(self, amount: int, on_behalf_of: str, token_holder: str) -> None:
        """Reduce on_behalf_of's debt, destroying value units pulled from token_holder."""
        current = self.debt_of(on_behalf_of)
        self._debt[on_behalf_of] = checked_sub(
            current, amount, InsufficientDebt,
            f"{on_behalf_of} owes {current}, cannot burn {amount}",
        )
        if not self.debt_token.transfer_from(token_holder, self.name, amount):
            raise BurnFailed(f"Could not pull {amount} from {token_holder}")
        self._on_undo(
            f"return {amount} to {token_holder}",
            lambda: self.debt_token.transfer(token_holder, amount),
        )
        if self.debt_token.burn(amount) is False:
            raise BurnFailed(f"Debt token refused to burn {amount}")
        # Tokens are destroyed; undoing now means re-minting them to the holder.
        self._undo.pop()
        self._on_undo(
            f"re-mint {amount} to {token_holder}",
            lambda: self.debt_token.mint(token_holder, amount),
        )

    def _pull_collateral(self, asset_id: str, sender: str, amount: int) -> None:
        if not self.custody.transfer_in(asset_id, sender, amount):
            raise TransferFailed(f"transfer_in of {amount} {asset_id} from {sender} failed")
        self._on_undo(
            f"transfer_out {amount} {asset_id} to {sender}",
            lambda: self.custody.transfer_out(asset_id, sender, amount),
        )

    def _push_collateral(self, asset_id: str, recipient: str, amount: int) -> None:
        if not self.custody.transfer_out(asset_id, recipient, amount):
            raise TransferFailed(f"transfer_out of {amount} {asset_id} to {recipient} failed")
        self._on_undo(
            f"transfer_in {amount} {asset_id} from {recipient}",
            lambda: self.custody.transfer_in(asset_id, recipient, amount),
        )

    def _emit(self, event: Event) -> None:
        self.events.append(event)

    def _on_undo(self, label: str, action: Callable[[], Any]) -> None:
        self._undo.append((label, action))

    # ========================================================================
    # ATOMIC EXECUTION
    # ========================================================================

    def _snapshot(self) -> _Snapshot:
        return _Snapshot(
            collateral=self.collateral.snapshot(),
            debt=dict(self._debt),
            events=len(self.events),
        )

    def _restore(self, snapshot: _Snapshot) -> None:
        self.collateral.restore(snapshot.collateral)
        self._debt = dict(snapshot.debt)
        del self.events[snapshot.events:]

    @contextmanager
    def _atomic(self, operation: str) -> Iterator[None]:
        """
        Run one public operation as an all-or-nothing unit.

        1. Acquire the reentrancy guard (Reentrancy if already held)
        2. Snapshot ledger state, start an empty compensation list
        3. On any exception: restore the snapshot, run compensations in
           reverse order, re-raise
        4. On success: publish the operation's events to subscribers after
           the guard is released. A subscriber that raises is logged and
           skipped; the committed operation still returns normally.
        """
        with self._guard:
            snapshot = self._snapshot()
            self._undo = []
            try:
                yield
            except BaseException as exc:
                undo, self._undo = self._undo, None
                self._restore(snapshot)
                self._compensate(operation, undo)
                logger.warning("%s rolled back: %s: %s", operation, type(exc).__name__, exc)
                raise
            self._undo = None
            committed = self.events[snapshot.events:]
        self._publish(operation, committed)

    def _publish(self, operation: str, events: List[Event]) -> None:
        # Already committed: subscriber errors are logged, never raised to the caller.
        for event in events:
            for callback in self._subscribers:
                try:
                    callback(event)
                except Exception:
                    logger.exception("%s: subscriber %r raised on %r", operation, callback, event)

    def _compensate(self, operation: str, undo: List[Tuple[str, Callable[[], Any]]]) -> None:
        for label, action in reversed(undo):
            try:
                ok = action()
            except Exception:
                logger.exception("%s: compensation '%s' raised", operation, label)
                continue
            if ok is False:
                logger.error("%s: compensation '%s' failed", operation, label)

    def _log(self, message: str, *args: Any) -> None:
        if self.verbose:
            logger.info(message, *args)

    def __repr__(self) -> str:
        return (
            f"CollateralEngine({self.name}, {len(self.registry)} assets, "
            f"{len(self.accounts())} accounts)"
        )
