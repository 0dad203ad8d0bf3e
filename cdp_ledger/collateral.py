"""
collateral.py - Per-account, per-asset collateral bookkeeping

The CollateralLedger is pure balance accounting: it knows nothing about
prices or solvency. Every mutation is checked (no clamping, no wraparound)
and recorded in an append-only journal for auditing.

Balances are kept in a two-level map account -> asset -> amount, plus an
inverted index asset -> {account -> amount} of non-zero positions.
"""

from __future__ import annotations
from collections import defaultdict
from typing import Dict, List, Set, Tuple

from .core import (
    BalanceMap, CollateralEntry,
    InsufficientCollateral,
    require_positive,
)
from .fixed_point import checked_add, checked_sub


# Opaque value returned by snapshot() and accepted by restore().
LedgerSnapshot = Tuple[Dict[str, Dict[str, int]], int]


class CollateralLedger:
    """
    Collateral balances with a full audit trail.

    Callers are responsible for checking that the asset is registered; the
    ledger accepts any asset id it is given.

    Thread Safety:
        Not thread-safe. Serialization is the owning engine's job.
    """

    def __init__(self):
        self._balances: Dict[str, Dict[str, int]] = {}
        self._positions_by_asset: Dict[str, Dict[str, int]] = defaultdict(dict)
        self.journal: List[CollateralEntry] = []

    # ========================================================================
    # READS
    # ========================================================================

    def balance_of(self, account: str, asset: str) -> int:
        """Return the account's balance of asset (0 if never touched)."""
        return self._balances.get(account, {}).get(asset, 0)

    def balances(self, account: str) -> BalanceMap:
        """Return a copy of every balance entry the account has, zeros included."""
        return dict(self._balances.get(account, {}))

    def holders(self, asset: str) -> BalanceMap:
        """Return all non-zero positions in an asset."""
        return dict(self._positions_by_asset.get(asset, {}))

    def total_deposited(self, asset: str) -> int:
        """Sum of every account's balance of asset."""
        return sum(self._positions_by_asset.get(asset, {}).values())

    def accounts(self) -> Set[str]:
        """Return every account that has ever held a collateral entry."""
        return set(self._balances)

    # ========================================================================
    # MUTATIONS
    # ========================================================================

    def credit(self, account: str, asset: str, amount: int) -> int:
        """
        Increase account's balance of asset.

        Returns:
            The new balance.

        Raises:
            InvalidAmount: if amount <= 0
            ArithmeticOverflow: if the balance would exceed uint256
        """
        require_positive(amount)
        new_balance = checked_add(self.balance_of(account, asset), amount)
        self._set(account, asset, new_balance)
        self.journal.append(CollateralEntry(account, asset, amount, new_balance))
        return new_balance

    def debit(self, account: str, asset: str, amount: int) -> int:
        """
        Decrease account's balance of asset.

        Returns:
            The new balance.

        Raises:
            InvalidAmount: if amount <= 0
            InsufficientCollateral: if amount exceeds the current balance;
                the balance is left unchanged.
        """
        require_positive(amount)
        current = self.balance_of(account, asset)
        new_balance = checked_sub(
            current, amount, InsufficientCollateral,
            f"{account} holds {current} {asset}, cannot debit {amount}",
        )
        self._set(account, asset, new_balance)
        self.journal.append(CollateralEntry(account, asset, -amount, new_balance))
        return new_balance

    def _set(self, account: str, asset: str, balance: int) -> None:
        self._balances.setdefault(account, {})[asset] = balance
        if balance:
            self._positions_by_asset[asset][account] = balance
        else:
            self._positions_by_asset[asset].pop(account, None)

    # ========================================================================
    # SNAPSHOT / RESTORE
    # ========================================================================

    def snapshot(self) -> LedgerSnapshot:
        """Capture balances and journal length for a later restore()."""
        return (
            {account: dict(bals) for account, bals in self._balances.items()},
            len(self.journal),
        )

    def restore(self, snapshot: LedgerSnapshot) -> None:
        """
        Return the ledger to a previously captured state.

        Entries created after the snapshot disappear from both the balance map
        and the journal; the position index is rebuilt from the balances.
        """
        balances, journal_length = snapshot
        self._balances = {account: dict(bals) for account, bals in balances.items()}
        del self.journal[journal_length:]
        self._positions_by_asset = defaultdict(dict)
        for account, bals in self._balances.items():
            for asset, balance in bals.items():
                if balance:
                    self._positions_by_asset[asset][account] = balance

    def __repr__(self) -> str:
        return f"CollateralLedger({len(self._balances)} accounts, {len(self.journal)} entries)"
