"""
valuation.py - Oracle-priced conversion between collateral and value units

ARCHITECTURE:
    1. PURE CALCULATION FUNCTIONS (calculate_*): all inputs explicit, no oracle
    2. ValuationEngine: reads the oracle for a registered asset once per call,
       validates the reading, then delegates to the pure functions

Key Formulas:
    price_scaled = price * 10**(18 - feed_decimals)
    usd_value    = price_scaled * amount / PRECISION
    amount       = usd_amount * PRECISION / price_scaled

Multiplication always precedes division.
"""

from __future__ import annotations
import logging
from typing import Mapping

from .core import (
    PRECISION,
    Asset,
    PriceUnavailable, UnsupportedAsset,
)
from .fixed_point import checked_add, checked_mul, mul_div

logger = logging.getLogger(__name__)


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_usd_value(price_scaled: int, amount: int) -> int:
    """Value of amount at an 18-decimal price."""
    return mul_div(price_scaled, amount, PRECISION)


def calculate_asset_amount(price_scaled: int, usd_amount: int) -> int:
    """Asset quantity worth usd_amount at an 18-decimal price (floored)."""
    return mul_div(usd_amount, PRECISION, price_scaled)


# ============================================================================
# ORACLE-BACKED ENGINE
# ============================================================================

class ValuationEngine:
    """
    Converts between collateral quantities and normalized value units.

    Holds a read-only view of the asset registry. Every call consults the
    asset's oracle afresh; nothing is cached.
    """

    def __init__(self, registry: Mapping[str, Asset]):
        self._registry = registry

    def asset(self, asset_id: str) -> Asset:
        """Return the registry entry for asset_id."""
        try:
            return self._registry[asset_id]
        except KeyError:
            raise UnsupportedAsset(f"Asset {asset_id} not registered") from None

    def price_scaled(self, asset_id: str) -> int:
        """
        Read the oracle and normalize its price to 18 decimals.

        Raises:
            UnsupportedAsset: if asset_id is not registered
            PriceUnavailable: if the reading is flagged invalid or the price
                is zero or negative
        """
        asset = self.asset(asset_id)
        price, valid = asset.oracle.latest_price(asset_id)
        logger.debug("oracle %s: price=%s valid=%s", asset_id, price, valid)
        if not valid:
            raise PriceUnavailable(f"Oracle reading for {asset_id} is stale or invalid")
        if isinstance(price, bool) or not isinstance(price, int):
            raise PriceUnavailable(f"Oracle price for {asset_id} must be an integer, got {price!r}")
        if price <= 0:
            raise PriceUnavailable(f"Oracle price for {asset_id} is non-positive: {price}")
        return checked_mul(price, asset.price_adjustment)

    def usd_value(self, asset_id: str, amount: int) -> int:
        """Value of amount units of asset_id, in 18-decimal value units."""
        return calculate_usd_value(self.price_scaled(asset_id), amount)

    def asset_amount_for_value(self, asset_id: str, usd_amount: int) -> int:
        """Quantity of asset_id worth usd_amount (inverse of usd_value)."""
        return calculate_asset_amount(self.price_scaled(asset_id), usd_amount)

    def total_collateral_value(self, balances: Mapping[str, int]) -> int:
        """
        Sum the value of a balance map over the registered assets.

        Assets are visited in registry order. Zero balances are skipped so an
        account is never blocked by the oracle of an asset it does not hold.
        """
        total = 0
        for asset_id in self._registry:
            amount = balances.get(asset_id, 0)
            if amount:
                total = checked_add(total, self.usd_value(asset_id, amount))
        return total
