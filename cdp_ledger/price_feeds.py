"""
price_feeds.py - Reference price oracles

Implementations of the PriceOracle protocol for simulations and tests.

Classes:
- StaticPriceOracle: Time-independent prices, always fresh
- TimeSeriesPriceOracle: Time-varying prices with a staleness timeout

Prices are integers in the feed's native decimals (8 for the reference
feed, so $2000 is 2000 * 10**8).
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple
from bisect import bisect_right

from .core import PriceReading


# Readings older than this are reported as invalid.
DEFAULT_STALE_AFTER = timedelta(hours=3)


class StaticPriceOracle:
    """
    Oracle with static prices.

    An asset without a price yields an invalid reading rather than an error,
    so the engine decides how to fail.
    """

    def __init__(self, prices: Optional[Dict[str, int]] = None):
        self.prices: Dict[str, int] = dict(prices or {})

    def latest_price(self, asset_id: str) -> PriceReading:
        if asset_id not in self.prices:
            return 0, False
        return self.prices[asset_id], True

    def update_price(self, asset_id: str, price: int) -> None:
        """Update the price of an asset."""
        self.prices[asset_id] = price

    def update_prices(self, prices: Dict[str, int]) -> None:
        """Update multiple prices at once."""
        self.prices.update(prices)

    def __repr__(self):
        return f"StaticPriceOracle({len(self.prices)} prices)"


class TimeSeriesPriceOracle:
    """
    Oracle with historical price observations and a logical clock.

    latest_price() returns the most recent observation at or before the
    current time. The reading is invalid if there is no such observation or
    if it is older than stale_after.
    """

    def __init__(
        self,
        price_paths: Optional[Dict[str, List[Tuple[datetime, int]]]] = None,
        current_time: Optional[datetime] = None,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
    ):
        """
        Args:
            price_paths: Optional dict mapping asset ids to (timestamp, price) lists
            current_time: Starting logical time (default: 1970-01-01)
            stale_after: Maximum age of a usable observation

        Example:
            oracle = TimeSeriesPriceOracle({
                'WETH': [(t0, 2000 * 10**8), (t1, 1800 * 10**8)],
            }, current_time=t1)
        """
        self.stale_after = stale_after
        self._current_time = current_time or datetime(1970, 1, 1)
        self.price_history: Dict[str, List[Tuple[datetime, int]]] = {}

        if price_paths:
            for asset_id, path in price_paths.items():
                if not path:
                    continue
                self.price_history[asset_id] = sorted(path, key=lambda x: x[0])

    @property
    def current_time(self) -> datetime:
        return self._current_time

    def advance_time(self, new_time: datetime) -> None:
        """
        Move the logical clock forward.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    def add_price(self, asset_id: str, timestamp: datetime, price: int) -> None:
        """Add a price observation for an asset."""
        history = self.price_history.setdefault(asset_id, [])
        history.append((timestamp, price))
        history.sort(key=lambda x: x[0])

    def add_prices(self, prices: Dict[str, int], timestamp: datetime) -> None:
        """Add several observations taken at the same time."""
        for asset_id, price in prices.items():
            self.add_price(asset_id, timestamp, price)

    def latest_price(self, asset_id: str) -> PriceReading:
        history = self.price_history.get(asset_id)
        if not history:
            return 0, False

        timestamps = [ts for ts, _ in history]
        idx = bisect_right(timestamps, self._current_time)
        if idx == 0:
            return 0, False

        observed_at, price = history[idx - 1]
        return price, self._current_time - observed_at <= self.stale_after

    def get_all_timestamps(self, asset_id: Optional[str] = None) -> List[datetime]:
        """Sorted observation times for one asset, or the union over all assets."""
        if asset_id:
            return [ts for ts, _ in self.price_history.get(asset_id, [])]
        all_times = set()
        for path in self.price_history.values():
            all_times.update(ts for ts, _ in path)
        return sorted(all_times)

    def __repr__(self):
        total_observations = sum(len(history) for history in self.price_history.values())
        return (
            f"TimeSeriesPriceOracle({len(self.price_history)} assets, "
            f"{total_observations} observations, stale_after={self.stale_after})"
        )
