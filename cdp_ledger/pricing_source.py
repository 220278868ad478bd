"""
pricing_source.py - Reference price oracles for the vault

Classes:
- StaticPriceOracle: time-independent quotes
- TimeSeriesPriceOracle: point-in-time quotes with an oracle clock, able to
  report the age of the quote it serves (for staleness checks)

Prices are integers with an explicit number of decimals, as an on-chain feed
would report them: 2000_00000000 with decimals=8 is 2000.0.
"""

from bisect import bisect_right
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from .core import InvalidPrice


class StaticPriceOracle:
    """
    Oracle with fixed quotes, updated explicitly.

    Example:
        oracle = StaticPriceOracle({'WETH': 2000_00000000, 'USDX': 1_00000000}, decimals=8)
        oracle.latest_price('WETH')  # (200000000000, 8)
    """

    def __init__(self, prices: Dict[str, int], decimals: int = 8):
        self.decimals = decimals
        self.prices = prices.copy()

    def latest_price(self, asset: str) -> Tuple[int, int]:
        """
        Return (price, decimals).

        Raises:
            InvalidPrice: if the asset has no quote.
        """
        if asset not in self.prices:
            raise InvalidPrice(f"No price for {asset}")
        return self.prices[asset], self.decimals

    def update_price(self, asset: str, price: int):
        self.prices[asset] = price

    def update_prices(self, prices: Dict[str, int]):
        self.prices.update(prices)

    def __repr__(self):
        return f"StaticPriceOracle({len(self.prices)} prices, decimals={self.decimals})"


class TimeSeriesPriceOracle:
    """
    Oracle with time-varying quotes.

    Serves the most recent observation at or before its clock. The clock only
    moves forward (advance_time), like the ledger clock it mirrors.

    Supports two initialization patterns:
    - Empty initialization for incremental price addition via add_price()
    - Batch initialization with complete price paths for simulations
    """

    def __init__(
        self,
        price_paths: Optional[Dict[str, List[Tuple[datetime, int]]]] = None,
        decimals: int = 8,
        initial_time: Optional[datetime] = None,
    ):
        """
        Args:
            price_paths: Optional dict mapping assets to (timestamp, price) lists.
            decimals: Decimals of every quote.
            initial_time: Starting clock (default: 1970-01-01).

        Examples:
            oracle = TimeSeriesPriceOracle({
                'WETH': [(t0, 2000_00000000), (t1, 1900_00000000)],
            }, initial_time=t0)
        """
        self.decimals = decimals
        self.current_time: datetime = initial_time or datetime(1970, 1, 1)
        self.price_history: Dict[str, List[Tuple[datetime, int]]] = {}

        if price_paths:
            for asset, path in price_paths.items():
                if not path:
                    continue
                self.price_history[asset] = sorted(path, key=lambda x: x[0])

    def add_price(self, asset: str, timestamp: datetime, price: int):
        history = self.price_history.setdefault(asset, [])
        history.append((timestamp, price))
        history.sort(key=lambda x: x[0])

    def advance_time(self, new_time: datetime) -> None:
        """
        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self.current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self.current_time}"
            )
        self.current_time = new_time

    def _latest_observation(self, asset: str) -> Tuple[datetime, int]:
        history = self.price_history.get(asset)
        if not history:
            raise InvalidPrice(f"No price for {asset}")
        # Binary search: rightmost entry with ts <= current_time
        timestamps = [ts for ts, _ in history]
        idx = bisect_right(timestamps, self.current_time)
        if idx == 0:
            raise InvalidPrice(f"No price for {asset} at or before {self.current_time}")
        return history[idx - 1]

    def latest_price(self, asset: str) -> Tuple[int, int]:
        _, price = self._latest_observation(asset)
        return price, self.decimals

    def price_age(self, asset: str) -> timedelta:
        """Time between the served observation and the oracle clock."""
        observed_at, _ = self._latest_observation(asset)
        return self.current_time - observed_at

    def get_all_timestamps(self, asset: Optional[str] = None) -> List[datetime]:
        """Sorted observation times for one asset, or the union across assets."""
        if asset:
            return [ts for ts, _ in self.price_history.get(asset, [])]
        all_times = set()
        for path in self.price_history.values():
            all_times.update(ts for ts, _ in path)
        return sorted(all_times)

    def __repr__(self):
        total_observations = sum(len(history) for history in self.price_history.values())
        return (f"TimeSeriesPriceOracle({len(self.price_history)} assets, "
                f"{total_observations} observations, now={self.current_time})")
