"""
pricing_source.py - Price collaborators for collateral and debt valuation

Provides concrete implementations of the PriceOracle protocol:
- StaticPriceOracle: Time-independent prices
- TimeSeriesPriceOracle: Time-varying prices with historical data

Prices are ints quoted per unit of token in a common value unit. A token
with no feed returns None; the valuation layer turns that into
PriceUnavailable.
"""

import logging
from bisect import bisect_right
from typing import Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class StaticPriceOracle:
    """
    Price oracle with static prices (time-independent).

    Counts every get_price() call in `queries` so callers can observe
    how often the feed was read.
    """

    def __init__(self, prices: Optional[Dict[str, int]] = None):
        """
        Initialize with a static price map.

        Args:
            prices: Dictionary mapping token symbols to prices
        """
        self.prices: Dict[str, int] = dict(prices or {})
        self.queries: Dict[str, int] = {}

    def get_price(self, token: str) -> Optional[int]:
        self.queries[token] = self.queries.get(token, 0) + 1
        return self.prices.get(token)

    def update_price(self, token: str, price: int) -> None:
        """Update the price of a token."""
        self.prices[token] = price

    def update_prices(self, prices: Dict[str, int]) -> None:
        """Update multiple prices at once."""
        self.prices.update(prices)

    def remove_price(self, token: str) -> None:
        """Drop the feed for a token (subsequent reads return None)."""
        self.prices.pop(token, None)

    def total_queries(self) -> int:
        return sum(self.queries.values())

    def __repr__(self):
        return f"StaticPriceOracle({len(self.prices)} prices)"


class TimeSeriesPriceOracle:
    """
    Price oracle with time-varying prices.

    Stores historical price data and returns the most recent price at or
    before the time reported by `clock`. Supports two initialization
    patterns:
    - Empty initialization for incremental price addition via add_price()
    - Batch initialization with complete price paths for simulations
    """

    def __init__(
        self,
        clock: Callable[[], int],
        price_paths: Optional[Dict[str, List[Tuple[int, int]]]] = None,
    ):
        """
        Initialize pricing source.

        Args:
            clock: Zero-argument callable returning the current timestamp
                   (e.g. lambda: protocol.current_time)
            price_paths: Optional dict mapping tokens to lists of
                         (timestamp, price) tuples.

        Examples:
            oracle = TimeSeriesPriceOracle(lambda: protocol.current_time, {
                'WETH': [(0, 2000), (86400, 1800)],
                'USDC': [(0, 1)],
            })
        """
        self.clock = clock
        self.price_history: Dict[str, List[Tuple[int, int]]] = {}

        if price_paths:
            for token, path in price_paths.items():
                if not path:
                    continue
                # Sort by timestamp to ensure chronological order
                self.price_history[token] = sorted(path, key=lambda x: x[0])

    def add_price(self, token: str, timestamp: int, price: int) -> None:
        """Add a price observation for a token at a specific time."""
        history = self.price_history.setdefault(token, [])
        history.append((timestamp, price))
        history.sort(key=lambda x: x[0])

    def get_price_at(self, token: str, timestamp: int) -> Optional[int]:
        """
        Get price at or before the specified timestamp.

        Returns None if no price data is available before the timestamp.
        Uses binary search for O(log n) lookup.
        """
        history = self.price_history.get(token)
        if not history:
            return None

        timestamps = [ts for ts, _ in history]
        idx = bisect_right(timestamps, timestamp)
        if idx == 0:
            # No price at or before timestamp
            return None
        return history[idx - 1][1]

    def get_price(self, token: str) -> Optional[int]:
        now = self.clock()
        price = self.get_price_at(token, now)
        if price is None:
            logger.debug("no %s price at or before t=%s", token, now)
        return price

    def get_all_timestamps(self, token: Optional[str] = None) -> List[int]:
        """
        Get all timestamps in the price history.

        Args:
            token: If specified, get timestamps for that token only.
                   If None, get union of all timestamps.
        """
        if token:
            return [ts for ts, _ in self.price_history.get(token, [])]

        all_times = set()
        for path in self.price_history.values():
            all_times.update(ts for ts, _ in path)
        return sorted(all_times)

    def __repr__(self):
        total_observations = sum(len(history) for history in self.price_history.values())
        return f"TimeSeriesPriceOracle({len(self.price_history)} tokens, {total_observations} observations)"
