"""
valuation.py - Multi-asset valuation with per-pass price deduplication

A valuation pass (one call to value_loans or value_balances) opens a fresh
PriceSnapshot. The first time a token is needed the oracle is queried and
the answer is cached in the snapshot; every later lookup in the same pass
reads the cache. A snapshot is never reused across passes and never
persisted, so two separate operations always see fresh prices while one
operation never sees two different prices for the same token.

Snapshot lookups are linear scans over a short list of (token, price)
pairs. Per-user loan and collateral counts are small, so the quadratic
worst case is accepted.
"""

from __future__ import annotations
import logging
from typing import Iterable, List, Mapping, Optional, Tuple

from .core import (
    Loan, PriceOracle, PriceUnavailable,
    checked_add, checked_mul,
)

logger = logging.getLogger(__name__)


class PriceSnapshot:
    """Transient token -> price cache for one valuation pass."""

    __slots__ = ("_oracle", "_entries", "fetches")

    def __init__(self, oracle: PriceOracle):
        self._oracle = oracle
        self._entries: List[Tuple[str, int]] = []
        self.fetches = 0

    def price(self, token: str) -> int:
        """
        Return the price of token, querying the oracle at most once.

        Raises:
            PriceUnavailable: If the oracle has no feed or returns a non-positive price.
        """
        for cached_token, cached_price in self._entries:
            if cached_token == token:
                return cached_price

        raw = self._oracle.get_price(token)
        self.fetches += 1
        if raw is None:
            raise PriceUnavailable(f"No price feed for {token}")
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise PriceUnavailable(f"Price for {token} is not an int: {raw!r}")
        if raw <= 0:
            raise PriceUnavailable(f"Non-positive price for {token}: {raw}")

        logger.debug("fetched %s price %s", token, raw)
        self._entries.append((token, raw))
        return raw

    def __len__(self) -> int:
        return len(self._entries)


class PriceValuationService:
    """
    Wraps the price collaborator and values loans and balances.

    Attributes:
        oracle: The external price collaborator.
        fetch_count: Total oracle queries made through this service.
    """

    def __init__(self, oracle: PriceOracle):
        self.oracle = oracle
        self.fetch_count = 0

    def snapshot(self) -> PriceSnapshot:
        return PriceSnapshot(self.oracle)

    def value_loans(self, loans: Iterable[Loan], snapshot: Optional[PriceSnapshot] = None) -> int:
        """
        Total value of open loans: sum(price(token) * principal).

        Loans with zero principal are treated as closed and skipped (their
        token's price is not fetched).

        Args:
            loans: Loans to value
            snapshot: Reuse an existing pass; a fresh one is opened if None

        Returns:
            Total debt value
        """
        snap = snapshot if snapshot is not None else self.snapshot()
        before = snap.fetches
        total = 0
        for loan in loans:
            if loan.principal == 0:
                continue
            price = snap.price(loan.token)
            total = checked_add(total, checked_mul(price, loan.principal, "loan value"), "debt value")
        self.fetch_count += snap.fetches - before
        return total

    def value_balances(
        self,
        balances: Mapping[str, int],
        snapshot: Optional[PriceSnapshot] = None,
    ) -> int:
        """
        Total value of token balances: sum(price(token) * amount).

        Zero balances are skipped without a price fetch.
        """
        snap = snapshot if snapshot is not None else self.snapshot()
        before = snap.fetches
        total = 0
        for token, amount in balances.items():
            if amount == 0:
                continue
            price = snap.price(token)
            total = checked_add(total, checked_mul(price, amount, "balance value"), "collateral value")
        self.fetch_count += snap.fetches - before
        return total

    def value_amount(self, token: str, amount: int, snapshot: Optional[PriceSnapshot] = None) -> int:
        """Value of a single amount of token."""
        if amount == 0:
            return 0
        return self.value_balances({token: amount}, snapshot)
