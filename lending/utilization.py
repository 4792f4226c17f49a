"""
utilization.py - Per-token pool liquidity and utilization

Each lending token has a PoolTokenState:
    gross_liquidity      total supplied by lenders (supply / withdraw)
    available_liquidity  supplied and not lent out (borrow / repay)

    utilization = (gross - available) * 100 // gross     (whole percent)

An empty pool (gross == 0) has utilization 0: nothing is lent out, so it
prices at the lowest rate tier instead of faulting.
"""

from __future__ import annotations
import logging
from typing import Dict, List

from .core import (
    InsufficientLiquidity, PoolTokenState, UnsupportedToken,
    checked_add, checked_sub,
)

logger = logging.getLogger(__name__)


class UtilizationTracker:
    """Owns the PoolTokenState of every lending token."""

    def __init__(self):
        self._pools: Dict[str, PoolTokenState] = {}

    def open_pool(self, token: str) -> PoolTokenState:
        if token in self._pools:
            return self._pools[token]
        pool = PoolTokenState(token)
        self._pools[token] = pool
        return pool

    def has_pool(self, token: str) -> bool:
        return token in self._pools

    def tokens(self) -> List[str]:
        return list(self._pools)

    def _get(self, token: str) -> PoolTokenState:
        pool = self._pools.get(token)
        if pool is None:
            raise UnsupportedToken(f"{token} has no lending pool")
        return pool

    def pool(self, token: str) -> PoolTokenState:
        """Return a copy of the pool state for token."""
        pool = self._get(token)
        return PoolTokenState(pool.token, pool.gross_liquidity, pool.available_liquidity)

    # ========================================================================
    # MUTATIONS
    # ========================================================================

    def supply(self, token: str, amount: int) -> None:
        """Lender adds liquidity: gross and available both grow."""
        pool = self._get(token)
        pool.gross_liquidity = checked_add(pool.gross_liquidity, amount, f"{token} gross liquidity")
        pool.available_liquidity = checked_add(pool.available_liquidity, amount, f"{token} available liquidity")
        pool.check_invariant()

    def withdraw(self, token: str, amount: int) -> None:
        """
        Lender removes liquidity.

        Raises:
            InsufficientLiquidity: If the amount exceeds available liquidity.
        """
        pool = self._get(token)
        if amount > pool.available_liquidity:
            raise InsufficientLiquidity(
                f"{token}: withdraw {amount} exceeds available {pool.available_liquidity}"
            )
        pool.gross_liquidity = checked_sub(pool.gross_liquidity, amount, f"{token} gross liquidity")
        pool.available_liquidity = checked_sub(pool.available_liquidity, amount, f"{token} available liquidity")
        pool.check_invariant()

    def lend_out(self, token: str, amount: int) -> None:
        """
        Borrow path: available liquidity shrinks.

        Raises:
            InsufficientLiquidity: If the amount exceeds available liquidity.
        """
        pool = self._get(token)
        if amount > pool.available_liquidity:
            raise InsufficientLiquidity(
                f"{token}: borrow {amount} exceeds available {pool.available_liquidity}"
            )
        pool.available_liquidity -= amount

    def return_liquidity(self, token: str, amount: int) -> None:
        """Repay/liquidation path: principal flows back to available liquidity."""
        pool = self._get(token)
        pool.available_liquidity = checked_add(pool.available_liquidity, amount, f"{token} available liquidity")
        pool.check_invariant()

    # ========================================================================
    # QUERIES
    # ========================================================================

    def utilization_rate(self, token: str) -> int:
        """
        Share of supplied liquidity currently lent out, in whole percent.

        Truncating integer division. Returns 0 for a pool with no gross
        liquidity.
        """
        pool = self._get(token)
        if pool.gross_liquidity == 0:
            return 0
        return (pool.gross_liquidity - pool.available_liquidity) * 100 // pool.gross_liquidity

    # ========================================================================
    # SNAPSHOT / ROLLBACK
    # ========================================================================

    def snapshot(self) -> Dict[str, PoolTokenState]:
        return {
            token: PoolTokenState(p.token, p.gross_liquidity, p.available_liquidity)
            for token, p in self._pools.items()
        }

    def rollback(self, snapshot: Dict[str, PoolTokenState]) -> None:
        self._pools = {
            token: PoolTokenState(p.token, p.gross_liquidity, p.available_liquidity)
            for token, p in snapshot.items()
        }
