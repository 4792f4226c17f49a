"""
collateral.py - Per-user collateral balances

CollateralLedger owns the (user, token) -> amount mapping and values it
through the PriceValuationService. It does not know about debt: callers
pass the minimum value a withdrawal must leave behind (the RiskEngine
supplies 125% of total debt).
"""

from __future__ import annotations
import logging
from typing import Dict, Optional

from .core import (
    BalanceMap, InsufficientCollateral,
    checked_add, require_id, require_positive,
)
from .registry import TokenRegistry
from .valuation import PriceSnapshot, PriceValuationService

logger = logging.getLogger(__name__)


class CollateralLedger:

    def __init__(self, registry: TokenRegistry, valuation: PriceValuationService):
        self.registry = registry
        self.valuation = valuation
        self._balances: Dict[str, Dict[str, int]] = {}

    # ========================================================================
    # QUERIES
    # ========================================================================

    def balance(self, user: str, token: str) -> int:
        return self._balances.get(user, {}).get(token, 0)

    def balances(self, user: str) -> BalanceMap:
        """
        All collateral balances of user, in collateral-token list order.

        Tokens the user never deposited are reported as 0.
        """
        held = self._balances.get(user, {})
        return {token: held.get(token, 0) for token in self.registry.collateral_tokens}

    def nonzero_balances(self, user: str) -> BalanceMap:
        return {token: amount for token, amount in self.balances(user).items() if amount > 0}

    def collateral_value(self, user: str, snapshot: Optional[PriceSnapshot] = None) -> int:
        """Sum of price(token) * balance(user, token) over the collateral-token list."""
        return self.valuation.value_balances(self.balances(user), snapshot)

    # ========================================================================
    # MUTATIONS
    # ========================================================================

    def deposit(self, user: str, token: str, amount: int) -> int:
        """
        Credit collateral.

        Returns:
            New balance

        Raises:
            UnsupportedToken: If token is not collateral-eligible.
        """
        require_id(user, "user")
        require_positive(amount)
        self.registry.require_collateral(token)
        held = self._balances.setdefault(user, {})
        held[token] = checked_add(held.get(token, 0), amount, f"{token} collateral balance")
        return held[token]

    def withdraw(self, user: str, token: str, amount: int, min_value: int) -> int:
        """
        Debit collateral if the remaining value stays at or above min_value.

        The check runs on a hypothetical post-withdraw balance map; nothing
        is mutated unless it passes.

        Returns:
            New balance

        Raises:
            UnsupportedToken: If token is not collateral-eligible.
            InsufficientCollateral: If the balance is short or the remaining
                value would fall below min_value.
        """
        require_id(user, "user")
        require_positive(amount)
        self.registry.require_collateral(token)

        current = self.balance(user, token)
        if amount > current:
            raise InsufficientCollateral(
                f"{user}: withdraw {amount} {token} exceeds balance {current}"
            )

        if min_value > 0:
            remaining = self.balances(user)
            remaining[token] = current - amount
            remaining_value = self.valuation.value_balances(remaining)
            if remaining_value < min_value:
                raise InsufficientCollateral(
                    f"{user}: collateral value after withdrawal {remaining_value} "
                    f"below required {min_value}"
                )

        self._balances[user][token] = current - amount
        return current - amount

    def seize(self, user: str, token: str, amount: int) -> int:
        """Debit collateral for liquidation (no health check)."""
        current = self.balance(user, token)
        if amount > current:
            raise InsufficientCollateral(
                f"{user}: seize {amount} {token} exceeds balance {current}"
            )
        self._balances[user][token] = current - amount
        return current - amount

    # ========================================================================
    # SNAPSHOT / ROLLBACK
    # ========================================================================

    def snapshot(self) -> Dict[str, Dict[str, int]]:
        return {user: dict(held) for user, held in self._balances.items()}

    def rollback(self, snapshot: Dict[str, Dict[str, int]]) -> None:
        self._balances = {user: dict(held) for user, held in snapshot.items()}
