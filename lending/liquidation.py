"""
liquidation.py - Seizing collateral from under-collateralized positions

=== PARTIAL SEIZURE POLICY ===

A liquidation closes `fraction_bps` of the position, pro-rata:

    seized(token)    = balance(token)   * fraction_bps // 10000   for every collateral token
    written_down(id) = principal(id)    * fraction_bps // 10000   for every open loan

Seizing the same fraction of every token balance takes the same fraction
of the collateral value from every token, so the position's collateral mix
is unchanged. The liquidator pays the written-down principal back into the
pool (restoring available liquidity) and receives the seized collateral.

At 10000 bps (the default) every balance is seized in full and every loan
is destroyed. Truncation always rounds the seized amounts down, never in
the liquidator's favour.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Dict, Tuple

from .collateral import CollateralLedger
from .core import BPS_DENOMINATOR, NotLiquidatable, require_id
from .loans import LoanBook
from .risk import RiskEngine

logger = logging.getLogger(__name__)

FULL_LIQUIDATION_BPS = BPS_DENOMINATOR


@dataclass(frozen=True, slots=True)
class LiquidationResult:
    """
    Outcome of one liquidation.

    Attributes:
        user: Liquidated borrower.
        liquidator: Who repaid the debt and received the collateral.
        fraction_bps: Share of the position closed.
        seized: token -> collateral amount seized.
        repaid: loan_id -> principal written down.
        repaid_by_token: token -> principal the liquidator pays into the pool.
        closed_loans: Ids of loans removed entirely.
    """
    user: str
    liquidator: str
    fraction_bps: int
    seized: Dict[str, int] = field(default_factory=dict)
    repaid: Dict[int, int] = field(default_factory=dict)
    repaid_by_token: Dict[str, int] = field(default_factory=dict)
    closed_loans: Tuple[int, ...] = ()


class LiquidationEngine:

    def __init__(self, risk: RiskEngine, collateral: CollateralLedger, loans: LoanBook):
        self.risk = risk
        self.collateral = collateral
        self.loans = loans

    def liquidate(
        self,
        liquidator: str,
        user: str,
        fraction_bps: int = FULL_LIQUIDATION_BPS,
    ) -> LiquidationResult:
        """
        Seize fraction_bps of every collateral balance and write down the
        same fraction of every loan.

        Raises:
            NotLiquidatable: If the position is healthy.
            ValueError: If fraction_bps is outside (0, 10000] or the
                liquidator is the borrower.
        """
        require_id(liquidator, "liquidator")
        require_id(user, "user")
        if liquidator == user:
            raise ValueError("A borrower cannot liquidate their own position")
        if isinstance(fraction_bps, bool) or not isinstance(fraction_bps, int):
            raise ValueError(f"fraction_bps must be an int, got {type(fraction_bps).__name__}")
        if not 0 < fraction_bps <= BPS_DENOMINATOR:
            raise ValueError(f"fraction_bps must be in (0, {BPS_DENOMINATOR}], got {fraction_bps}")

        if not self.risk.is_liquidatable(user):
            raise NotLiquidatable(f"{user} is above the liquidation threshold")

        seized: Dict[str, int] = {}
        for token, balance in self.collateral.nonzero_balances(user).items():
            amount = balance * fraction_bps // BPS_DENOMINATOR
            if amount == 0:
                continue
            self.collateral.seize(user, token, amount)
            seized[token] = amount

        repaid: Dict[int, int] = {}
        repaid_by_token: Dict[str, int] = {}
        closed = []
        # snapshot the ids first: write_down reorders the list
        for loan in self.loans.loans(user):
            amount = loan.principal * fraction_bps // BPS_DENOMINATOR
            if amount == 0:
                continue
            if self.loans.write_down(user, loan.loan_id, amount) is None:
                closed.append(loan.loan_id)
            repaid[loan.loan_id] = amount
            repaid_by_token[loan.token] = repaid_by_token.get(loan.token, 0) + amount

        logger.debug("liquidated %s at %s bps: seized=%s repaid=%s", user, fraction_bps, seized, repaid)
        return LiquidationResult(
            user=user,
            liquidator=liquidator,
            fraction_bps=fraction_bps,
            seized=seized,
            repaid=repaid,
            repaid_by_token=repaid_by_token,
            closed_loans=tuple(closed),
        )
