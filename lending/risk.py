"""
risk.py - Borrow limits and liquidation eligibility

Key Formulas (integer, truncating):
    collateral_value = sum(price * collateral balance)
    total_debt       = sum(price * principal) over open loans
    borrow_limit     = collateral_value * 75 // 100
    liquidatable     = collateral_value < total_debt * 125 // 100
    withdraw floor   = total_debt * 125 // 100

The two ratios gate real value transfer. They come from ProtocolConfig and
are applied exactly as written above; never reorder the multiplication and
the division.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional

from .collateral import CollateralLedger
from .config import ProtocolConfig
from .core import ExceedsBorrowLimit, checked_add, checked_mul
from .loans import LoanBook
from .valuation import PriceValuationService

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PositionSummary:
    """Valuation of one user's position, computed in a single pricing pass."""
    collateral_value: int
    total_debt: int
    borrow_limit: int
    liquidation_floor: int
    liquidatable: bool

    @property
    def available_to_borrow(self) -> int:
        return max(self.borrow_limit - self.total_debt, 0)

    @property
    def health_factor(self) -> Optional[int]:
        """Collateral as a whole percent of debt; None without debt."""
        if self.total_debt == 0:
            return None
        return self.collateral_value * 100 // self.total_debt


class RiskEngine:

    def __init__(
        self,
        config: ProtocolConfig,
        collateral: CollateralLedger,
        loans: LoanBook,
        valuation: PriceValuationService,
    ):
        self.config = config
        self.collateral = collateral
        self.loans = loans
        self.valuation = valuation

    # ========================================================================
    # PURE RATIO HELPERS
    # ========================================================================

    def limit_for(self, collateral_value: int) -> int:
        return checked_mul(collateral_value, self.config.ltv_percent, "borrow limit") // 100

    def floor_for(self, total_debt: int) -> int:
        return checked_mul(total_debt, self.config.liquidation_threshold_percent, "liquidation floor") // 100

    # ========================================================================
    # VALUATIONS
    # ========================================================================

    def collateral_value(self, user: str) -> int:
        return self.collateral.collateral_value(user)

    def total_debt(self, user: str) -> int:
        """Value of the user's open loans; each token priced once."""
        return self.valuation.value_loans(self.loans.loans(user))

    def borrow_limit(self, user: str) -> int:
        return self.limit_for(self.collateral_value(user))

    def min_collateral_value(self, user: str) -> int:
        """Collateral value a withdrawal must leave behind."""
        return self.floor_for(self.total_debt(user))

    def is_liquidatable(self, user: str) -> bool:
        return self.collateral_value(user) < self.floor_for(self.total_debt(user))

    def summary(self, user: str) -> PositionSummary:
        collateral_value = self.collateral_value(user)
        total_debt = self.total_debt(user)
        floor = self.floor_for(total_debt)
        return PositionSummary(
            collateral_value=collateral_value,
            total_debt=total_debt,
            borrow_limit=self.limit_for(collateral_value),
            liquidation_floor=floor,
            liquidatable=collateral_value < floor,
        )

    # ========================================================================
    # ADMISSION
    # ========================================================================

    def check_borrow(self, user: str, token: str, amount: int) -> int:
        """
        Admit a new borrow against the user's remaining headroom.

        The limit caps total debt, not a single request: existing debt plus
        the new loan's value must not exceed the borrow limit. Collateral,
        debt and the request are priced in one pass, so no token is read
        twice during an admission.

        Returns:
            Value of the requested amount

        Raises:
            ExceedsBorrowLimit: If the request does not fit.
            PriceUnavailable: If any required price is missing.
        """
        snapshot = self.valuation.snapshot()
        limit = self.limit_for(self.collateral.collateral_value(user, snapshot))
        debt = self.valuation.value_loans(self.loans.loans(user), snapshot)
        requested = self.valuation.value_amount(token, amount, snapshot)
        projected = checked_add(debt, requested, "projected debt")
        if projected > limit:
            raise ExceedsBorrowLimit(
                f"{user}: borrow value {requested} with existing debt {debt} "
                f"exceeds limit {limit}"
            )
        return requested
