"""
interest.py - Utilization-tiered simple interest

Key Formulas:
    apr      = first tier rate whose bound >= utilization (bounds inclusive),
               else the max rate
    interest = principal * apr * elapsed_seconds // (seconds_per_year * 100)
    cashback = interest * cashback_bps // 10000
    treasury = interest - cashback

Interest is never stored or compounded into principal. Every query
recomputes it from the loan's last_payment_timestamp, so whoever records a
payment must move that timestamp forward.
"""

from __future__ import annotations
from typing import Sequence, Tuple

from .config import DEFAULT_CONFIG, ProtocolConfig
from .core import BPS_DENOMINATOR, Loan, checked_mul


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def select_rate(
    utilization: int,
    tiers: Sequence[Tuple[int, int]],
    max_rate: int,
) -> int:
    """
    Pick the APR (percent) for a utilization (percent).

    Example:
        select_rate(16, DEFAULT_RATE_TIERS, 14) -> 6
        select_rate(17, DEFAULT_RATE_TIERS, 14) -> 8
    """
    for bound, rate in tiers:
        if utilization <= bound:
            return rate
    return max_rate


def calculate_simple_interest(
    principal: int,
    apr: int,
    elapsed_seconds: int,
    seconds_per_year: int,
) -> int:
    """
    Non-compounding interest, truncated toward zero.

    Returns 0 for zero principal or non-positive elapsed time.
    """
    if principal <= 0 or elapsed_seconds <= 0 or apr <= 0:
        return 0
    numerator = checked_mul(checked_mul(principal, apr, "interest"), elapsed_seconds, "interest")
    return numerator // (seconds_per_year * 100)


def calculate_interest_split(interest: int, cashback_bps: int) -> Tuple[int, int]:
    """Split paid interest into (cashback, treasury_cut)."""
    cashback = interest * cashback_bps // BPS_DENOMINATOR
    return cashback, interest - cashback


# ============================================================================
# ENGINE
# ============================================================================

class InterestAccrualEngine:
    """Applies the configured tier table to loans."""

    def __init__(self, config: ProtocolConfig = DEFAULT_CONFIG):
        self.config = config

    def annual_rate(self, utilization: int) -> int:
        return select_rate(utilization, self.config.rate_tiers, self.config.max_rate)

    def accrued_interest(self, loan: Loan, utilization: int, now: int) -> int:
        """
        Interest owed on loan since its last payment.

        Args:
            loan: The loan
            utilization: Current utilization of the loan's token, in percent
            now: Current timestamp

        Returns:
            Interest amount (0 if principal is zero)
        """
        if loan.principal == 0:
            return 0
        return calculate_simple_interest(
            principal=loan.principal,
            apr=self.annual_rate(utilization),
            elapsed_seconds=now - loan.last_payment_timestamp,
            seconds_per_year=self.config.seconds_per_year,
        )

    def split_interest(self, interest: int) -> Tuple[int, int]:
        return calculate_interest_split(interest, self.config.cashback_bps)
