"""
config.py - Protocol parameters

ProtocolConfig is an immutable parameter sheet set when the protocol is
constructed. The defaults are the protocol's load-bearing constants; changing
them changes which positions can borrow and which can be liquidated.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Tuple

from .core import (
    BPS_DENOMINATOR, CASHBACK_BPS, DEFAULT_MAX_RATE, DEFAULT_RATE_TIERS,
    LIQUIDATION_THRESHOLD_PERCENT, LTV_PERCENT, SECONDS_PER_YEAR,
)


@dataclass(frozen=True, slots=True)
class ProtocolConfig:
    """
    Immutable protocol parameters.

    Attributes:
        ltv_percent: Borrow limit as a percent of collateral value (75).
        liquidation_threshold_percent: Collateral must stay at or above this
            percent of debt (125); below it the position is liquidatable.
        cashback_bps: Share of paid interest returned to the borrower (1500).
        rate_tiers: Ascending (utilization upper bound, APR percent) pairs.
            Bounds are inclusive.
        max_rate: APR percent when utilization exceeds the last tier.
        seconds_per_year: Denominator for simple interest.
        custody_wallet: Wallet holding pool liquidity and collateral.
        treasury_wallet: Recipient of the treasury cut of interest.
    """
    ltv_percent: int = LTV_PERCENT
    liquidation_threshold_percent: int = LIQUIDATION_THRESHOLD_PERCENT
    cashback_bps: int = CASHBACK_BPS
    rate_tiers: Tuple[Tuple[int, int], ...] = DEFAULT_RATE_TIERS
    max_rate: int = DEFAULT_MAX_RATE
    seconds_per_year: int = SECONDS_PER_YEAR
    custody_wallet: str = "lending_pool"
    treasury_wallet: str = "treasury"

    def __post_init__(self):
        if not 0 < self.ltv_percent <= 100:
            raise ValueError(f"ltv_percent must be in (0, 100], got {self.ltv_percent}")
        if self.liquidation_threshold_percent < 100:
            raise ValueError(
                f"liquidation_threshold_percent must be >= 100, "
                f"got {self.liquidation_threshold_percent}"
            )
        if not 0 <= self.cashback_bps <= BPS_DENOMINATOR:
            raise ValueError(f"cashback_bps must be in [0, {BPS_DENOMINATOR}], got {self.cashback_bps}")
        if self.seconds_per_year <= 0:
            raise ValueError(f"seconds_per_year must be positive, got {self.seconds_per_year}")
        if self.max_rate < 0:
            raise ValueError(f"max_rate cannot be negative, got {self.max_rate}")

        # Normalise to a tuple of tuples so the config stays hashable
        tiers = tuple((int(bound), int(rate)) for bound, rate in self.rate_tiers)
        previous: Optional[int] = None
        for bound, rate in tiers:
            if rate < 0:
                raise ValueError(f"rate for tier <= {bound} cannot be negative, got {rate}")
            if previous is not None and bound <= previous:
                raise ValueError(f"rate_tiers must be strictly ascending, got {tiers}")
            previous = bound
        object.__setattr__(self, 'rate_tiers', tiers)

        if not self.custody_wallet or not self.custody_wallet.strip():
            raise ValueError("custody_wallet cannot be empty")
        if not self.treasury_wallet or not self.treasury_wallet.strip():
            raise ValueError("treasury_wallet cannot be empty")
        if self.custody_wallet == self.treasury_wallet:
            raise ValueError("custody_wallet and treasury_wallet must be different")


DEFAULT_CONFIG = ProtocolConfig()
