"""
Core types and pure functions for the lending core.

This module provides the foundational data structures and protocols:
1. Protocols: PriceOracle and TokenTransfer (the external collaborators)
2. Immutable data structures: Loan, LoanTerm, PoolTokenState, RepaymentQuote, Move
3. Exceptions: LendingError and domain-specific error types
4. Checked arithmetic bounded to fixed-width (uint256) counters

All amounts, prices and timestamps are plain ints. Ratios are applied with
truncating integer division, never with floats.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import (
    Dict, List, Optional, Protocol, Sequence, Tuple, Union, runtime_checkable
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Fixed-width ceiling for every stored counter (amounts, ids, liquidity).
UINT256_MAX = 2 ** 256 - 1

SECONDS_PER_DAY = 86_400
SECONDS_PER_YEAR = 365 * SECONDS_PER_DAY

# Basis-point denominator (10000 bps = 100%).
BPS_DENOMINATOR = 10_000

# Loan-to-value ceiling: borrow limit is 75% of collateral value.
LTV_PERCENT = 75

# Liquidation floor: collateral below 125% of debt is liquidatable.
LIQUIDATION_THRESHOLD_PERCENT = 125

# Share of paid interest returned to the borrower (1500 bps = 15%).
CASHBACK_BPS = 1_500

# (utilization upper bound inclusive, APR percent), ascending.
DEFAULT_RATE_TIERS: Tuple[Tuple[int, int], ...] = (
    (16, 6),
    (32, 8),
    (48, 10),
    (64, 12),
)
# APR above the last tier.
DEFAULT_MAX_RATE = 14

# Reserved wallet for token issuance in the reference token ledger.
SYSTEM_WALLET = "system"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LendingError(Exception):
    """Base exception for all lending-core errors."""
    pass


class UnsupportedToken(LendingError):
    """Raised when a token is not in the collateral or lending set required by an operation."""
    pass


class AlreadyRegistered(LendingError):
    """Raised when a token is added to a supported-token set it already belongs to."""
    pass


class InsufficientLiquidity(LendingError):
    """Raised when the pool (or a supplier's share of it) cannot cover the requested amount."""
    pass


class ExceedsBorrowLimit(LendingError):
    """Raised when a borrow would push the user's debt above 75% of collateral value."""
    pass


class InsufficientRepayment(LendingError):
    """Raised when a repayment amount is below principal plus accrued interest."""
    pass


class InsufficientCollateral(LendingError):
    """Raised when a collateral withdrawal exceeds the balance or breaches the 125% floor."""
    pass


class NoActiveLoan(LendingError):
    """Raised when a loan id is not among the user's open loans."""
    pass


class NotLiquidatable(LendingError):
    """Raised when liquidation is requested for a healthy position."""
    pass


class ReentrantCallBlocked(LendingError):
    """Raised when a state-mutating operation is entered while another is in flight."""
    pass


class PriceUnavailable(LendingError):
    """Raised when the price collaborator has no feed or returns a non-positive price."""
    pass


class ArithmeticOverflow(LendingError):
    """Raised when a fixed-width counter would exceed UINT256_MAX or go negative."""
    pass


class InvalidTerm(LendingError):
    """Raised when a loan term maps to no payment schedule."""
    pass


class TransferFailed(LendingError):
    """Raised by the token-transfer collaborator when a settlement batch is rejected."""
    pass


# ============================================================================
# CHECKED ARITHMETIC
# ============================================================================

def checked(value: int, what: str = "value") -> int:
    """
    Return value if it fits an unsigned 256-bit counter.

    Raises:
        ArithmeticOverflow: If value is negative or above UINT256_MAX.
    """
    if value < 0 or value > UINT256_MAX:
        raise ArithmeticOverflow(f"{what} out of uint256 range: {value}")
    return value


def checked_add(a: int, b: int, what: str = "sum") -> int:
    return checked(a + b, what)


def checked_sub(a: int, b: int, what: str = "difference") -> int:
    return checked(a - b, what)


def checked_mul(a: int, b: int, what: str = "product") -> int:
    return checked(a * b, what)


def require_positive(amount: int, name: str = "amount") -> int:
    """Validate an externally supplied amount (int, > 0, within uint256)."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"{name} must be an int, got {type(amount).__name__}")
    if amount <= 0:
        raise ValueError(f"{name} must be positive, got {amount}")
    return checked(amount, name)


def require_id(value: str, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{name} cannot be empty")
    return value


# ============================================================================
# LOAN TERMS
# ============================================================================

class LoanTerm(Enum):
    """
    Enumerated loan duration classes.

    Each member's value is its length in days; the payment schedule is
    derived deterministically from it.
    """
    DAYS_7 = 7
    DAYS_30 = 30
    DAYS_90 = 90
    DAYS_180 = 180
    DAYS_360 = 360

    @property
    def days(self) -> int:
        return self.value

    @property
    def payments(self) -> int:
        """Number of scheduled payments for this term."""
        return _PAYMENT_SCHEDULE[self]

    @property
    def seconds(self) -> int:
        return self.value * SECONDS_PER_DAY

    @classmethod
    def parse(cls, term: Union['LoanTerm', int, str]) -> 'LoanTerm':
        """
        Resolve a term given as a LoanTerm, a day count or a member name.

        Raises:
            InvalidTerm: If the term maps to no payment schedule.
        """
        if isinstance(term, cls):
            return term
        if isinstance(term, int) and not isinstance(term, bool):
            try:
                return cls(term)
            except ValueError:
                raise InvalidTerm(f"No payment schedule for a {term}-day term") from None
        if isinstance(term, str):
            try:
                return cls[term.upper()]
            except KeyError:
                raise InvalidTerm(f"Unknown loan term {term!r}") from None
        raise InvalidTerm(f"Unknown loan term {term!r}")


_PAYMENT_SCHEDULE: Dict[LoanTerm, int] = {
    LoanTerm.DAYS_7: 1,
    LoanTerm.DAYS_30: 1,
    LoanTerm.DAYS_90: 3,
    LoanTerm.DAYS_180: 6,
    LoanTerm.DAYS_360: 12,
}


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Loan:
    """
    An open loan owned by the borrower's entry in the LoanBook.

    Attributes:
        loan_id: Unique, monotonically increasing identifier (the only durable handle).
        borrower: Wallet that owes the debt.
        token: Token the principal is denominated in.
        principal: Outstanding principal (> 0 while open).
        term: Duration class.
        remaining_payments: Scheduled payments left, derived from term.
        start_timestamp: When the loan was issued.
        last_payment_timestamp: Interest accrues from here; reset on payment.

    Interest is never stored here. It is recomputed on demand from
    last_payment_timestamp.
    """
    loan_id: int
    borrower: str
    token: str
    principal: int
    term: LoanTerm
    remaining_payments: int
    start_timestamp: int
    last_payment_timestamp: int

    @property
    def is_open(self) -> bool:
        return self.principal > 0

    @property
    def due_timestamp(self) -> int:
        return self.start_timestamp + self.term.seconds

    def __repr__(self) -> str:
        return (f"Loan(#{self.loan_id} {self.principal} {self.token} "
                f"{self.borrower}, {self.term.days}d)")


@dataclass(slots=True)
class PoolTokenState:
    """
    Liquidity counters for one lending token.

    gross_liquidity moves with supply/withdraw, available_liquidity with
    borrow/repay. available_liquidity <= gross_liquidity at all times.
    """
    token: str
    gross_liquidity: int = 0
    available_liquidity: int = 0

    @property
    def borrowed(self) -> int:
        return self.gross_liquidity - self.available_liquidity

    def check_invariant(self) -> None:
        if self.available_liquidity > self.gross_liquidity:
            raise InsufficientLiquidity(
                f"{self.token}: available {self.available_liquidity} "
                f"exceeds gross {self.gross_liquidity}"
            )


@dataclass(frozen=True, slots=True)
class RepaymentQuote:
    """Amounts due to close a loan right now."""
    loan_id: int
    principal: int
    interest: int
    cashback: int
    treasury_cut: int
    total_due: int


@dataclass(frozen=True, slots=True)
class Move:
    """
    A single token transfer instruction sent to the transfer collaborator.

    Attributes:
        quantity: Amount to transfer (must be positive).
        token: Token symbol.
        source: Wallet debited.
        dest: Wallet credited.
        reason: Which operation generated the move (e.g. "borrow:7").
    """
    quantity: int
    token: str
    source: str
    dest: str
    reason: str

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.token or not self.token.strip():
            raise ValueError("Move token cannot be empty")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValueError(f"Move quantity must be int, got {type(self.quantity)}")
        if self.quantity <= 0:
            raise ValueError(f"Move quantity must be positive, got {self.quantity}")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.token}: {self.source}→{self.dest})"


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class PriceOracle(Protocol):
    """
    External price collaborator.

    Returns the price of one unit of token, or None when no feed is
    configured. Implementations may also raise PriceUnavailable themselves.
    """

    def get_price(self, token: str) -> Optional[int]:
        ...


@runtime_checkable
class TokenTransfer(Protocol):
    """
    External token-transfer collaborator.

    settle() applies a batch of moves all-or-nothing and raises
    TransferFailed if any of them cannot be applied.
    """

    def settle(self, moves: Sequence[Move]) -> None:
        ...


# Mapping from token to amount for a single user.
BalanceMap = Dict[str, int]

# Ordered loan collection for a single user.
LoanList = List[Loan]
