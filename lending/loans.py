"""
loans.py - The authoritative set of open loans per user

=== STORAGE MODEL ===

Each borrower owns an ordered list of Loan records. Removal swaps the
target with the last element and truncates, so list positions are NOT
stable across repayments or liquidations:

    [#1, #2, #3]  repay #1  ->  [#3, #2]

The only durable handle is loan_id. Every lookup resolves it by linear
scan of the borrower's (small) list, and no position ever leaves this
module.

=== LIFECYCLE ===

    borrow   -> available liquidity shrinks, Loan appended with the next id
    repay    -> principal + interest paid in full, principal returned to
                available liquidity, Loan removed
    liquidate-> principal written down (pro-rata) or Loan removed
"""

from __future__ import annotations
import logging
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Tuple, Union

from .core import (
    InsufficientRepayment, Loan, LoanList, LoanTerm, NoActiveLoan, RepaymentQuote,
    checked, checked_add, require_id, require_positive,
)
from .interest import InterestAccrualEngine
from .registry import TokenRegistry
from .utilization import UtilizationTracker

logger = logging.getLogger(__name__)

# (user, token, amount) -> raises when the loan must not be issued
Admission = Callable[[str, str, int], object]


class LoanBook:

    def __init__(
        self,
        registry: TokenRegistry,
        utilization: UtilizationTracker,
        interest: InterestAccrualEngine,
    ):
        self.registry = registry
        self.utilization = utilization
        self.interest = interest
        self._loans: Dict[str, LoanList] = {}
        self._last_loan_id = 0

    # ========================================================================
    # QUERIES
    # ========================================================================

    @property
    def last_loan_id(self) -> int:
        return self._last_loan_id

    def loans(self, user: str) -> List[Loan]:
        """Open loans of user in storage order (order is not stable)."""
        return list(self._loans.get(user, ()))

    def borrowers(self) -> List[str]:
        return [user for user, loans in self._loans.items() if loans]

    def _index_of(self, user: str, loan_id: int) -> int:
        for index, loan in enumerate(self._loans.get(user, ())):
            if loan.loan_id == loan_id:
                return index
        raise NoActiveLoan(f"{user} has no open loan #{loan_id}")

    def get(self, user: str, loan_id: int) -> Loan:
        """
        Raises:
            NoActiveLoan: If loan_id is not among user's open loans.
        """
        index = self._index_of(user, loan_id)
        return self._loans[user][index]

    def quote(self, user: str, loan_id: int, now: int) -> RepaymentQuote:
        """
        Amount due to close the loan at time now.

        Interest uses the current utilization of the loan's token.
        """
        loan = self.get(user, loan_id)
        return self._quote(loan, now)

    def _quote(self, loan: Loan, now: int) -> RepaymentQuote:
        utilization = self.utilization.utilization_rate(loan.token)
        interest = self.interest.accrued_interest(loan, utilization, now)
        cashback, treasury_cut = self.interest.split_interest(interest)
        return RepaymentQuote(
            loan_id=loan.loan_id,
            principal=loan.principal,
            interest=interest,
            cashback=cashback,
            treasury_cut=treasury_cut,
            total_due=checked_add(loan.principal, interest, "total due"),
        )

    # ========================================================================
    # MUTATIONS
    # ========================================================================

    def borrow(
        self,
        user: str,
        token: str,
        amount: int,
        term: Union[LoanTerm, int, str],
        now: int,
        admit: Optional[Admission] = None,
    ) -> Loan:
        """
        Issue a new loan from the pool.

        Arguments are validated here and nowhere else. admit, when given,
        runs after validation and before liquidity is touched; the protocol
        passes RiskEngine.check_borrow so the borrow limit gates every loan.

        Returns:
            The new Loan

        Raises:
            UnsupportedToken: If token is not lending-eligible.
            InvalidTerm: If term maps to no payment schedule.
            InsufficientLiquidity: If amount exceeds available liquidity.
            ExceedsBorrowLimit: Raised by admit.
        """
        require_id(user, "user")
        require_positive(amount)
        self.registry.require_lending(token)
        loan_term = LoanTerm.parse(term)
        if admit is not None:
            admit(user, token, amount)

        loan_id = checked(self._last_loan_id + 1, "loan id")
        self.utilization.lend_out(token, amount)

        loan = Loan(
            loan_id=loan_id,
            borrower=user,
            token=token,
            principal=amount,
            term=loan_term,
            remaining_payments=loan_term.payments,
            start_timestamp=now,
            last_payment_timestamp=now,
        )
        self._last_loan_id = loan_id
        self._loans.setdefault(user, []).append(loan)
        logger.debug("issued %r", loan)
        return loan

    def repay(self, user: str, loan_id: int, amount: int, now: int) -> RepaymentQuote:
        """
        Close a loan by paying principal plus accrued interest.

        Returns:
            The quote that was settled (amounts actually due)

        Raises:
            NoActiveLoan: If loan_id is not among user's open loans.
            InsufficientRepayment: If amount < total due. Nothing is mutated.
        """
        require_positive(amount)
        index = self._index_of(user, loan_id)
        loan = self._loans[user][index]
        quote = self._quote(loan, now)

        if amount < quote.total_due:
            raise InsufficientRepayment(
                f"loan #{loan_id}: paid {amount}, due {quote.total_due} "
                f"({quote.principal} principal + {quote.interest} interest)"
            )

        self.utilization.return_liquidity(loan.token, loan.principal)
        self._remove_at(user, index)
        return quote

    def write_down(self, user: str, loan_id: int, amount: int) -> Optional[Loan]:
        """
        Extinguish part of a loan's principal (liquidation path).

        The principal goes back to available liquidity. A loan written down
        to zero is removed. Accrued interest on the extinguished part is
        forfeited; the remaining principal keeps accruing from its last
        payment.

        Returns:
            The updated Loan, or None if it was closed
        """
        index = self._index_of(user, loan_id)
        loan = self._loans[user][index]
        if amount <= 0:
            return loan
        if amount > loan.principal:
            raise ValueError(f"write-down {amount} exceeds principal {loan.principal} of loan #{loan_id}")

        self.utilization.return_liquidity(loan.token, amount)
        if amount == loan.principal:
            self._remove_at(user, index)
            return None

        updated = replace(loan, principal=loan.principal - amount)
        self._loans[user][index] = updated
        return updated

    def _remove_at(self, user: str, index: int) -> None:
        # swap-with-last then truncate
        loans = self._loans[user]
        loans[index] = loans[-1]
        loans.pop()
        if not loans:
            del self._loans[user]

    # ========================================================================
    # SNAPSHOT / ROLLBACK
    # ========================================================================

    def snapshot(self) -> Tuple[Dict[str, Tuple[Loan, ...]], int]:
        return {user: tuple(loans) for user, loans in self._loans.items()}, self._last_loan_id

    def rollback(self, snapshot: Tuple[Dict[str, Tuple[Loan, ...]], int]) -> None:
        loans, last_loan_id = snapshot
        self._loans = {user: list(items) for user, items in loans.items()}
        self._last_loan_id = last_loan_id
