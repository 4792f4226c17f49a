"""
protocol.py - LendingProtocol, the public surface of the lending core

LendingProtocol wires the components together and runs every
state-mutating operation as one atomic section:

    1. enter the reentrancy guard
    2. snapshot every store
    3. validate and mutate, collecting the token Moves the operation needs
    4. settle the whole batch with the transfer collaborator (all-or-nothing)
    5. leave the guard, then commit the staged events

Any exception in steps 3-4 restores the snapshot, discards the staged
events and propagates unchanged. The guard is held across every oracle and
transfer call, so a collaborator calling back into the protocol gets
ReentrantCallBlocked and the outer operation is rolled back.

Example:
    tokens = TokenLedger("tokens")
    oracle = StaticPriceOracle({"ETH": 2_000, "USDC": 1})
    protocol = LendingProtocol(oracle, tokens)

    protocol.add_collateral_token("ETH")
    protocol.add_lending_token("USDC")
    protocol.supply("lender", "USDC", 100_000)
    protocol.deposit_collateral("alice", "ETH", 10)
    loan = protocol.borrow("alice", "USDC", 10_000, LoanTerm.DAYS_30)
"""

from __future__ import annotations
import logging
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Union

from .collateral import CollateralLedger
from .config import DEFAULT_CONFIG, ProtocolConfig
from .core import (
    BalanceMap, InsufficientLiquidity, Loan, LoanTerm, Move, PoolTokenState,
    PriceOracle, RepaymentQuote, TokenTransfer,
    checked_add, require_id, require_positive,
)
from .events import EventKind, EventLog, ProtocolEvent
from .guard import ReentrancyGuard
from .interest import InterestAccrualEngine
from .liquidation import FULL_LIQUIDATION_BPS, LiquidationEngine, LiquidationResult
from .loans import LoanBook
from .registry import TokenRegistry
from .risk import PositionSummary, RiskEngine
from .utilization import UtilizationTracker
from .valuation import PriceValuationService

logger = logging.getLogger(__name__)


class LendingProtocol:
    """
    Collateralized lending pool over a price oracle and a token-transfer
    collaborator.

    Thread Safety:
        Not thread-safe. One operation at a time per instance; overlapping
        calls are rejected by the reentrancy guard.
    """

    def __init__(
        self,
        oracle: PriceOracle,
        transfer: TokenTransfer,
        config: ProtocolConfig = DEFAULT_CONFIG,
        initial_time: int = 0,
    ):
        self.config = config
        self.transfer = transfer
        self._now = initial_time

        self.registry = TokenRegistry()
        self.valuation = PriceValuationService(oracle)
        self.utilization = UtilizationTracker()
        self.interest = InterestAccrualEngine(config)
        self.collateral = CollateralLedger(self.registry, self.valuation)
        self.loans = LoanBook(self.registry, self.utilization, self.interest)
        self.risk = RiskEngine(config, self.collateral, self.loans, self.valuation)
        self.liquidation = LiquidationEngine(self.risk, self.collateral, self.loans)
        self.guard = ReentrancyGuard()
        self.events = EventLog()

        # supplier -> token -> amount supplied and not yet withdrawn
        self._supplied: Dict[str, Dict[str, int]] = {}

    @property
    def custody(self) -> str:
        return self.config.custody_wallet

    @property
    def treasury(self) -> str:
        return self.config.treasury_wallet

    # ========================================================================
    # CLOCK
    # ========================================================================

    @property
    def current_time(self) -> int:
        return self._now

    def clock(self) -> int:
        """Callable form of current_time, for time-aware oracles."""
        return self._now

    def advance_time(self, new_time: int) -> None:
        """
        Raises:
            ValueError: If new_time is before the current time.
        """
        if new_time < self._now:
            raise ValueError(f"Cannot move time backwards: {new_time} < {self._now}")
        self._now = new_time

    # ========================================================================
    # ATOMIC SECTION
    # ========================================================================

    def _snapshot(self):
        return (
            self.registry.snapshot(),
            self.utilization.snapshot(),
            self.collateral.snapshot(),
            self.loans.snapshot(),
            {user: dict(held) for user, held in self._supplied.items()},
        )

    def _rollback(self, state) -> None:
        registry, pools, collateral, loans, supplied = state
        self.registry.rollback(registry)
        self.utilization.rollback(pools)
        self.collateral.rollback(collateral)
        self.loans.rollback(loans)
        self._supplied = {user: dict(held) for user, held in supplied.items()}

    @contextmanager
    def _operation(self, name: str) -> Iterator[List[Move]]:
        with self.guard(name):
            state = self._snapshot()
            moves: List[Move] = []
            try:
                yield moves
                if moves:
                    self.transfer.settle(moves)
            except Exception as e:
                self._rollback(state)
                self.events.discard()
                logger.info("%s rejected: %s: %s", name, type(e).__name__, e)
                raise
        self.events.commit()

    def _stage(self, kind: EventKind, actor: str, token: str, amount: int,
               loan_id: Optional[int] = None, subject: Optional[str] = None) -> None:
        self.events.stage(ProtocolEvent(
            kind=kind,
            actor=actor,
            token=token,
            amount=amount,
            timestamp=self._now,
            loan_id=loan_id,
            subject=subject,
        ))

    # ========================================================================
    # GOVERNANCE
    # ========================================================================

    def add_collateral_token(self, token: str) -> None:
        """
        Raises:
            AlreadyRegistered: If token is already collateral-eligible.
        """
        with self._operation("add_collateral_token"):
            self.registry.add_collateral_token(token)

    def add_lending_token(self, token: str) -> None:
        """
        Make token lending-eligible and open its pool.

        Raises:
            AlreadyRegistered: If token is already lending-eligible.
        """
        with self._operation("add_lending_token"):
            self.registry.add_lending_token(token)
            self.utilization.open_pool(token)

    # ========================================================================
    # LENDER SIDE
    # ========================================================================

    def supply(self, user: str, token: str, amount: int) -> int:
        """
        Add liquidity to a lending pool.

        Returns:
            The supplier's new supplied balance

        Raises:
            UnsupportedToken: If token is not lending-eligible.
        """
        with self._operation("supply") as moves:
            require_id(user, "user")
            require_positive(amount)
            self.registry.require_lending(token)

            self.utilization.supply(token, amount)
            held = self._supplied.setdefault(user, {})
            held[token] = checked_add(held.get(token, 0), amount, f"{user} {token} supplied")

            moves.append(Move(amount, token, user, self.custody, "supply"))
            self._stage(EventKind.SUPPLY, user, token, amount)
        return held[token]

    def withdraw(self, user: str, token: str, amount: int) -> int:
        """
        Take supplied liquidity back out of a pool.

        Returns:
            The supplier's remaining supplied balance

        Raises:
            UnsupportedToken: If token is not lending-eligible.
            InsufficientLiquidity: If amount exceeds the supplier's own
                balance or the pool's available liquidity.
        """
        with self._operation("withdraw") as moves:
            require_id(user, "user")
            require_positive(amount)
            self.registry.require_lending(token)

            supplied = self.supplied_balance(user, token)
            if amount > supplied:
                raise InsufficientLiquidity(
                    f"{user}: withdraw {amount} {token} exceeds supplied {supplied}"
                )
            self.utilization.withdraw(token, amount)
            remaining = supplied - amount
            self._supplied[user][token] = remaining

            moves.append(Move(amount, token, self.custody, user, "withdraw"))
            self._stage(EventKind.WITHDRAW, user, token, amount)
        return remaining

    # ========================================================================
    # COLLATERAL
    # ========================================================================

    def deposit_collateral(self, user: str, token: str, amount: int) -> int:
        """
        Returns:
            New collateral balance of user in token

        Raises:
            UnsupportedToken: If token is not collateral-eligible.
        """
        with self._operation("deposit_collateral") as moves:
            balance = self.collateral.deposit(user, token, amount)
            moves.append(Move(amount, token, user, self.custody, "collateral_deposit"))
            self._stage(EventKind.COLLATERAL_DEPOSIT, user, token, amount)
        return balance

    def withdraw_collateral(self, user: str, token: str, amount: int) -> int:
        """
        Withdraw collateral, keeping the position at or above 125% of debt.

        Returns:
            New collateral balance of user in token

        Raises:
            UnsupportedToken: If token is not collateral-eligible.
            InsufficientCollateral: If the balance is short or the remaining
                collateral value would fall below the liquidation floor.
            PriceUnavailable: If a needed price is missing.
        """
        with self._operation("withdraw_collateral") as moves:
            floor = self.risk.min_collateral_value(user)
            balance = self.collateral.withdraw(user, token, amount, floor)

            moves.append(Move(amount, token, self.custody, user, "collateral_withdraw"))
            self._stage(EventKind.COLLATERAL_WITHDRAW, user, token, amount)
        return balance

    # ========================================================================
    # BORROWER SIDE
    # ========================================================================

    def borrow(
        self,
        user: str,
        token: str,
        amount: int,
        term: Union[LoanTerm, int, str],
    ) -> Loan:
        """
        Open a loan against deposited collateral.

        Admission: existing debt plus the value of amount must not exceed
        75% of collateral value, and amount must fit available liquidity.

        Returns:
            The new Loan

        Raises:
            UnsupportedToken: If token is not lending-eligible.
            InvalidTerm: If term maps to no payment schedule.
            ExceedsBorrowLimit: If the borrow does not fit the user's limit.
            InsufficientLiquidity: If the pool cannot cover amount.
            PriceUnavailable: If a needed price is missing.
        """
        with self._operation("borrow") as moves:
            loan = self.loans.borrow(user, token, amount, term, self._now, admit=self.risk.check_borrow)

            moves.append(Move(amount, token, self.custody, user, f"borrow:{loan.loan_id}"))
            self._stage(EventKind.BORROW, user, token, amount, loan_id=loan.loan_id)
        return loan

    def repay(self, user: str, loan_id: int, amount: int) -> RepaymentQuote:
        """
        Close a loan in full.

        The user pays total_due (principal plus accrued interest); the
        treasury receives its cut and the cashback goes back to the user.
        Only total_due is pulled even when amount is larger.

        Returns:
            The settled RepaymentQuote

        Raises:
            NoActiveLoan: If loan_id is not among user's open loans.
            InsufficientRepayment: If amount is below total_due.
        """
        with self._operation("repay") as moves:
            require_id(user, "user")
            loan = self.loans.get(user, loan_id)
            quote = self.loans.repay(user, loan_id, amount, self._now)

            reason = f"repay:{loan_id}"
            moves.append(Move(quote.total_due, loan.token, user, self.custody, reason))
            if quote.treasury_cut > 0:
                moves.append(Move(quote.treasury_cut, loan.token, self.custody, self.treasury, reason))
            if quote.cashback > 0:
                moves.append(Move(quote.cashback, loan.token, self.custody, user, reason))
            self._stage(EventKind.REPAY, user, loan.token, quote.total_due, loan_id=loan_id)
        return quote

    def liquidate(
        self,
        liquidator: str,
        user: str,
        fraction_bps: int = FULL_LIQUIDATION_BPS,
    ) -> LiquidationResult:
        """
        Liquidate an under-collateralized position.

        The liquidator pays the written-down principal into the pool and
        receives the seized collateral.

        Raises:
            NotLiquidatable: If the position is healthy.
            ValueError: If fraction_bps is out of range or liquidator is user.
        """
        with self._operation("liquidate") as moves:
            # closed loans leave the book, so remember their tokens first
            loan_tokens = {loan.loan_id: loan.token for loan in self.loans.loans(user)}
            result = self.liquidation.liquidate(liquidator, user, fraction_bps)

            reason = f"liquidate:{user}"
            for token, amount in result.repaid_by_token.items():
                moves.append(Move(amount, token, liquidator, self.custody, reason))
            for token, amount in result.seized.items():
                moves.append(Move(amount, token, self.custody, liquidator, reason))

            for loan_id, amount in result.repaid.items():
                self._stage(EventKind.LIQUIDATION, liquidator, loan_tokens[loan_id], amount,
                            loan_id=loan_id, subject=user)
            for token, amount in result.seized.items():
                self._stage(EventKind.COLLATERAL_SEIZURE, liquidator, token, amount, subject=user)
        return result

    # ========================================================================
    # VIEWS
    # ========================================================================

    def collateral_tokens(self) -> List[str]:
        return self.registry.collateral_tokens

    def lending_tokens(self) -> List[str]:
        return self.registry.lending_tokens

    def collateral_balance(self, user: str, token: str) -> int:
        return self.collateral.balance(user, token)

    def collateral_balances(self, user: str) -> BalanceMap:
        return self.collateral.balances(user)

    def supplied_balance(self, user: str, token: str) -> int:
        return self._supplied.get(user, {}).get(token, 0)

    def collateral_value(self, user: str) -> int:
        return self.risk.collateral_value(user)

    def total_debt(self, user: str) -> int:
        return self.risk.total_debt(user)

    def borrow_limit(self, user: str) -> int:
        return self.risk.borrow_limit(user)

    def available_to_borrow(self, user: str) -> int:
        return self.risk.summary(user).available_to_borrow

    def is_liquidatable(self, user: str) -> bool:
        return self.risk.is_liquidatable(user)

    def health_factor(self, user: str) -> Optional[int]:
        """Collateral value as a whole percent of debt; None without debt."""
        return self.risk.summary(user).health_factor

    def position(self, user: str) -> PositionSummary:
        return self.risk.summary(user)

    def utilization_rate(self, token: str) -> int:
        return self.utilization.utilization_rate(token)

    def pool_state(self, token: str) -> PoolTokenState:
        return self.utilization.pool(token)

    def get_loan(self, user: str, loan_id: int) -> Loan:
        return self.loans.get(user, loan_id)

    def get_loans(self, user: str) -> List[Loan]:
        return self.loans.loans(user)

    def quote_repayment(self, user: str, loan_id: int) -> RepaymentQuote:
        return self.loans.quote(user, loan_id, self._now)
