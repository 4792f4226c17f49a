"""
test_protocol.py - Unit tests for LendingProtocol operations

Tests:
- Governance (token registration)
- Lender supply / withdraw
- Collateral deposit / withdraw against the liquidation floor
- Borrow and repay with their token transfers
- Clock
- Atomicity: failed operations leave no trace, emit no events
"""

import pytest

from lending import (
    AlreadyRegistered,
    EventKind,
    InsufficientCollateral,
    InsufficientLiquidity,
    InsufficientRepayment,
    InvalidTerm,
    LendingProtocol,
    LoanTerm,
    Move,
    NoActiveLoan,
    PriceUnavailable,
    SECONDS_PER_YEAR,
    TransferFailed,
    UnsupportedToken,
)

from tests.conftest import POOL_LIQUIDITY, make_protocol, protocol_state, token_balances
from tests.fakes import FailingTransfer


# ============================================================================
# GOVERNANCE
# ============================================================================

class TestGovernance:

    def test_registered_tokens(self, protocol):
        assert protocol.collateral_tokens() == ["ETH", "WBTC"]
        assert protocol.lending_tokens() == ["USDC", "DAI"]

    def test_duplicate_collateral_token(self, protocol):
        with pytest.raises(AlreadyRegistered):
            protocol.add_collateral_token("ETH")

    def test_duplicate_lending_token_keeps_pool(self, protocol):
        with pytest.raises(AlreadyRegistered):
            protocol.add_lending_token("USDC")
        assert protocol.pool_state("USDC").gross_liquidity == POOL_LIQUIDITY

    def test_lending_token_opens_empty_pool(self, oracle, recording_transfer):
        protocol = LendingProtocol(oracle, recording_transfer)
        protocol.add_lending_token("USDC")
        assert protocol.utilization_rate("USDC") == 0
        assert protocol.pool_state("USDC").gross_liquidity == 0
        assert recording_transfer.batches == []


# ============================================================================
# LENDER SIDE
# ============================================================================

class TestSupplyWithdraw:

    def test_supply_moves_tokens_to_custody(self, protocol, tokens):
        assert protocol.supplied_balance("lender", "USDC") == POOL_LIQUIDITY
        assert tokens.get_balance("lending_pool", "USDC") == POOL_LIQUIDITY
        assert tokens.get_balance("lender", "USDC") == 9 * POOL_LIQUIDITY

    def test_withdraw(self, protocol, tokens):
        assert protocol.withdraw("lender", "USDC", 400) == POOL_LIQUIDITY - 400
        pool = protocol.pool_state("USDC")
        assert pool.gross_liquidity == pool.available_liquidity == POOL_LIQUIDITY - 400
        assert tokens.get_balance("lender", "USDC") == 9 * POOL_LIQUIDITY + 400

    def test_withdraw_bounded_by_own_supply(self, protocol):
        with pytest.raises(InsufficientLiquidity):
            protocol.withdraw("bob", "USDC", 1)
        with pytest.raises(InsufficientLiquidity):
            protocol.withdraw("lender", "USDC", POOL_LIQUIDITY + 1)

    def test_withdraw_bounded_by_available_liquidity(self, oracle, tokens):
        protocol = make_protocol(oracle, tokens, liquidity=1_000)
        protocol.deposit_collateral("alice", "ETH", 2)
        protocol.borrow("alice", "USDC", 800, 30)

        with pytest.raises(InsufficientLiquidity):
            protocol.withdraw("lender", "USDC", 201)
        assert protocol.supplied_balance("lender", "USDC") == 1_000
        protocol.withdraw("lender", "USDC", 200)

    def test_supply_unsupported_token(self, protocol):
        with pytest.raises(UnsupportedToken):
            protocol.supply("lender", "ETH", 1)


# ============================================================================
# COLLATERAL
# ============================================================================

class TestCollateral:

    def test_deposit(self, protocol, tokens):
        assert protocol.deposit_collateral("alice", "ETH", 3) == 3
        assert tokens.get_balance("alice", "ETH") == 97
        assert tokens.get_balance("lending_pool", "ETH") == 3

    def test_deposit_unsupported(self, protocol):
        with pytest.raises(UnsupportedToken):
            protocol.deposit_collateral("alice", "USDC", 1)

    def test_withdraw_without_debt(self, protocol, tokens, oracle):
        protocol.deposit_collateral("alice", "ETH", 3)
        oracle.queries.clear()
        assert protocol.withdraw_collateral("alice", "ETH", 3) == 0
        assert tokens.get_balance("alice", "ETH") == 100
        # no debt, so no floor to price
        assert oracle.total_queries() == 0

    def test_withdraw_keeps_floor(self, alice_borrowing):
        protocol, _ = alice_borrowing
        # debt 1000 -> floor 1250; 1 ETH would leave 1000
        with pytest.raises(InsufficientCollateral):
            protocol.withdraw_collateral("alice", "ETH", 1)
        assert protocol.collateral_balance("alice", "ETH") == 2

    def test_withdraw_above_floor(self, protocol):
        protocol.deposit_collateral("alice", "ETH", 2)
        protocol.borrow("alice", "USDC", 600, 30)
        # debt 600 -> floor 750; 1 ETH leaves 1000
        assert protocol.withdraw_collateral("alice", "ETH", 1) == 1

    def test_withdraw_more_than_balance(self, protocol):
        protocol.deposit_collateral("alice", "ETH", 1)
        with pytest.raises(InsufficientCollateral):
            protocol.withdraw_collateral("alice", "ETH", 2)


# ============================================================================
# BORROW / REPAY
# ============================================================================

class TestBorrow:

    def test_borrow_transfers_from_custody(self, alice_borrowing, tokens):
        protocol, loan = alice_borrowing
        assert loan.loan_id == 1
        assert loan.term is LoanTerm.DAYS_360
        assert loan.remaining_payments == 12
        assert tokens.get_balance("alice", "USDC") == 1_100
        assert protocol.pool_state("USDC").available_liquidity == POOL_LIQUIDITY - 1_000

    def test_borrow_records_protocol_time(self, protocol):
        protocol.advance_time(1_234)
        protocol.deposit_collateral("alice", "ETH", 1)
        loan = protocol.borrow("alice", "USDC", 10, "DAYS_7")
        assert loan.start_timestamp == 1_234
        assert loan.due_timestamp == 1_234 + 7 * 86_400

    def test_invalid_term(self, protocol):
        protocol.deposit_collateral("alice", "ETH", 1)
        with pytest.raises(InvalidTerm):
            protocol.borrow("alice", "USDC", 10, 60)

    def test_insufficient_liquidity(self, oracle, tokens):
        protocol = make_protocol(oracle, tokens, liquidity=100)
        protocol.deposit_collateral("alice", "ETH", 1)
        with pytest.raises(InsufficientLiquidity):
            protocol.borrow("alice", "USDC", 101, 30)

    def test_missing_price_rejects_borrow(self, protocol, oracle):
        protocol.deposit_collateral("alice", "ETH", 1)
        oracle.remove_price("USDC")
        with pytest.raises(PriceUnavailable):
            protocol.borrow("alice", "USDC", 10, 30)
        assert protocol.get_loans("alice") == []


class TestRepay:

    def test_one_year_repayment(self, alice_borrowing, tokens):
        """1000 principal for a year at 6%: pay 1060, 51 to treasury, 9 back."""
        protocol, loan = alice_borrowing
        protocol.advance_time(SECONDS_PER_YEAR)

        quote = protocol.repay("alice", loan.loan_id, 1_060)

        assert (quote.interest, quote.cashback, quote.treasury_cut, quote.total_due) == (60, 9, 51, 1_060)
        assert tokens.get_balance("alice", "USDC") == 1_100 - 1_060 + 9
        assert tokens.get_balance("treasury", "USDC") == 51
        assert tokens.get_balance("lending_pool", "USDC") == POOL_LIQUIDITY
        assert protocol.get_loans("alice") == []
        assert protocol.pool_state("USDC").available_liquidity == POOL_LIQUIDITY

    def test_quote_matches_repayment(self, alice_borrowing):
        protocol, loan = alice_borrowing
        protocol.advance_time(SECONDS_PER_YEAR // 2)
        quote = protocol.quote_repayment("alice", loan.loan_id)
        assert quote.total_due == 1_030
        assert protocol.repay("alice", loan.loan_id, 2_000) == quote

    def test_insufficient_repayment_changes_nothing(self, alice_borrowing, tokens):
        protocol, loan = alice_borrowing
        protocol.advance_time(SECONDS_PER_YEAR)
        before = protocol_state(protocol)
        balances = token_balances(tokens)

        with pytest.raises(InsufficientRepayment):
            protocol.repay("alice", loan.loan_id, 1_059)

        assert protocol_state(protocol) == before
        assert token_balances(tokens) == balances
        assert protocol.get_loan("alice", loan.loan_id) == loan

    def test_zero_interest_repayment_omits_split_moves(self, bare_protocol, recording_transfer):
        bare_protocol.deposit_collateral("alice", "ETH", 1)
        loan = bare_protocol.borrow("alice", "USDC", 100, 30)
        bare_protocol.repay("alice", loan.loan_id, 100)
        assert recording_transfer.batches[-1] == [
            Move(100, "USDC", "alice", "lending_pool", f"repay:{loan.loan_id}")
        ]

    def test_unknown_loan(self, protocol):
        with pytest.raises(NoActiveLoan):
            protocol.repay("alice", 42, 100)

    def test_repaying_a_closed_loan(self, alice_borrowing):
        protocol, loan = alice_borrowing
        protocol.repay("alice", loan.loan_id, 1_000)
        with pytest.raises(NoActiveLoan):
            protocol.repay("alice", loan.loan_id, 1_000)
        with pytest.raises(NoActiveLoan):
            protocol.get_loan("alice", loan.loan_id)

    def test_borrower_without_loans(self, protocol):
        with pytest.raises(NoActiveLoan):
            protocol.quote_repayment("bob", 1)


# ============================================================================
# CLOCK
# ============================================================================

class TestClock:

    def test_advance(self, oracle, recording_transfer):
        protocol = LendingProtocol(oracle, recording_transfer, initial_time=100)
        protocol.advance_time(100)
        protocol.advance_time(200)
        assert protocol.current_time == 200

    def test_cannot_go_backwards(self, protocol):
        protocol.advance_time(50)
        with pytest.raises(ValueError):
            protocol.advance_time(49)


# ============================================================================
# ATOMICITY
# ============================================================================

class TestAtomicity:

    def test_transfer_failure_rolls_back(self, protocol, tokens):
        """alice holds 100 ETH; depositing 101 fails at settlement."""
        before = protocol_state(protocol)
        balances = token_balances(tokens)

        with pytest.raises(TransferFailed):
            protocol.deposit_collateral("alice", "ETH", 101)

        assert protocol_state(protocol) == before
        assert token_balances(tokens) == balances

    def test_failing_collaborator_blocks_every_operation(self, oracle):
        transfer = FailingTransfer()
        protocol = LendingProtocol(oracle, transfer)
        protocol.add_lending_token("USDC")

        with pytest.raises(TransferFailed):
            protocol.supply("lender", "USDC", 100)

        assert protocol.pool_state("USDC").gross_liquidity == 0
        assert protocol.supplied_balance("lender", "USDC") == 0
        assert len(protocol.events) == 0
        assert transfer.attempts == 1

    def test_guard_released_after_failure(self, protocol):
        with pytest.raises(UnsupportedToken):
            protocol.supply("lender", "DOGE", 1)
        assert not protocol.guard.held
        protocol.supply("lender", "USDC", 1)

    def test_events_only_for_committed_operations(self, protocol):
        protocol.deposit_collateral("alice", "ETH", 1)
        count = len(protocol.events)
        with pytest.raises(Exception):
            protocol.borrow("alice", "USDC", 10_000, 30)
        assert len(protocol.events) == count

        loan = protocol.borrow("alice", "USDC", 100, 30)
        event = protocol.events.events[-1]
        assert event.kind is EventKind.BORROW
        assert (event.actor, event.token, event.amount, event.loan_id) == ("alice", "USDC", 100, loan.loan_id)
