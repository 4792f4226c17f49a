"""
Threshold Arithmetic Conformance Tests

INVARIANTS (integer, truncating, exactly as written):

    borrow admitted   ⟺ debt + value(amount) ≤ collateral_value * 75 // 100
    liquidatable      ⟺ collateral_value < debt * 125 // 100
    collateral withdraw admitted ⟺ remaining_value ≥ debt * 125 // 100
    utilization       = (gross - available) * 100 // gross, 0 when gross = 0

No float ever enters a threshold decision.
"""

from hypothesis import given, settings, assume
from hypothesis import strategies as st

from lending import (
    DEFAULT_MAX_RATE,
    DEFAULT_RATE_TIERS,
    ExceedsBorrowLimit,
    InsufficientCollateral,
    LendingProtocol,
    StaticPriceOracle,
    UtilizationTracker,
    select_rate,
)

from tests.fakes import RecordingTransfer


def make_position(eth_price: int, usdc_price: int = 1, liquidity: int = 10 ** 30) -> LendingProtocol:
    protocol = LendingProtocol(StaticPriceOracle({"ETH": eth_price, "USDC": usdc_price}), RecordingTransfer())
    protocol.add_collateral_token("ETH")
    protocol.add_lending_token("USDC")
    protocol.supply("lender", "USDC", liquidity)
    return protocol


class TestBorrowLimitProperties:

    @given(
        collateral=st.integers(1, 10 ** 6),
        eth_price=st.integers(1, 10 ** 6),
        usdc_price=st.integers(1, 100),
        amount=st.integers(1, 10 ** 9),
    )
    @settings(max_examples=200, deadline=None)
    def test_admission_matches_formula(self, collateral, eth_price, usdc_price, amount):
        protocol = make_position(eth_price, usdc_price)
        protocol.deposit_collateral("alice", "ETH", collateral)
        limit = collateral * eth_price * 75 // 100
        fits = amount * usdc_price <= limit

        try:
            protocol.borrow("alice", "USDC", amount, 30)
            admitted = True
        except ExceedsBorrowLimit:
            admitted = False

        assert admitted == fits

    @given(collateral_value=st.integers(4, 10 ** 9))
    @settings(max_examples=100, deadline=None)
    def test_limit_boundary_is_inclusive(self, collateral_value):
        protocol = make_position(eth_price=1)
        protocol.deposit_collateral("alice", "ETH", collateral_value)
        limit = collateral_value * 75 // 100
        assume(limit > 0)

        protocol.borrow("alice", "USDC", limit, 30)
        assert protocol.total_debt("alice") == limit
        try:
            protocol.borrow("alice", "USDC", 1, 30)
            assert False, "borrow beyond limit was admitted"
        except ExceedsBorrowLimit:
            pass


class TestLiquidationProperties:

    @given(
        debt=st.integers(1, 10 ** 6),
        new_price=st.integers(1, 10 ** 7),
    )
    @settings(max_examples=200, deadline=None)
    def test_liquidatable_matches_formula(self, debt, new_price):
        protocol = make_position(eth_price=10 ** 7)
        protocol.deposit_collateral("alice", "ETH", 1)
        protocol.borrow("alice", "USDC", debt, 30)

        protocol.valuation.oracle.update_price("ETH", new_price)
        assert protocol.is_liquidatable("alice") == (new_price < debt * 125 // 100)

    @given(
        held=st.integers(2, 1_000),
        debt=st.integers(1, 500),
        take=st.integers(1, 1_000),
    )
    @settings(max_examples=200, deadline=None)
    def test_withdraw_floor_matches_formula(self, held, debt, take):
        protocol = make_position(eth_price=1)
        protocol.deposit_collateral("alice", "ETH", held)
        assume(debt <= held * 75 // 100)
        protocol.borrow("alice", "USDC", debt, 30)

        allowed = take <= held and held - take >= debt * 125 // 100
        try:
            protocol.withdraw_collateral("alice", "ETH", take)
            withdrawn = True
        except InsufficientCollateral:
            withdrawn = False

        assert withdrawn == allowed


class TestUtilizationProperties:

    @given(
        gross=st.integers(0, 10 ** 12),
        lent_share=st.integers(0, 1_000),
    )
    @settings(max_examples=200)
    def test_rate_matches_formula(self, gross, lent_share):
        tracker = UtilizationTracker()
        tracker.open_pool("USDC")
        lent = gross * lent_share // 1_000
        if gross:
            tracker.supply("USDC", gross)
        if lent:
            tracker.lend_out("USDC", lent)

        expected = lent * 100 // gross if gross else 0
        rate = tracker.utilization_rate("USDC")
        assert rate == expected
        assert 0 <= rate <= 100

    @given(st.integers(0, 100), st.integers(0, 100))
    def test_apr_monotonic_in_utilization(self, a, b):
        low, high = sorted((a, b))
        assert select_rate(low, DEFAULT_RATE_TIERS, DEFAULT_MAX_RATE) <= \
            select_rate(high, DEFAULT_RATE_TIERS, DEFAULT_MAX_RATE)
