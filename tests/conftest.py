"""
conftest.py - Shared pytest fixtures for lending tests

Provides common fixtures used across unit, functional and conformance tests:
- A static oracle with round prices (ETH 1000, WBTC 20000, stablecoins 1)
- A funded TokenLedger with the protocol's custody and treasury wallets
- A LendingProtocol with ETH/WBTC collateral and USDC/DAI pools
- State capture helpers for rollback assertions
"""

import pytest
from typing import Any, Dict

from lending import (
    LendingProtocol,
    ProtocolConfig,
    StaticPriceOracle,
    Token,
    TokenLedger,
    DEFAULT_CONFIG,
)

from tests.fakes import RecordingTransfer


PRICES = {"ETH": 1_000, "WBTC": 20_000, "USDC": 1, "DAI": 1}
WALLETS = ("lender", "alice", "bob", "carol", "liquidator")
POOL_LIQUIDITY = 1_000_000


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def make_token_ledger(config: ProtocolConfig = DEFAULT_CONFIG) -> TokenLedger:
    """TokenLedger with all test tokens, wallets and starting balances."""
    tokens = TokenLedger("tokens", test_mode=True)
    tokens.register_token(Token("ETH", "Ether"))
    tokens.register_token(Token("WBTC", "Wrapped Bitcoin", decimals=8))
    tokens.register_token(Token("USDC", "USD Coin", decimals=6))
    tokens.register_token(Token("DAI", "Dai"))
    tokens.register_wallet(config.custody_wallet)
    tokens.register_wallet(config.treasury_wallet)
    for wallet in WALLETS:
        tokens.register_wallet(wallet)

    tokens.issue("lender", "USDC", 10 * POOL_LIQUIDITY)
    tokens.issue("lender", "DAI", 10 * POOL_LIQUIDITY)
    for wallet in ("alice", "bob", "carol"):
        tokens.issue(wallet, "ETH", 100)
        tokens.issue(wallet, "WBTC", 10)
        tokens.issue(wallet, "USDC", 100)
    tokens.issue("liquidator", "USDC", 100_000)
    tokens.issue("liquidator", "DAI", 100_000)
    return tokens


def make_protocol(oracle, transfer, config: ProtocolConfig = DEFAULT_CONFIG,
                  liquidity: int = POOL_LIQUIDITY) -> LendingProtocol:
    """Protocol with ETH/WBTC collateral, USDC/DAI pools funded by `lender`."""
    protocol = LendingProtocol(oracle, transfer, config=config)
    protocol.add_collateral_token("ETH")
    protocol.add_collateral_token("WBTC")
    protocol.add_lending_token("USDC")
    protocol.add_lending_token("DAI")
    if liquidity:
        protocol.supply("lender", "USDC", liquidity)
        protocol.supply("lender", "DAI", liquidity)
    return protocol


def protocol_state(protocol: LendingProtocol) -> Dict[str, Any]:
    """Everything an operation may change, for before/after comparison."""
    users = set(WALLETS)
    return {
        "collateral": {u: protocol.collateral_balances(u) for u in sorted(users)},
        "loans": {u: protocol.get_loans(u) for u in sorted(users)},
        "supplied": {
            (u, t): protocol.supplied_balance(u, t)
            for u in sorted(users) for t in protocol.lending_tokens()
        },
        "pools": {t: protocol.pool_state(t) for t in protocol.lending_tokens()},
        "last_loan_id": protocol.loans.last_loan_id,
        "events": len(protocol.events),
    }


def token_balances(tokens: TokenLedger) -> Dict[Any, int]:
    return {
        (w, t): tokens.get_balance(w, t)
        for w in sorted(tokens.list_wallets()) for t in tokens.list_tokens()
    }


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def oracle():
    return StaticPriceOracle(PRICES)


@pytest.fixture
def tokens():
    return make_token_ledger()


@pytest.fixture
def protocol(oracle, tokens):
    return make_protocol(oracle, tokens)


@pytest.fixture
def recording_transfer():
    return RecordingTransfer()


@pytest.fixture
def bare_protocol(oracle, recording_transfer):
    """Protocol over a RecordingTransfer (no token balances enforced)."""
    return make_protocol(oracle, recording_transfer)


@pytest.fixture
def alice_borrowing(protocol):
    """alice: 2 ETH collateral (value 2000), one 1000 USDC loan on a 360-day term."""
    protocol.deposit_collateral("alice", "ETH", 2)
    loan = protocol.borrow("alice", "USDC", 1_000, 360)
    return protocol, loan
