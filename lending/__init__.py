"""
lending - Collateralized lending pool core

Users deposit collateral, borrow supported tokens against it, repay with
utilization-tiered simple interest, and are liquidated when collateral falls
below 125% of debt.

Usage:
    from lending import (
        LendingProtocol, LoanTerm, StaticPriceOracle, Token, TokenLedger,
    )

    tokens = TokenLedger("tokens")
    tokens.register_token(Token("ETH", "Ether"))
    tokens.register_token(Token("USDC", "USD Coin", decimals=6))
    for wallet in ("lending_pool", "treasury", "lender", "alice"):
        tokens.register_wallet(wallet)
    tokens.issue("lender", "USDC", 100_000)
    tokens.issue("alice", "ETH", 10)

    protocol = LendingProtocol(StaticPriceOracle({"ETH": 2_000, "USDC": 1}), tokens)
    protocol.add_collateral_token("ETH")
    protocol.add_lending_token("USDC")
    protocol.supply("lender", "USDC", 100_000)
    protocol.deposit_collateral("alice", "ETH", 10)
    loan = protocol.borrow("alice", "USDC", 10_000, LoanTerm.DAYS_30)
"""

# Core types
from .core import (
    Loan,
    LoanTerm,
    PoolTokenState,
    RepaymentQuote,
    Move,
    PriceOracle,
    TokenTransfer,
    LendingError,
    UnsupportedToken,
    AlreadyRegistered,
    InsufficientLiquidity,
    ExceedsBorrowLimit,
    InsufficientRepayment,
    InsufficientCollateral,
    NoActiveLoan,
    NotLiquidatable,
    ReentrantCallBlocked,
    PriceUnavailable,
    ArithmeticOverflow,
    InvalidTerm,
    TransferFailed,
    UINT256_MAX,
    SECONDS_PER_DAY,
    SECONDS_PER_YEAR,
    BPS_DENOMINATOR,
    LTV_PERCENT,
    LIQUIDATION_THRESHOLD_PERCENT,
    CASHBACK_BPS,
    DEFAULT_RATE_TIERS,
    DEFAULT_MAX_RATE,
    SYSTEM_WALLET,
)

# Configuration
from .config import ProtocolConfig, DEFAULT_CONFIG

# Components
from .valuation import PriceSnapshot, PriceValuationService
from .utilization import UtilizationTracker
from .interest import (
    InterestAccrualEngine,
    select_rate,
    calculate_simple_interest,
    calculate_interest_split,
)
from .registry import TokenRegistry
from .collateral import CollateralLedger
from .loans import LoanBook
from .risk import PositionSummary, RiskEngine
from .liquidation import FULL_LIQUIDATION_BPS, LiquidationEngine, LiquidationResult
from .guard import ReentrancyGuard
from .events import EventKind, EventLog, ProtocolEvent

# Collaborators
from .pricing_source import StaticPriceOracle, TimeSeriesPriceOracle
from .token_ledger import (
    TokenLedger,
    Token,
    Transaction,
    ExecuteResult,
    TokenNotRegistered,
    WalletNotRegistered,
)

# Facade
from .protocol import LendingProtocol


__all__ = [
    # Core
    'Loan', 'LoanTerm', 'PoolTokenState', 'RepaymentQuote', 'Move',
    'PriceOracle', 'TokenTransfer',

    # Errors
    'LendingError', 'UnsupportedToken', 'AlreadyRegistered',
    'InsufficientLiquidity', 'ExceedsBorrowLimit', 'InsufficientRepayment',
    'InsufficientCollateral', 'NoActiveLoan', 'NotLiquidatable',
    'ReentrantCallBlocked', 'PriceUnavailable', 'ArithmeticOverflow',
    'InvalidTerm', 'TransferFailed',

    # Constants
    'UINT256_MAX', 'SECONDS_PER_DAY', 'SECONDS_PER_YEAR', 'BPS_DENOMINATOR',
    'LTV_PERCENT', 'LIQUIDATION_THRESHOLD_PERCENT', 'CASHBACK_BPS',
    'DEFAULT_RATE_TIERS', 'DEFAULT_MAX_RATE', 'SYSTEM_WALLET',

    # Configuration
    'ProtocolConfig', 'DEFAULT_CONFIG',

    # Components
    'PriceSnapshot', 'PriceValuationService',
    'UtilizationTracker',
    'InterestAccrualEngine', 'select_rate', 'calculate_simple_interest',
    'calculate_interest_split',
    'TokenRegistry',
    'CollateralLedger',
    'LoanBook',
    'PositionSummary', 'RiskEngine',
    'FULL_LIQUIDATION_BPS', 'LiquidationEngine', 'LiquidationResult',
    'ReentrancyGuard',
    'EventKind', 'EventLog', 'ProtocolEvent',

    # Collaborators
    'StaticPriceOracle', 'TimeSeriesPriceOracle',
    'TokenLedger', 'Token', 'Transaction', 'ExecuteResult',
    'TokenNotRegistered', 'WalletNotRegistered',

    # Facade
    'LendingProtocol',
]

__version__ = '1.0.0'
