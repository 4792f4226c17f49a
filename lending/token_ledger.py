"""
token_ledger.py - Double-entry token ledger (reference transfer collaborator)

TokenLedger holds wallet balances for every registered token and applies
batches of Moves atomically: every move in a batch is applied or none is.
It implements the TokenTransfer protocol through settle(), which raises
TransferFailed when a batch is rejected.

Key responsibilities:
    - Validates every batch against registration and balance constraints
    - Applies all moves of a batch or none
    - Logs every applied batch with a monotonic sequence number
    - Issues new supply only through SYSTEM_WALLET, so conservation holds
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Set, Tuple
import logging

from .core import (
    Move, SYSTEM_WALLET, TransferFailed, LendingError,
    checked, require_positive,
)

logger = logging.getLogger(__name__)


class ExecuteResult(Enum):
    """
    Outcome of a batch execution attempt.

    APPLIED: Batch was validated and applied.
    REJECTED: Batch failed validation; nothing was applied.
    """
    APPLIED = "applied"
    REJECTED = "rejected"


class TokenNotRegistered(LendingError):
    """Raised when operating on a token the ledger does not know."""
    pass


class WalletNotRegistered(LendingError):
    """Raised when operating on a wallet the ledger does not know."""
    pass


@dataclass(frozen=True, slots=True)
class Token:
    """
    Definition of a token held in the ledger.

    Attributes:
        symbol: Short identifier (e.g. "USDC").
        name: Human-readable name.
        decimals: Display precision; amounts are stored in base units.
        min_balance: Minimum balance any non-system wallet may hold.
    """
    symbol: str
    name: str
    decimals: int = 18
    min_balance: int = 0


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An executed, immutable record of one applied batch.

    Attributes:
        moves: Moves applied together
        exec_id: Unique execution identifier (ledger + sequence)
        ledger_name: Ledger that executed this
        sequence_number: Monotonic sequence within the ledger
        reasons: Set of move reasons (auto-populated)
    """
    moves: Tuple[Move, ...]
    exec_id: str
    ledger_name: str
    sequence_number: int
    reasons: FrozenSet[str] = None

    def __post_init__(self):
        if not self.moves:
            raise ValueError("Transaction must have moves")
        if self.reasons is None:
            object.__setattr__(self, 'reasons', frozenset(m.reason for m in self.moves))


class TokenLedger:
    """
    Double-entry token ledger with full validation and audit trail.

    Thread Safety:
        Not thread-safe. The lending core is single-writer.

    Example:
        tokens = TokenLedger("main")
        tokens.register_token(Token("USDC", "USD Coin", decimals=6))
        tokens.register_wallet("alice")
        tokens.register_wallet("bob")
        tokens.issue("alice", "USDC", 1_000)

        tokens.settle([Move(100, "USDC", "alice", "bob", "payment")])
    """

    def __init__(self, name: str, test_mode: bool = False):
        """
        Create a ledger.

        Args:
            name: Ledger identifier
            test_mode: Allow set_balance() calls (default: False)
        """
        self.name = name
        self.balances: Dict[str, Dict[str, int]] = {}
        self.tokens: Dict[str, Token] = {}
        self.registered_wallets: Set[str] = set()
        self.transaction_log: List[Transaction] = []
        self._test_mode = test_mode
        self._next_sequence: int = 0
        self.last_rejection: Optional[str] = None

        # Auto-register the system wallet (used for issuance/redemption)
        self.registered_wallets.add(SYSTEM_WALLET)
        self.balances[SYSTEM_WALLET] = defaultdict(int)

    # ========================================================================
    # READ-ONLY METHODS
    # ========================================================================

    def get_balance(self, wallet_id: str, token: str) -> int:
        """
        Raises:
            WalletNotRegistered: If wallet is not registered
            TokenNotRegistered: If token is not registered
        """
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if token not in self.tokens:
            raise TokenNotRegistered(f"Token {token} not registered")
        return self.balances[wallet_id].get(token, 0)

    def get_wallet_balances(self, wallet_id: str) -> Dict[str, int]:
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        return {token: qty for token, qty in self.balances[wallet_id].items() if qty}

    def list_wallets(self) -> Set[str]:
        return self.registered_wallets.copy()

    def list_tokens(self) -> List[str]:
        return sorted(self.tokens)

    def is_registered(self, wallet_id: str) -> bool:
        return wallet_id in self.registered_wallets

    def total_supply(self, token: str) -> int:
        """
        Net supply of a token across all wallets, system wallet included.

        Issuance debits SYSTEM_WALLET, so this is zero for a conserving
        ledger. Use circulating_supply() for the amount held by users.
        """
        if token not in self.tokens:
            raise TokenNotRegistered(f"Token {token} not registered")
        return sum(self.balances[w].get(token, 0) for w in sorted(self.registered_wallets))

    def circulating_supply(self, token: str) -> int:
        """Amount of token held outside SYSTEM_WALLET."""
        return self.total_supply(token) - self.balances[SYSTEM_WALLET].get(token, 0)

    def verify_double_entry(self) -> Dict[str, Any]:
        """
        Verify that every token's balances net to zero across all wallets.

        Returns:
            Dict with keys:
            - 'valid': bool - True if all conservation laws hold
            - 'supplies': Dict[str, int] - Net supply per token
            - 'discrepancies': List[Dict] - tokens whose net supply is nonzero
        """
        supplies = {}
        discrepancies = []
        for token in self.tokens:
            net = self.total_supply(token)
            supplies[token] = net
            if net != 0:
                discrepancies.append({'token': token, 'net': net})
        return {
            'valid': len(discrepancies) == 0,
            'supplies': supplies,
            'discrepancies': discrepancies,
        }

    # ========================================================================
    # REGISTRATION (Mutating)
    # ========================================================================

    def register_wallet(self, wallet_id: str) -> str:
        """
        Raises:
            ValueError: If wallet is already registered
        """
        if wallet_id in self.registered_wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self.registered_wallets.add(wallet_id)
        self.balances[wallet_id] = defaultdict(int)
        return wallet_id

    def register_token(self, token: Token) -> None:
        """
        Raises:
            ValueError: If token symbol is already registered
        """
        if token.symbol in self.tokens:
            raise ValueError(f"Token {token.symbol} already registered")
        self.tokens[token.symbol] = token
        logger.debug("registered token %s (%s)", token.symbol, token.name)

    def issue(self, wallet_id: str, token: str, amount: int) -> ExecuteResult:
        """Mint amount of token into wallet_id from SYSTEM_WALLET."""
        require_positive(amount)
        return self.execute([Move(amount, token, SYSTEM_WALLET, wallet_id, "issue")])

    def set_balance(self, wallet_id: str, token: str, quantity: int) -> None:
        """
        Set a wallet's balance directly.

        WARNING: Bypasses double-entry accounting; only available in test mode.

        Raises:
            LendingError: If called when test_mode is False
        """
        if not self._test_mode:
            raise LendingError(
                "set_balance() is disabled in production mode. "
                "Use issue() or settle() to modify balances. "
                "Set test_mode=True when creating TokenLedger for testing."
            )
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if token not in self.tokens:
            raise TokenNotRegistered(f"Token {token} not registered")
        self.balances[wallet_id][token] = quantity

    # ========================================================================
    # EXECUTION (Mutating)
    # ========================================================================

    def _generate_exec_id(self, sequence: int) -> str:
        return f"exec:{self.name}:{sequence:012d}"

    def execute(self, moves: Sequence[Move]) -> ExecuteResult:
        """
        Apply a batch of moves atomically.

        Returns:
            ExecuteResult.APPLIED if successful (or the batch is empty)
            ExecuteResult.REJECTED if validation failed; nothing applied
        """
        if not moves:
            return ExecuteResult.APPLIED

        valid, reason = self._validate(moves)
        if not valid:
            logger.debug("REJECTED: %s", reason)
            self.last_rejection = reason
            return ExecuteResult.REJECTED

        sequence = self._next_sequence
        self._next_sequence += 1
        tx = Transaction(
            moves=tuple(moves),
            exec_id=self._generate_exec_id(sequence),
            ledger_name=self.name,
            sequence_number=sequence,
        )
        self._execute_moves(tx.moves)
        self.transaction_log.append(tx)
        logger.debug("APPLIED %s: %s", tx.exec_id, list(tx.moves))
        return ExecuteResult.APPLIED

    def settle(self, moves: Sequence[Move]) -> None:
        """
        TokenTransfer entry point.

        Raises:
            TransferFailed: If the batch is rejected.
        """
        if self.execute(moves) is ExecuteResult.REJECTED:
            raise TransferFailed(f"{self.name}: {self.last_rejection}")

    def _validate(self, moves: Sequence[Move]) -> Tuple[bool, str]:
        """
        Validate a batch against registration and balance constraints.

        Balance checks use the NET effect of the whole batch per
        (wallet, token), so a batch may route funds through a wallet.
        SYSTEM_WALLET is exempt from balance validation.
        """
        for move in moves:
            if move.token not in self.tokens:
                return False, f"token not registered: {move.token}"
            if move.source not in self.registered_wallets:
                return False, f"wallet not registered: {move.source}"
            if move.dest not in self.registered_wallets:
                return False, f"wallet not registered: {move.dest}"

        net: Dict[Tuple[str, str], int] = {}
        for move in moves:
            key_src = (move.source, move.token)
            key_dst = (move.dest, move.token)
            net[key_src] = net.get(key_src, 0) - move.quantity
            net[key_dst] = net.get(key_dst, 0) + move.quantity

        for (wallet, token), delta in net.items():
            if wallet == SYSTEM_WALLET:
                continue
            current = self.balances[wallet][token]
            proposed = current + delta
            minimum = self.tokens[token].min_balance
            if proposed < minimum:
                return False, f"{wallet} {token}: {proposed} < min {minimum}"
            try:
                checked(proposed, f"{wallet} {token} balance")
            except LendingError as e:
                return False, str(e)

        return True, ""

    def _execute_moves(self, moves: Sequence[Move]) -> None:
        for move in moves:
            self.balances[move.source][move.token] -= move.quantity
            self.balances[move.dest][move.token] += move.quantity

    # ========================================================================
    # CLONE
    # ========================================================================

    def clone(self) -> TokenLedger:
        """Create a fully independent copy of this ledger."""
        cloned = TokenLedger.__new__(TokenLedger)
        cloned.name = self.name
        cloned._test_mode = self._test_mode
        cloned.tokens = dict(self.tokens)
        cloned.registered_wallets = self.registered_wallets.copy()
        cloned.transaction_log = list(self.transaction_log)
        cloned._next_sequence = self._next_sequence
        cloned.last_rejection = self.last_rejection
        cloned.balances = {
            wallet: defaultdict(int, bals) for wallet, bals in self.balances.items()
        }
        return cloned
