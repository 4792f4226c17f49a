"""
events.py - Observability records for committed operations

Operations stage events while they run; the protocol commits them only
after every check, mutation and transfer has succeeded. A rejected
operation discards its staged events, so the log never shows something
that did not happen.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    SUPPLY = "supply"
    WITHDRAW = "withdraw"
    COLLATERAL_DEPOSIT = "collateral_deposit"
    COLLATERAL_WITHDRAW = "collateral_withdraw"
    BORROW = "borrow"
    REPAY = "repay"
    LIQUIDATION = "liquidation"
    COLLATERAL_SEIZURE = "collateral_seizure"


@dataclass(frozen=True, slots=True)
class ProtocolEvent:
    """
    Structured record of a successful operation.

    Attributes:
        kind: What happened.
        actor: Wallet that initiated it (the liquidator for liquidations).
        token: Token involved.
        amount: Amount moved.
        timestamp: Protocol time of the operation.
        loan_id: Loan involved (borrow, repay, liquidation of a loan).
        subject: Affected user when different from actor (liquidated borrower).
    """
    kind: EventKind
    actor: str
    token: str
    amount: int
    timestamp: int
    loan_id: Optional[int] = None
    subject: Optional[str] = None

    def __repr__(self) -> str:
        parts = [f"{self.kind.value}", f"actor={self.actor}", f"{self.amount} {self.token}"]
        if self.loan_id is not None:
            parts.append(f"loan=#{self.loan_id}")
        if self.subject is not None:
            parts.append(f"subject={self.subject}")
        return f"Event({', '.join(parts)})"


EventListener = Callable[[ProtocolEvent], None]


class EventLog:
    """Committed event history plus the staging area of the operation in flight."""

    def __init__(self):
        self.events: List[ProtocolEvent] = []
        self._staged: List[ProtocolEvent] = []
        self._listeners: List[EventListener] = []

    def subscribe(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def stage(self, event: ProtocolEvent) -> None:
        self._staged.append(event)

    def commit(self) -> List[ProtocolEvent]:
        committed, self._staged = self._staged, []
        for event in committed:
            self.events.append(event)
            logger.info("%r", event)
            for listener in self._listeners:
                listener(event)
        return committed

    def discard(self) -> None:
        self._staged = []

    def of_kind(self, kind: EventKind) -> List[ProtocolEvent]:
        return [event for event in self.events if event.kind == kind]

    def __len__(self) -> int:
        return len(self.events)
