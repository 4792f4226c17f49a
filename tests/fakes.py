"""
fakes.py - Test collaborators for LendingProtocol

Minimal PriceOracle and TokenTransfer implementations for exercising the
protocol without (or around) a full TokenLedger:

- RecordingTransfer: accepts every batch and keeps it
- FailingTransfer: rejects every batch
- CallbackOracle / CallbackTransfer: run a callback from inside a
  collaborator call, used to attempt re-entry into the protocol
"""

from __future__ import annotations
from typing import Callable, Dict, List, Optional, Sequence

from lending import Move, StaticPriceOracle, TransferFailed


class RecordingTransfer:
    """TokenTransfer that accepts everything and records each batch."""

    def __init__(self):
        self.batches: List[List[Move]] = []

    def settle(self, moves: Sequence[Move]) -> None:
        self.batches.append(list(moves))

    @property
    def moves(self) -> List[Move]:
        return [move for batch in self.batches for move in batch]


class FailingTransfer:
    """TokenTransfer that rejects every batch."""

    def __init__(self, message: str = "transfer rejected"):
        self.message = message
        self.attempts = 0

    def settle(self, moves: Sequence[Move]) -> None:
        self.attempts += 1
        raise TransferFailed(self.message)


class CallbackOracle(StaticPriceOracle):
    """
    Static oracle that runs `callback` on every get_price() while armed.

    If swallow is True, exceptions raised by the callback are recorded in
    `errors` instead of propagating.
    """

    def __init__(self, prices: Optional[Dict[str, int]] = None, swallow: bool = False):
        super().__init__(prices)
        self.callback: Optional[Callable[[], object]] = None
        self.swallow = swallow
        self.errors: List[Exception] = []

    def get_price(self, token: str) -> Optional[int]:
        if self.callback is not None:
            callback, self.callback = self.callback, None
            if self.swallow:
                try:
                    callback()
                except Exception as e:
                    self.errors.append(e)
            else:
                callback()
        return super().get_price(token)


class CallbackTransfer:
    """Wraps a real transfer collaborator and runs `callback` before settling."""

    def __init__(self, inner):
        self.inner = inner
        self.callback: Optional[Callable[[], object]] = None

    def settle(self, moves: Sequence[Move]) -> None:
        if self.callback is not None:
            callback, self.callback = self.callback, None
            callback()
        self.inner.settle(moves)
