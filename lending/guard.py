"""
guard.py - Exclusive section for state-mutating operations

One top-level operation may be in flight per protocol instance. The guard
is entered before any collaborator is called and left on every exit path,
so a price oracle or transfer collaborator that calls back into the
protocol gets ReentrantCallBlocked instead of an interleaved operation.
"""

from __future__ import annotations
from typing import Optional

from .core import ReentrantCallBlocked


class ReentrancyGuard:

    __slots__ = ("_holder",)

    def __init__(self):
        self._holder: Optional[str] = None

    @property
    def held(self) -> bool:
        return self._holder is not None

    @property
    def holder(self) -> Optional[str]:
        """Name of the operation currently holding the guard."""
        return self._holder

    def acquire(self, operation: str) -> None:
        if self._holder is not None:
            raise ReentrantCallBlocked(
                f"{operation} blocked: {self._holder} is still in progress"
            )
        self._holder = operation

    def release(self) -> None:
        self._holder = None

    def __call__(self, operation: str) -> "_Section":
        return _Section(self, operation)


class _Section:
    __slots__ = ("_guard", "_operation")

    def __init__(self, guard: ReentrancyGuard, operation: str):
        self._guard = guard
        self._operation = operation

    def __enter__(self) -> ReentrancyGuard:
        self._guard.acquire(self._operation)
        return self._guard

    def __exit__(self, exc_type, exc, tb) -> bool:
        self._guard.release()
        return False
