"""
registry.py - Supported-token sets

Two independent, append-only, ordered sets: collateral-eligible tokens and
lending-eligible tokens. Governance adds to them; every operation that
touches a token checks membership against the sets as they are at that
moment.
"""

from __future__ import annotations
import logging
from typing import List, Tuple

from .core import AlreadyRegistered, UnsupportedToken, require_id

logger = logging.getLogger(__name__)


class TokenRegistry:

    def __init__(self):
        self._collateral: List[str] = []
        self._lending: List[str] = []

    @property
    def collateral_tokens(self) -> List[str]:
        return list(self._collateral)

    @property
    def lending_tokens(self) -> List[str]:
        return list(self._lending)

    def add_collateral_token(self, token: str) -> None:
        """
        Raises:
            AlreadyRegistered: If token is already collateral-eligible.
        """
        require_id(token, "token")
        if token in self._collateral:
            raise AlreadyRegistered(f"{token} is already a collateral token")
        self._collateral.append(token)
        logger.info("collateral token added: %s", token)

    def add_lending_token(self, token: str) -> None:
        """
        Raises:
            AlreadyRegistered: If token is already lending-eligible.
        """
        require_id(token, "token")
        if token in self._lending:
            raise AlreadyRegistered(f"{token} is already a lending token")
        self._lending.append(token)
        logger.info("lending token added: %s", token)

    def is_collateral(self, token: str) -> bool:
        return token in self._collateral

    def is_lending(self, token: str) -> bool:
        return token in self._lending

    def require_collateral(self, token: str) -> None:
        if token not in self._collateral:
            raise UnsupportedToken(f"{token} is not a supported collateral token")

    def require_lending(self, token: str) -> None:
        if token not in self._lending:
            raise UnsupportedToken(f"{token} is not a supported lending token")

    def snapshot(self) -> Tuple[Tuple[str, ...], Tuple[str, ...]]:
        return tuple(self._collateral), tuple(self._lending)

    def rollback(self, snapshot: Tuple[Tuple[str, ...], Tuple[str, ...]]) -> None:
        collateral, lending = snapshot
        self._collateral = list(collateral)
        self._lending = list(lending)
