"""Authoritative reserve balances of the pool."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from decimal import Decimal

import structlog

from liquidity.decimal_utils import round8

logger = structlog.get_logger()


@dataclass(frozen=True)
class ReserveState:
    """The pool's coin and token holdings.

    Both values are rounded to 8 fractional digits on construction, so every
    state that can be observed is already in its externally visible form.
    """

    coin_reserve: Decimal
    token_reserve: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "coin_reserve", round8(self.coin_reserve))
        object.__setattr__(self, "token_reserve", round8(self.token_reserve))


class BalanceTracker:
    """Holds the current ReserveState and replaces it atomically.

    Readers always get a complete frozen pair: commit() swaps the whole
    state under a lock, so a half-updated pair is never observable.
    """

    def __init__(self, initial: ReserveState) -> None:
        self._state = initial
        self._lock = threading.Lock()

    def snapshot(self) -> ReserveState:
        """Return the current reserve pair."""
        with self._lock:
            return self._state

    def commit(self, new_state: ReserveState) -> ReserveState:
        """Replace the reserve pair.

        Args:
            new_state: Fully computed new pair

        Returns:
            The previous pair
        """
        with self._lock:
            previous = self._state
            self._state = new_state

        logger.info(
            "reserves_committed",
            coin_reserve=str(new_state.coin_reserve),
            token_reserve=str(new_state.token_reserve),
            coin_delta=str(new_state.coin_reserve - previous.coin_reserve),
            token_delta=str(new_state.token_reserve - previous.token_reserve),
        )
        return previous
