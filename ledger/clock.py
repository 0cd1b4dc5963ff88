"""
ledger/clock.py

Logical clock shared by every ledger operation.

The clock is a block-height style counter: it never moves backwards, and all
operations performed at the same height observe the same value.  Timestamps
stored by the ledger (registered_at, granted_at, created_at, ...) and expiry
comparisons all use this value, never wall-clock time.
"""

import logging

logger = logging.getLogger(__name__)


class InvalidClockHeight(ValueError):
    """Raised when the clock would move backwards."""


class LogicalClock:
    """Monotonically non-decreasing height counter."""

    def __init__(self, height: int = 0):
        if height < 0:
            raise InvalidClockHeight(f"Clock height must be >= 0, got {height}")
        self._height = height

    @property
    def height(self) -> int:
        return self._height

    def now(self) -> int:
        """Return the current height."""
        return self._height

    def advance(self, blocks: int = 1) -> int:
        """Move the clock forward by *blocks* and return the new height."""
        if blocks < 0:
            raise InvalidClockHeight(f"Cannot advance by a negative amount ({blocks})")
        self._height += blocks
        logger.debug("Clock advanced to %d", self._height)
        return self._height

    def advance_to(self, height: int) -> int:
        """Jump to *height*, which must not be lower than the current one."""
        if height < self._height:
            raise InvalidClockHeight(
                f"Cannot move clock back from {self._height} to {height}"
            )
        self._height = height
        logger.debug("Clock set to %d", self._height)
        return self._height

    def __repr__(self) -> str:
        return f"LogicalClock(height={self._height})"
