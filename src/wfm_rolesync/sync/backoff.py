"""
wfm_rolesync.sync.backoff

Cancellable backoff primitive for the directory assignment retries.
"""

from __future__ import annotations

import asyncio


def linear_delay(attempt: int, unit_seconds: float) -> float:
    return max(attempt, 0) * unit_seconds


class CancellationToken:
    """
    Set by the caller (e.g. on client disconnect); observed between retry attempts.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def sleep(self, seconds: float) -> bool:
        """
        Wait up to `seconds`. Returns True when the full delay elapsed,
        False as soon as the token is cancelled.
        """

        if self.cancelled:
            return False
        if seconds <= 0:
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except TimeoutError:
            return True
        return False
