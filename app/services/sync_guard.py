"""
Per-account single-flight guard.

At most one sync pass runs per mailbox. A pass that cannot acquire the
guard is dropped, not queued.
"""

from typing import Set


class SyncGuard:
    """
    Busy flags keyed by mailbox.

    Meant for a single asyncio event loop: try_acquire() checks and sets the
    flag without awaiting, so no other coroutine can interleave.
    """

    def __init__(self):
        self._busy: Set[str] = set()

    def try_acquire(self, account_id: str) -> bool:
        """Mark the account busy. Returns False if it already was."""
        if account_id in self._busy:
            return False
        self._busy.add(account_id)
        return True

    def release(self, account_id: str) -> None:
        self._busy.discard(account_id)

    def is_busy(self, account_id: str) -> bool:
        return account_id in self._busy
