"""Concurrency control for deposit sweeps.

Provides per-deposit locking so that two overlapping routing runs in the same
process never submit a transfer for the same proxy at the same time.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

logger = logging.getLogger(__name__)

# Global lock registry: deposit_id -> asyncio.Lock
_deposit_locks: dict[int, asyncio.Lock] = {}
# deposit_id -> number of DepositLock holders and waiters
_lock_users: dict[int, int] = {}


def get_deposit_lock(deposit_id: int) -> asyncio.Lock:
    """Get or create the lock for a specific deposit.

    The registry is only touched from the event loop thread, and this function
    never awaits, so lookup and creation cannot interleave. Entries created
    through :class:`DepositLock` are dropped once nobody holds or awaits them.
    """
    lock = _deposit_locks.get(deposit_id)
    if lock is None:
        lock = asyncio.Lock()
        _deposit_locks[deposit_id] = lock
    return lock


def _checkout(deposit_id: int) -> asyncio.Lock:
    _lock_users[deposit_id] = _lock_users.get(deposit_id, 0) + 1
    return get_deposit_lock(deposit_id)


def _checkin(deposit_id: int) -> None:
    remaining = _lock_users.get(deposit_id, 1) - 1
    if remaining > 0:
        _lock_users[deposit_id] = remaining
        return
    _lock_users.pop(deposit_id, None)
    _deposit_locks.pop(deposit_id, None)


class LockTimeoutError(Exception):
    """Raised when a lock cannot be acquired within the timeout period."""

    pass


class DepositLock:
    """Context manager for exclusive sweep access to one deposit.

    Example:
        async with DepositLock(deposit.id, operation="sweep"):
            tx_hash = await chain.transfer_out(signer, deposit.address, treasury)
    """

    def __init__(
        self,
        deposit_id: int,
        timeout: Optional[float] = 30.0,
        operation: str = "sweep",
    ):
        """Initialize the lock.

        Args:
            deposit_id: Deposit row ID
            timeout: Maximum time to wait for lock (None = wait forever,
                0 = fail unless the lock is free)
            operation: Description of the operation for logging
        """
        self.deposit_id = deposit_id
        self.timeout = timeout
        self.operation = operation
        self._lock: Optional[asyncio.Lock] = None
        self._acquired = False

    async def _acquire(self) -> bool:
        if self.timeout is None:
            return await self._lock.acquire()
        if self.timeout <= 0:
            if self._lock.locked():
                return False
            return await self._lock.acquire()
        try:
            return await asyncio.wait_for(self._lock.acquire(), timeout=self.timeout)
        except asyncio.TimeoutError:
            return False

    async def __aenter__(self) -> "DepositLock":
        """Acquire the lock."""
        self._lock = _checkout(self.deposit_id)

        try:
            acquired = await self._acquire()
        except BaseException:
            _checkin(self.deposit_id)
            raise

        if not acquired:
            _checkin(self.deposit_id)
            logger.warning(
                f"Lock timeout for deposit {self.deposit_id} after {self.timeout}s: {self.operation}"
            )
            raise LockTimeoutError(
                f"Could not acquire lock for deposit {self.deposit_id} within {self.timeout}s"
            )

        self._acquired = True
        logger.debug(f"Lock acquired for deposit {self.deposit_id}: {self.operation}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Release the lock."""
        if self._acquired and self._lock:
            self._lock.release()
            self._acquired = False
            _checkin(self.deposit_id)
            logger.debug(f"Lock released for deposit {self.deposit_id}: {self.operation}")
        return False


@asynccontextmanager
async def deposit_lock(
    deposit_id: int,
    timeout: Optional[float] = 30.0,
    operation: str = "sweep",
):
    """Functional form of :class:`DepositLock`."""
    async with DepositLock(deposit_id, timeout=timeout, operation=operation):
        yield


def clear_deposit_locks() -> None:
    """Clear all deposit locks (useful for testing)."""
    _deposit_locks.clear()
    _lock_users.clear()
