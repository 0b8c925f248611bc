"""Concurrency control utilities keyed by wallet address.

Two primitives:
- AddressLock: exclusive section per address (nonce allocation + broadcast).
- SingleFlight: at most one in-flight call per key; duplicate triggers join it.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

# Global lock registry: lower-cased address -> asyncio.Lock
_address_locks: dict[str, asyncio.Lock] = {}
_registry_lock = asyncio.Lock()


async def get_address_lock(address: str) -> asyncio.Lock:
    """Get or create the lock for an address.

    Args:
        address: Wallet address (case-insensitive)

    Returns:
        asyncio.Lock for the address
    """
    key = address.lower()
    async with _registry_lock:
        if key not in _address_locks:
            _address_locks[key] = asyncio.Lock()
        return _address_locks[key]


class AddressLock:
    """Context manager for exclusive access to an address's outgoing nonce.

    Example:
        async with AddressLock(session.address, operation="submit"):
            nonce = await chain.get_transaction_count(session.address)
            ...
    """

    def __init__(
        self,
        address: str,
        timeout: Optional[float] = 30.0,
        operation: str = "address_operation",
    ):
        self.address = address
        self.timeout = timeout
        self.operation = operation
        self._lock: Optional[asyncio.Lock] = None
        self._acquired = False

    async def __aenter__(self) -> "AddressLock":
        self._lock = await get_address_lock(self.address)

        try:
            if self.timeout:
                self._acquired = await asyncio.wait_for(
                    self._lock.acquire(),
                    timeout=self.timeout,
                )
            else:
                await self._lock.acquire()
                self._acquired = True

            logger.debug(f"Lock acquired for {self.address}: {self.operation}")
            return self

        except asyncio.TimeoutError:
            logger.warning(
                f"Lock timeout for {self.address} after {self.timeout}s: {self.operation}"
            )
            raise LockTimeoutError(
                f"Could not acquire lock for {self.address} within {self.timeout}s"
            )

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._acquired and self._lock:
            self._lock.release()
            self._acquired = False
            logger.debug(f"Lock released for {self.address}: {self.operation}")
        return False


class LockTimeoutError(Exception):
    """Raised when a lock cannot be acquired within the timeout period."""

    pass


def clear_address_locks() -> None:
    """Clear all address locks (useful for testing)."""
    _address_locks.clear()


class SingleFlight:
    """Collapse concurrent calls for the same key into one.

    While a call for ``key`` is running, further ``run`` calls for that key do
    not start a second call; they await the running one and get its result.
    """

    def __init__(self, name: str = "single_flight"):
        self.name = name
        self._inflight: dict[str, asyncio.Task] = {}

    def in_flight(self, key: str) -> bool:
        task = self._inflight.get(key.lower())
        return task is not None and not task.done()

    async def run(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        key = key.lower()
        task = self._inflight.get(key)
        if task is None or task.done():
            task = asyncio.ensure_future(factory())
            self._inflight[key] = task
            task.add_done_callback(lambda t, k=key: self._forget(k, t))
        else:
            logger.debug(f"{self.name}: joining in-flight call for {key}")
        # A cancelled waiter must not cancel the shared call
        return await asyncio.shield(task)

    def cancel(self, key: str) -> None:
        task = self._inflight.pop(key.lower(), None)
        if task is not None and not task.done():
            task.cancel()

    def cancel_all(self) -> None:
        for key in list(self._inflight):
            self.cancel(key)

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
