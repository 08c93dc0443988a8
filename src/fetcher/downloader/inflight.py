"""
In-flight request deduplication.

Only one pipeline runs per key. A caller arriving while the key is in flight
does not start a second transfer; it awaits the owner's outcome and receives
the same result object, or the same exception.

The registry maps key -> entry holding a shared future. Admission is a single
check-and-insert under an asyncio.Lock. The entry is removed only after the
future has been settled, so the next call for the key starts a fresh pipeline.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class InFlightEntry:
    """One running pipeline and the callers waiting on it."""
    key: str
    future: asyncio.Future
    waiters: int = 0


class InFlightRegistry:
    """
    Deduplicates concurrent async operations by key.

    Usage:
        registry = InFlightRegistry()
        result = await registry.run(url, lambda: fetch_pipeline(url))
    """

    def __init__(self) -> None:
        self._entries: dict[str, InFlightEntry] = {}
        self._lock = asyncio.Lock()

    async def run(self, key: str, operation: Callable[[], Awaitable[Any]]) -> Any:
        """
        Run `operation` for `key`, or join the run already in flight.

        Args:
            key: Identity of the request (the source URL).
            operation: Zero-argument coroutine factory; only called by the owner.

        Returns:
            The operation's result, shared by every caller admitted for the key.

        Raises:
            Whatever the operation raised, re-raised in every caller.
        """
        owned: Optional[InFlightEntry] = None
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                owned = InFlightEntry(key=key, future=asyncio.get_running_loop().create_future())
                self._entries[key] = owned
            else:
                entry.waiters += 1

        if owned is None:
            logger.debug("%s already in flight; waiting", key)
            # shield: a cancelled waiter must not cancel the shared outcome
            return await asyncio.shield(entry.future)

        logger.debug("%s not in flight; adding", key)
        try:
            result = await operation()
        except asyncio.CancelledError:
            owned.future.cancel()
            raise
        except BaseException as exc:
            owned.future.set_exception(exc)
            # Mark retrieved so an unobserved failure is not reported twice.
            owned.future.exception()
            raise
        else:
            owned.future.set_result(result)
            return result
        finally:
            async with self._lock:
                if self._entries.get(key) is owned:
                    del self._entries[key]
            if owned.waiters:
                logger.debug("%s settled; notified %d waiter(s)", key, owned.waiters)

    def is_in_flight(self, key: str) -> bool:
        return key in self._entries

    def waiter_count(self, key: str) -> int:
        entry = self._entries.get(key)
        return entry.waiters if entry is not None else 0

    @property
    def active_keys(self) -> list[str]:
        """Return currently in-flight keys."""
        return list(self._entries.keys())
