"""
Agent instance cache.

Agents hold per-scope mutable state (loaded context, conversation id), so a
cached instance is leased to one caller at a time:

- use is serialized per key: ``acquire`` holds the key's lock for the
  duration of the ``async with`` block
- creation happens under that lock, so concurrent misses share one factory call
- the lock belongs to the key, not the instance: invalidating a leased key
  makes the next holder build a fresh instance but still wait its turn
- distinct keys never wait on each other
- eviction is least-recently-used and skips keys that are leased or awaited
"""

from __future__ import annotations

import asyncio
import inspect
from collections import OrderedDict
from collections.abc import AsyncIterator, Callable, Hashable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from compliance_agent.logging import get_logger

logger = get_logger("agent_cache")

T = TypeVar("T")


@dataclass
class _Lease:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0  # Holders plus waiters


class AgentCache(Generic[T]):
    """
    Bounded get-or-create cache with per-key leases.

    Example:
        cache: AgentCache[BaseAgent] = AgentCache(max_size=256)

        async with cache.acquire(("case", org, user, "case", case_id), make_agent) as agent:
            async for event in agent.chat(message, ctx):
                ...
    """

    def __init__(self, max_size: int = 256) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._entries: OrderedDict[Hashable, T] = OrderedDict()
        self._leases: dict[Hashable, _Lease] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def keys(self) -> list[Hashable]:
        """Cached keys, least recently used first."""
        return list(self._entries)

    def is_leased(self, key: Hashable) -> bool:
        lease = self._leases.get(key)
        return lease is not None and lease.users > 0

    @asynccontextmanager
    async def acquire(self, key: Hashable, factory: Callable[[], Any]) -> AsyncIterator[T]:
        """Lease the instance for ``key``, creating it with ``factory`` on a miss."""
        lease = self._leases.setdefault(key, _Lease())
        lease.users += 1
        try:
            async with lease.lock:
                value = await self._get_or_create(key, factory)
                yield value
        finally:
            lease.users -= 1
            if lease.users == 0 and key not in self._entries:
                self._leases.pop(key, None)

    async def _get_or_create(self, key: Hashable, factory: Callable[[], Any]) -> T:
        if key in self._entries:
            self._entries.move_to_end(key)
            return self._entries[key]

        # A failed factory caches nothing; the next holder of the lock retries.
        value = factory()
        if inspect.isawaitable(value):
            value = await value

        self._entries[key] = value
        logger.debug("Created agent for %s", key)
        self._evict(keep=key)
        return value

    def _evict(self, keep: Hashable) -> None:
        excess = len(self._entries) - self.max_size
        if excess <= 0:
            return
        for key in list(self._entries):
            if excess <= 0:
                break
            if key == keep or self.is_leased(key):
                continue
            del self._entries[key]
            self._leases.pop(key, None)
            excess -= 1
            logger.debug("Evicted agent for %s", key)

    def invalidate(self, key: Hashable) -> bool:
        """
        Drop the instance for ``key``.

        A caller currently holding it keeps its instance, and callers waiting
        on the key still wait for that lease to end before a new one is built.
        """
        if not self.is_leased(key):
            self._leases.pop(key, None)
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()
        for key in [k for k in self._leases if not self.is_leased(k)]:
            del self._leases[key]
