"""Fetch-through cache with time-boxed invalidation.

A ``FetchThroughCache`` serves one resource class.  ``get`` returns the cached
payload while its envelope is fresh; otherwise it calls the loader, stores a
new envelope when the loader produced a non-empty payload, and folds every
failure (transport, extraction, quota, unreadable envelope) into a
``FetchOutcome`` instead of raising.  Failed or empty refreshes never touch the
stored envelope, so an expired-but-readable entry remains available to the
caller through ``FetchOutcome.stale``.

Concurrent ``get`` calls for the same storage key share one loader call when
``coalesce`` is enabled.  With coalescing disabled each call loads
independently; every write replaces the whole envelope, so the last writer wins
without corrupting the slot.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, Tuple, TypeVar

from khetismart.cache.codec import CacheEntry, decode, encode
from khetismart.cache.keys import DEFAULT_NAMESPACE, ResourceKey
from khetismart.cache.staleness import ResourceClass, StalenessPolicy
from khetismart.results import ErrorKind, Result, StoreWriteError
from khetismart.storage import KeyValueStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

Loader = Callable[[ResourceKey], Awaitable[Result[T]]]


def epoch_millis() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class FetchOutcome(Generic[T]):
    """What a view renders: the value, where it came from, and any failure."""

    value: T
    from_cache: bool = False
    error: Optional[ErrorKind] = None
    stale: Optional[T] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class FetchThroughCache(Generic[T]):
    def __init__(
        self,
        store: KeyValueStore,
        resource_class: ResourceClass,
        loader: Loader,
        *,
        to_data: Callable[[T], Any],
        from_data: Callable[[Any], T],
        is_empty: Callable[[T], bool],
        empty: Callable[[], T],
        policy: Optional[StalenessPolicy] = None,
        namespace: str = DEFAULT_NAMESPACE,
        clock: Callable[[], int] = epoch_millis,
        coalesce: bool = True,
    ) -> None:
        self.store = store
        self.resource_class = resource_class
        self.loader = loader
        self.to_data = to_data
        self.from_data = from_data
        self.is_empty = is_empty
        self.empty = empty
        self.policy = policy or StalenessPolicy()
        self.namespace = namespace
        self.clock = clock
        self.coalesce = coalesce
        self._in_flight: Dict[str, "asyncio.Future[FetchOutcome[T]]"] = {}

    def _now(self) -> int:
        return int(self.clock())

    def _read(self, storage_key: str) -> Optional[Tuple[CacheEntry, T]]:
        raw = self.store.get(storage_key)
        if raw is None:
            return None
        decoded = decode(raw)
        if not decoded.ok:
            logger.info("Ignoring unreadable cache entry %s: %s", storage_key, decoded.detail)
            return None
        entry = decoded.value
        try:
            return entry, self.from_data(entry.data)
        except ValueError as exc:
            logger.info("Ignoring cache entry %s with unexpected shape: %s", storage_key, exc)
            return None

    def _stale(self, storage_key: str) -> Optional[T]:
        cached = self._read(storage_key)
        return cached[1] if cached is not None else None

    def _write(self, storage_key: str, payload: T) -> bool:
        entry = CacheEntry(timestamp=self._now(), data=self.to_data(payload))
        try:
            self.store.set(storage_key, encode(entry))
        except StoreWriteError as exc:
            logger.warning("Could not cache %s, serving uncached result: %s", storage_key, exc)
            return False
        return True

    def peek(self, key: ResourceKey) -> Optional[T]:
        """Return whatever readable payload is stored for ``key``, fresh or not."""
        return self._stale(key.storage_key(self.namespace))

    def invalidate(self, key: ResourceKey) -> None:
        self.store.remove(key.storage_key(self.namespace))

    async def get(self, key: ResourceKey, force_refresh: bool = False) -> FetchOutcome[T]:
        storage_key = key.storage_key(self.namespace)

        if not force_refresh:
            cached = self._read(storage_key)
            if cached is not None:
                entry, value = cached
                if not self.policy.is_expired(entry, self._now(), self.resource_class):
                    logger.debug("Cache hit for %s", storage_key)
                    return FetchOutcome(value, from_cache=True)
                logger.debug("Cache entry for %s expired", storage_key)
            else:
                logger.debug("Cache miss for %s", storage_key)

        if not self.coalesce:
            return await self._refresh(key, storage_key)

        task = self._in_flight.get(storage_key)
        if task is not None and task.get_loop() is not asyncio.get_running_loop():
            task = None
        if task is None:
            task = asyncio.ensure_future(self._refresh(key, storage_key))
            self._in_flight[storage_key] = task
            task.add_done_callback(lambda done, slot=storage_key: self._forget(slot, done))
        else:
            logger.debug("Joining in-flight fetch for %s", storage_key)
        # Callers that go away mid-fetch must not cancel the shared load.
        return await asyncio.shield(task)

    def _forget(self, storage_key: str, task: "asyncio.Future[FetchOutcome[T]]") -> None:
        if self._in_flight.get(storage_key) is task:
            del self._in_flight[storage_key]

    async def _refresh(self, key: ResourceKey, storage_key: str) -> FetchOutcome[T]:
        result = await self.loader(key)

        if not result.ok:
            logger.warning(
                "Fetching %s failed (%s): %s", storage_key, result.kind.value, result.detail
            )
            return FetchOutcome(self.empty(), error=result.kind, stale=self._stale(storage_key))

        payload = result.value
        if self.is_empty(payload):
            logger.warning("Fetching %s returned no data; keeping the stored entry", storage_key)
            return FetchOutcome(payload, stale=self._stale(storage_key))

        self._write(storage_key, payload)
        return FetchOutcome(payload)
