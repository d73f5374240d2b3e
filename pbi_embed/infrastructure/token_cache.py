import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Hashable, Optional, Tuple


@dataclass
class TokenEntry:
    token: str
    expires_at: float


class AppTokenCache:
    """Process-wide cache of app access tokens keyed by credential identity.

    Entries are reused until ``skew_sec`` before they expire. Acquisition is
    single-flight per key: concurrent misses share one upstream fetch.
    """

    def __init__(self, skew_sec: float = 300, *, clock: Callable[[], float] = time.monotonic):
        self.skew_sec = skew_sec
        self._clock = clock
        self._entries: Dict[Hashable, TokenEntry] = {}
        self._locks: Dict[Hashable, asyncio.Lock] = {}

    def get(self, key: Hashable) -> Optional[str]:
        entry = self._entries.get(key)
        if entry and self._clock() < entry.expires_at - self.skew_sec:
            return entry.token
        return None

    def set(self, key: Hashable, token: str, expires_in: float) -> None:
        self._entries[key] = TokenEntry(token=token, expires_at=self._clock() + float(expires_in))

    def invalidate(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()
        self._locks.clear()

    async def get_or_acquire(self, key: Hashable, fetch: Callable[[], Awaitable[Tuple[str, float]]]) -> str:
        cached = self.get(key)
        if cached:
            return cached
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            # another waiter may have filled the entry while we queued
            cached = self.get(key)
            if cached:
                return cached
            token, expires_in = await fetch()
            self.set(key, token, expires_in)
            return token
