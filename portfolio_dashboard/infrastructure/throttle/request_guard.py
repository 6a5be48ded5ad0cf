"""
Request throttle/dedup guard.

Keyed registry preventing duplicate or rapid-repeat fetches of the same
logical resource (holdings of a portfolio, its transactions, an optimization
request). Holds no business logic. Everything runs on one event loop, so a
flag plus timestamps is enough; no locks.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

THROTTLE_WINDOW_MS = 2000
PENDING_COOLDOWN_MS = 500


@dataclass
class RequestEntry:
    pending: bool = False
    pending_until: Optional[float] = None
    last_started_at: Optional[float] = None
    last_completed_at: Optional[float] = None
    attempts: int = 0
    generation: int = 0


class RequestStateStore:
    """
    Per-key request bookkeeping shared by a guard and a generation counter.

    Create one per session (or per test) and inject it; there is no
    module-level instance.
    """

    def __init__(self):
        self._entries: Dict[str, RequestEntry] = {}

    def entry(self, key: str) -> RequestEntry:
        entry = self._entries.get(key)
        if entry is None:
            entry = RequestEntry()
            self._entries[key] = entry
        return entry

    def peek(self, key: str) -> Optional[RequestEntry]:
        return self._entries.get(key)

    def keys(self) -> List[str]:
        return list(self._entries.keys())

    def clear(self, key: Optional[str] = None) -> None:
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)


class RequestGuard:
    def __init__(
        self,
        store: Optional[RequestStateStore] = None,
        throttle_window_ms: int = THROTTLE_WINDOW_MS,
        cooldown_ms: int = PENDING_COOLDOWN_MS,
        clock: Clock = time.monotonic,
    ):
        self.store = store or RequestStateStore()
        self.throttle_window = throttle_window_ms / 1000.0
        self.cooldown = cooldown_ms / 1000.0
        self._clock = clock

    def is_pending(self, key: str) -> bool:
        entry = self.store.peek(key)
        if entry is None or not entry.pending:
            return False
        if entry.pending_until is not None and self._clock() >= entry.pending_until:
            entry.pending = False
            entry.pending_until = None
            return False
        return True

    def is_throttled(self, key: str) -> bool:
        entry = self.store.peek(key)
        if entry is None or entry.last_completed_at is None:
            return False
        return self._clock() - entry.last_completed_at < self.throttle_window

    def try_start(self, key: str, ignore_throttle: bool = False, ignore_pending: bool = False) -> bool:
        """
        Claim `key` for a new request.

        Returns False without side effects when a request for the key is
        still pending (including its cooldown) or when the last one completed
        less than the throttle window ago. `ignore_pending` supersedes a
        pending request whose result the caller will discard anyway.
        """
        if not ignore_pending and self.is_pending(key):
            logger.debug("Skipping %s: request already pending", key)
            return False
        if not ignore_throttle and self.is_throttled(key):
            logger.debug("Skipping %s: throttled", key)
            return False

        entry = self.store.entry(key)
        entry.pending = True
        entry.pending_until = None
        entry.last_started_at = self._clock()
        entry.attempts += 1
        return True

    def finish(self, key: str, attempt: Optional[int] = None) -> None:
        """
        Mark the request for `key` complete.

        The pending flag stays up for the cooldown so that a burst of
        duplicate calls fired right after completion is still absorbed.
        When `attempt` is given and a newer attempt has started since, the
        call was superseded and the newer one keeps the pending flag.
        """
        entry = self.store.entry(key)
        if attempt is not None and attempt != entry.attempts:
            return
        now = self._clock()
        entry.last_completed_at = now
        if self.cooldown > 0:
            entry.pending_until = now + self.cooldown
        else:
            entry.pending = False
            entry.pending_until = None

    @asynccontextmanager
    async def guarded(
        self,
        key: str,
        ignore_throttle: bool = False,
        ignore_pending: bool = False,
    ) -> AsyncIterator[bool]:
        started = self.try_start(key, ignore_throttle=ignore_throttle, ignore_pending=ignore_pending)
        attempt = self.store.entry(key).attempts if started else None
        try:
            yield started
        finally:
            if started:
                self.finish(key, attempt)


class GenerationCounter:
    """
    Per-key monotonically increasing generation.

    Each call stamps the generation it was issued; on completion it commits
    only if that generation is still the latest for the key.
    """

    def __init__(self, store: Optional[RequestStateStore] = None):
        self.store = store or RequestStateStore()

    def issue(self, key: str) -> int:
        entry = self.store.entry(key)
        entry.generation += 1
        return entry.generation

    def current(self, key: str) -> int:
        entry = self.store.peek(key)
        return entry.generation if entry else 0

    def is_current(self, key: str, generation: int) -> bool:
        return self.current(key) == generation

    def invalidate(self, key: str) -> None:
        self.store.entry(key).generation += 1
