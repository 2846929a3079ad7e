"""
Per-credential HTTP session cache for the secret store.

Entries are keyed by (store address, token). A failed channel is marked dead
and replaced on the next get_or_create; it is never retried in place. Entries
unused for idle_ttl_s are dropped, and the table never grows past max_size
(least recently used entries go first).
"""
from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Tuple

import requests
import structlog

PoolKey = Tuple[str, str]


def _new_session() -> requests.Session:
    return requests.Session()


@dataclass
class PoolEntry:
    session: requests.Session
    dead: bool = False
    created: int = field(default=0)
    last_used: float = 0.0


class SessionPool:
    def __init__(
        self,
        factory: Callable[[], requests.Session] = _new_session,
        max_size: int = 256,
        idle_ttl_s: float = 900.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._factory = factory
        self._max_size = max_size
        self._idle_ttl_s = idle_ttl_s
        self._clock = clock
        self._entries: Dict[PoolKey, PoolEntry] = {}
        self._key_locks: Dict[PoolKey, threading.Lock] = {}
        # Guards both tables; never held while waiting on a key lock
        self._table_lock = threading.Lock()
        self._generation = 0
        self._log = structlog.get_logger()

    @contextmanager
    def _holding(self, key: PoolKey) -> Iterator[None]:
        while True:
            with self._table_lock:
                lock = self._key_locks.setdefault(key, threading.Lock())
            lock.acquire()
            with self._table_lock:
                current = self._key_locks.get(key)
            if current is lock:
                break
            # Evicted while we waited; a newer lock owns the key now
            lock.release()
        try:
            yield
        finally:
            lock.release()

    def get_or_create(self, address: str, token: str) -> requests.Session:
        key = (address, token)
        with self._holding(key):
            entry = self._entries.get(key)
            if entry is not None and not entry.dead:
                entry.last_used = self._clock()
                return entry.session
            if entry is not None:
                self._discard(key, entry)
            with self._table_lock:
                self._generation += 1
                generation = self._generation
            entry = PoolEntry(session=self._factory(), created=generation, last_used=self._clock())
            with self._table_lock:
                self._entries[key] = entry
            self._log.info("vault.session_created", address=address, generation=generation)
            session = entry.session

        self._prune(keep=key)
        return session

    def invalidate(self, address: str, token: str, session: Optional[requests.Session] = None) -> None:
        """
        Mark the entry dead so the next caller gets a fresh session.

        When `session` is given, only that session is marked; a failure reported
        late by a request that held an already replaced session is ignored.
        """
        key = (address, token)
        with self._holding(key):
            entry = self._entries.get(key)
            if entry is None or entry.dead:
                return
            if session is not None and entry.session is not session:
                self._log.debug("vault.stale_invalidate_ignored", address=address)
                return
            entry.dead = True
            self._log.warning("vault.session_invalidated", address=address)

    def evict(self, address: str, token: str) -> None:
        key = (address, token)
        with self._holding(key):
            entry = self._entries.get(key)
            if entry is not None:
                self._discard(key, entry)
            with self._table_lock:
                self._key_locks.pop(key, None)

    def peek(self, address: str, token: str) -> Optional[PoolEntry]:
        return self._entries.get((address, token))

    def close(self) -> None:
        with self._table_lock:
            keys = list(self._entries)
        for address, token in keys:
            self.evict(address, token)

    def __len__(self) -> int:
        return len(self._entries)

    def _discard(self, key: PoolKey, entry: PoolEntry) -> None:
        with self._table_lock:
            self._entries.pop(key, None)
        entry.session.close()
        self._log.info("vault.session_evicted", address=key[0])

    def _prune(self, keep: PoolKey) -> None:
        now = self._clock()
        with self._table_lock:
            by_age = sorted(
                ((k, e.last_used) for k, e in self._entries.items() if k != keep),
                key=lambda item: item[1],
            )

        doomed: List[Tuple[PoolKey, float]] = []
        live: List[Tuple[PoolKey, float]] = []
        for key, stamp in by_age:
            if self._idle_ttl_s > 0 and now - stamp > self._idle_ttl_s:
                doomed.append((key, stamp))
            else:
                live.append((key, stamp))

        # +1 for `keep`
        overflow = len(live) + 1 - self._max_size
        if self._max_size > 0 and overflow > 0:
            doomed.extend(live[:overflow])

        for key, stamp in doomed:
            self._evict_unused_since(key, stamp)

    def _evict_unused_since(self, key: PoolKey, stamp: float) -> None:
        with self._holding(key):
            entry = self._entries.get(key)
            if entry is None or entry.last_used > stamp:
                return
            self._discard(key, entry)
            with self._table_lock:
                self._key_locks.pop(key, None)
