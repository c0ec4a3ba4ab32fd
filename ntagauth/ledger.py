import asyncio
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator, Optional
from weakref import WeakValueDictionary

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from . import crud
from .db import LedgerDatabase
from .migrations import migrate

DEFAULT_WINDOW = 1000


class LedgerUnavailable(Exception):
    """The replay ledger could not be read or written."""


class ReplayLedger(ABC):
    """Per-UID record of read counters that were already accepted.

    Acceptance goes through :meth:`try_accept`, which serialises callers
    for the same UID so that two requests carrying the same counter cannot
    both pass the check before either records it.
    """

    def __init__(self, window: int = DEFAULT_WINDOW):
        if window < 1:
            raise ValueError("Replay window must hold at least one counter.")
        self.window = window
        self._locks: WeakValueDictionary[str, asyncio.Lock] = WeakValueDictionary()

    def lock(self, uid: str) -> asyncio.Lock:
        uid = uid.upper()
        lock = self._locks.get(uid)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[uid] = lock
        return lock

    @abstractmethod
    async def is_counter_used(self, uid: str, counter: int) -> bool: ...

    @abstractmethod
    async def get_max_counter(self, uid: str) -> int: ...

    @abstractmethod
    async def record_acceptance(self, uid: str, counter: int) -> None: ...

    @abstractmethod
    async def forget_tag(self, uid: str) -> None: ...

    async def try_accept(self, uid: str, counter: int) -> bool:
        async with self.lock(uid):
            if await self.is_counter_used(uid, counter):
                return False
            if counter <= await self.get_max_counter(uid):
                return False
            await self.record_acceptance(uid, counter)
            return True

    async def start(self) -> None:
        pass

    async def close(self) -> None:
        pass


class MemoryReplayLedger(ReplayLedger):
    """Process-local ledger.

    State is lost on restart and not shared between workers, so this is
    only suitable for tests and single-process tooling.
    """

    def __init__(self, window: int = DEFAULT_WINDOW):
        super().__init__(window)
        self._counters: dict[str, set[int]] = {}
        self._max: dict[str, int] = {}

    async def is_counter_used(self, uid: str, counter: int) -> bool:
        return counter in self._counters.get(uid.upper(), set())

    async def get_max_counter(self, uid: str) -> int:
        return self._max.get(uid.upper(), 0)

    async def record_acceptance(self, uid: str, counter: int) -> None:
        uid = uid.upper()
        used = self._counters.setdefault(uid, set())
        if counter in used:
            return
        used.add(counter)
        self._max[uid] = max(self._max.get(uid, 0), counter)
        if len(used) > self.window:
            for old in sorted(used)[: len(used) - self.window]:
                used.discard(old)

    async def forget_tag(self, uid: str) -> None:
        self._counters.pop(uid.upper(), None)
        self._max.pop(uid.upper(), None)

    def counters(self, uid: str) -> list[int]:
        return sorted(self._counters.get(uid.upper(), set()))


class _Stale(Exception):
    pass


class SqlReplayLedger(ReplayLedger):
    """Ledger persisted through SQLAlchemy.

    :meth:`try_accept` runs as a single transaction whose writes are
    conditional on the counter being new and above the stored maximum,
    so it stays atomic when several processes share the database.
    """

    def __init__(self, db: LedgerDatabase, window: int = DEFAULT_WINDOW):
        super().__init__(window)
        self.db = db

    @classmethod
    def from_url(cls, url: str, window: int = DEFAULT_WINDOW) -> "SqlReplayLedger":
        return cls(LedgerDatabase(url), window)

    @contextmanager
    def _storage_errors(self) -> Iterator[None]:
        try:
            yield
        except (SQLAlchemyError, OSError) as exc:
            logger.error(f"Replay ledger unavailable: {exc.__class__.__name__}")
            raise LedgerUnavailable(str(exc)) from exc

    async def start(self) -> None:
        with self._storage_errors():
            await migrate(self.db)

    async def close(self) -> None:
        await self.db.close()

    async def is_counter_used(self, uid: str, counter: int) -> bool:
        with self._storage_errors():
            return await crud.is_counter_used(self.db, uid, counter)

    async def get_max_counter(self, uid: str) -> int:
        with self._storage_errors():
            return await crud.get_max_counter(self.db, uid)

    async def get_counters(self, uid: str) -> list[int]:
        with self._storage_errors():
            return await crud.get_counters(self.db, uid)

    async def record_acceptance(self, uid: str, counter: int) -> None:
        with self._storage_errors():
            async with self.db.connect() as conn:
                await crud.raise_max_counter(conn, uid, counter)
                await crud.insert_counter(conn, uid, counter)
                await crud.evict_counters(conn, uid, self.window)

    async def try_accept(self, uid: str, counter: int) -> bool:
        # an unseen UID has a maximum of 0
        if counter <= 0:
            return False
        async with self.lock(uid):
            with self._storage_errors():
                try:
                    async with self.db.connect() as conn:
                        if not await crud.raise_max_counter(conn, uid, counter):
                            raise _Stale()
                        if not await crud.insert_counter(conn, uid, counter):
                            raise _Stale()
                        await crud.evict_counters(conn, uid, self.window)
                except _Stale:
                    return False
        return True

    async def forget_tag(self, uid: str) -> None:
        with self._storage_errors():
            await crud.delete_tag(self.db, uid)


def create_ledger(url: Optional[str], window: int = DEFAULT_WINDOW) -> ReplayLedger:
    if not url or url == "memory://":
        return MemoryReplayLedger(window)
    return SqlReplayLedger.from_url(url, window)
