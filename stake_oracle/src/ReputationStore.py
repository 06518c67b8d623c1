"""ReputationStore: Durable per-peer offense history.

A record is materialized with defaults ``(0, False)`` the first time a peer
is looked up and is never deleted afterwards. Only the slashing engine
mutates records, always through :meth:`ReputationStore.update`, which is an
atomic read-modify-write for a single peer.

Two implementations are provided:
    - InMemoryReputationStore: dict-backed, per-peer locks (tests, demos)
    - SQLiteReputationStore: one ``reputation`` table, WAL journal

.. code-block:: python

    >>> store = InMemoryReputationStore()
    >>> store.get("peer_1")
    PeerReputationRecord(peer_id='peer_1', offense_count=0, blacklisted=False)
    >>> store.set("peer_1", 2, False).offense_count
    2
"""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PeerReputationRecord:
    """Offense history of a single peer.

    :ivar peer_id: Unique peer identifier.
    :ivar offense_count: Number of outlier offenses recorded so far.
    :ivar blacklisted: Whether the peer is permanently excluded.
    """

    peer_id: str
    offense_count: int = 0
    blacklisted: bool = False

    def to_dict(self) -> dict[str, str | int | bool]:
        """Return the public status view of this record."""
        return {
            "peer_id": self.peer_id,
            "offenses": self.offense_count,
            "blacklisted": self.blacklisted,
        }


RecordMutation = Callable[[PeerReputationRecord], PeerReputationRecord]


class ReputationStore(ABC):
    """Keyed collection of :class:`PeerReputationRecord` rows.

    Subclasses must implement ``get``, ``set`` and ``records``. The default
    ``update`` serializes callers per peer with an in-process lock; stores
    that can do better (e.g. a database transaction) override it.
    """

    def __init__(self) -> None:
        self._peer_locks: dict[str, threading.Lock] = {}
        self._peer_locks_guard = threading.Lock()

    @abstractmethod
    def get(self, peer_id: str) -> PeerReputationRecord:
        """Fetch a peer's record, persisting the default row if unseen.

        :param peer_id: Peer identifier.
        :returns: Current record for the peer.
        """

    @abstractmethod
    def set(
        self, peer_id: str, offense_count: int, blacklisted: bool
    ) -> PeerReputationRecord:
        """Persist a peer's record, replacing any previous row.

        :param peer_id: Peer identifier.
        :param offense_count: Offense count (must not be negative).
        :param blacklisted: Blacklist flag.
        :returns: The stored record.
        :raises ValueError: If offense_count is negative.
        """

    @abstractmethod
    def records(self) -> list[PeerReputationRecord]:
        """Return every stored record, ordered by peer id."""

    def update(self, peer_id: str, mutate: RecordMutation) -> PeerReputationRecord:
        """Atomically apply ``mutate`` to a peer's record and persist it.

        :param peer_id: Peer identifier.
        :param mutate: Function mapping the current record to the new one.
        :returns: The stored record.
        """
        with self._peer_lock(peer_id):
            updated = mutate(self.get(peer_id))
            return self.set(peer_id, updated.offense_count, updated.blacklisted)

    def close(self) -> None:
        """Release any underlying resources."""

    def __enter__(self) -> ReputationStore:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @contextmanager
    def _peer_lock(self, peer_id: str) -> Iterator[None]:
        with self._peer_locks_guard:
            lock = self._peer_locks.setdefault(peer_id, threading.Lock())
        with lock:
            yield

    @staticmethod
    def _check_offense_count(offense_count: int) -> None:
        if offense_count < 0:
            raise ValueError("offense_count must not be negative")


class InMemoryReputationStore(ReputationStore):
    """Dict-backed store; contents are lost when the process exits."""

    def __init__(self) -> None:
        super().__init__()
        self._records: dict[str, PeerReputationRecord] = {}
        self._records_guard = threading.Lock()

    def get(self, peer_id: str) -> PeerReputationRecord:
        with self._records_guard:
            return self._records.setdefault(peer_id, PeerReputationRecord(peer_id))

    def set(
        self, peer_id: str, offense_count: int, blacklisted: bool
    ) -> PeerReputationRecord:
        self._check_offense_count(offense_count)
        record = PeerReputationRecord(peer_id, offense_count, bool(blacklisted))
        with self._records_guard:
            self._records[peer_id] = record
        return record

    def records(self) -> list[PeerReputationRecord]:
        with self._records_guard:
            return [self._records[k] for k in sorted(self._records)]


class SQLiteReputationStore(ReputationStore):
    """SQLite-backed store that survives process restarts.

    The connection runs in autocommit mode; ``update`` wraps its read and
    write in ``BEGIN IMMEDIATE`` so concurrent writers (threads sharing this
    store, or other processes sharing the file) cannot interleave on a row.

    :ivar path: Database file path, or ``":memory:"``.
    """

    MEMORY_PATH = ":memory:"

    def __init__(self, path: str = "peer_reputation.db") -> None:
        """Open (and create if needed) the reputation database.

        :param path: Database file path. Parent directories are created.
        """
        super().__init__()
        self.path = path
        if path != self.MEMORY_PATH:
            directory = os.path.dirname(os.path.abspath(path))
            os.makedirs(directory, exist_ok=True)

        # Statements from different threads share this connection
        self._conn_lock = threading.RLock()
        self._conn = sqlite3.connect(
            path, isolation_level=None, check_same_thread=False, timeout=30.0
        )
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS reputation (
                peer_id     TEXT PRIMARY KEY,
                offenses    INTEGER NOT NULL DEFAULT 0,
                blacklisted INTEGER NOT NULL DEFAULT 0
            )
            """
        )
        logger.debug(f"Reputation store opened at {path}")

    def get(self, peer_id: str) -> PeerReputationRecord:
        with self._conn_lock:
            self._conn.execute(
                "INSERT OR IGNORE INTO reputation (peer_id, offenses, blacklisted) "
                "VALUES (?, 0, 0)",
                (peer_id,),
            )
            row = self._conn.execute(
                "SELECT offenses, blacklisted FROM reputation WHERE peer_id = ?",
                (peer_id,),
            ).fetchone()
        return PeerReputationRecord(peer_id, row[0], bool(row[1]))

    def set(
        self, peer_id: str, offense_count: int, blacklisted: bool
    ) -> PeerReputationRecord:
        self._check_offense_count(offense_count)
        with self._conn_lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO reputation (peer_id, offenses, blacklisted) "
                "VALUES (?, ?, ?)",
                (peer_id, offense_count, 1 if blacklisted else 0),
            )
        return PeerReputationRecord(peer_id, offense_count, bool(blacklisted))

    def records(self) -> list[PeerReputationRecord]:
        with self._conn_lock:
            rows = self._conn.execute(
                "SELECT peer_id, offenses, blacklisted FROM reputation "
                "ORDER BY peer_id ASC"
            ).fetchall()
        return [PeerReputationRecord(r[0], r[1], bool(r[2])) for r in rows]

    def update(self, peer_id: str, mutate: RecordMutation) -> PeerReputationRecord:
        with self._conn_lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                updated = mutate(self.get(peer_id))
                record = self.set(peer_id, updated.offense_count, updated.blacklisted)
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            self._conn.execute("COMMIT")
        return record

    def close(self) -> None:
        with self._conn_lock:
            self._conn.close()
