import logging
import os
import sqlite3
import threading
from types import TracebackType
from typing import Callable, Optional, Type, Union

from prioritydb.durable_table import Column, DurableTable, TableSchema
from prioritydb.errors import (
    MAX_SIZE_MESSAGE,
    UNABLE_TO_OPEN_MESSAGE,
    InvalidConfiguration,
    NotFound,
    StorageUnavailable,
)
from prioritydb.record import Record

# Define TRACE level (below DEBUG which is 10)
TRACE = 5
logging.addLevelName(TRACE, "TRACE")

# Set up logger for this module
logger = logging.getLogger(__name__)

TABLE_NAME = "prism_data"

# SQLite INTEGER range
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

PRISM_DATA_SCHEMA = TableSchema(
    name=TABLE_NAME,
    columns=(
        # AUTOINCREMENT keeps ids from being reused after deletes
        Column(name="id", declaration="INTEGER PRIMARY KEY AUTOINCREMENT"),
        Column(name="priority", declaration="INTEGER NOT NULL"),
        Column(name="hash", declaration="TEXT NOT NULL"),
        Column(name="size", declaration="INTEGER NOT NULL"),
        Column(name="on_disk", declaration="BOOLEAN NOT NULL"),
    ),
    # (priority, id) serves the eviction order without a scan or sort
    indexed=(("hash",), ("priority", "id")),
)

EvictionCallback = Callable[[Record], None]


class PriorityDB:
    """
    Size-bounded index of cached objects, persisted in SQLite.

    Each record carries a content hash, a size in bytes, a priority and a
    flag telling whether the payload lives on disk. Whenever an insert pushes
    the total size above ``max_size``, records are evicted lowest priority
    first (oldest first among equal priorities) until the total fits again.
    """

    def __init__(
        self,
        max_size: int,
        db_path: Union[str, "os.PathLike[str]"],
        on_evict: Optional[EvictionCallback] = None,
    ) -> None:
        if isinstance(max_size, bool) or not isinstance(max_size, int) or max_size <= 0:
            raise InvalidConfiguration(MAX_SIZE_MESSAGE)
        if max_size > INT64_MAX:
            raise InvalidConfiguration(f"max_size must not exceed {INT64_MAX}")

        self._max_size = max_size
        self._db_path = os.fspath(db_path)
        self._on_evict = on_evict

        # Setup SQLite connection
        self._table = self._setup_database()

        # Running total of stored sizes, kept in step with every commit
        self._total_size = self._table.sum("size")

        # Initialize statistics counters
        self._stats_total_inserts = 0
        self._stats_total_evictions = 0
        self._stats_total_removes = 0
        self._stats_total_marks = 0

        # Thread safety lock
        self._lock = threading.RLock()

    @classmethod
    def open(
        cls,
        max_size: int,
        db_path: Union[str, "os.PathLike[str]"],
        on_evict: Optional[EvictionCallback] = None,
    ) -> "PriorityDB":
        return cls(max_size, db_path, on_evict=on_evict)

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def db_path(self) -> str:
        return self._db_path

    def _check_location(self) -> None:
        """Reject paths SQLite would either fail on or silently reinterpret."""
        if self._db_path == ":memory:":
            return
        # An empty path would give a private temporary database
        if not self._db_path or os.path.isdir(self._db_path):
            raise StorageUnavailable(UNABLE_TO_OPEN_MESSAGE)
        parent = os.path.dirname(os.path.abspath(self._db_path))
        if not os.path.isdir(parent):
            raise StorageUnavailable(UNABLE_TO_OPEN_MESSAGE)

    def _setup_database(self) -> DurableTable:
        """Open the SQLite connection and create the table if needed."""
        self._check_location()
        logger.debug(f"opening priority db at {self._db_path!r} (max_size={self._max_size})")

        try:
            # Autocommit mode, transactions are managed by DurableTable
            conn = sqlite3.connect(self._db_path, check_same_thread=False, isolation_level=None)
        except sqlite3.Error as e:
            raise StorageUnavailable(UNABLE_TO_OPEN_MESSAGE) from e

        try:
            if self._db_path != ":memory:":
                conn.execute("PRAGMA journal_mode=WAL")
            table = DurableTable(conn, PRISM_DATA_SCHEMA)
            table.create_if_absent()
        except Exception as e:
            conn.close()
            raise StorageUnavailable(UNABLE_TO_OPEN_MESSAGE) from e

        return table

    def _validate_hash(self, hash: str) -> None:
        if not isinstance(hash, str):
            raise TypeError(f"Hash must be a string, got {type(hash).__name__}")

    def _evict_to_capacity(self, total_size: int) -> tuple[list[Record], int]:
        """Delete lowest priority records until ``total_size`` fits.

        Must run under the lock, inside a transaction. Returns the evicted
        records and the total left after evicting them.
        """
        evicted: list[Record] = []

        while total_size > self._max_size:
            rows = self._table.select_where(order_by=("priority", "id"), limit=1)
            if not rows:
                break

            record = Record.from_row(rows[0])
            logger.log(
                TRACE,
                f"evicting: hash={record.hash!r} priority={record.priority} size={record.size}",
            )
            self._table.delete_where(id=record.id)
            evicted.append(record)
            total_size -= record.size

        return evicted, total_size

    def _after_eviction(self, evicted: list[Record]) -> None:
        """Account for committed evictions and notify the owner."""
        self._stats_total_evictions += len(evicted)
        if self._on_evict is not None:
            for record in evicted:
                self._on_evict(record)

    def insert(self, priority: int, hash: str, size: int, on_disk: bool = False) -> None:
        """Track a new object, evicting low priority records if needed.

        An empty hash is ignored.
        """
        self._validate_hash(hash)
        logger.log(TRACE, f"insert(hash={hash!r}, priority={priority}, size={size}, on_disk={bool(on_disk)})")

        if hash == "":
            logger.log(TRACE, "insert(): empty hash ignored")
            return

        if not isinstance(priority, int):
            raise TypeError(f"Priority must be an int, got {type(priority).__name__}")
        if not isinstance(size, int):
            raise TypeError(f"Size must be an int, got {type(size).__name__}")
        if not INT64_MIN <= priority <= INT64_MAX:
            raise ValueError(f"Priority {priority} is outside the 64-bit integer range")
        if size < 0:
            raise ValueError(f"Size must be non-negative, got {size}")
        if size > INT64_MAX:
            raise ValueError(f"Size {size} is outside the 64-bit integer range")

        with self._lock:
            with self._table.transaction():
                self._table.insert(
                    {"priority": priority, "hash": hash, "size": size, "on_disk": int(bool(on_disk))}
                )
                evicted, total_size = self._evict_to_capacity(self._total_size + size)

            self._total_size = total_size
            self._stats_total_inserts += 1
            self._after_eviction(evicted)

    def enforce_capacity(self) -> list[Record]:
        """Evict until the total size is within ``max_size``.

        Returns the evicted records in eviction order.
        """
        logger.log(TRACE, "enforce_capacity()")
        with self._lock:
            with self._table.transaction():
                evicted, total_size = self._evict_to_capacity(self._total_size)
            self._total_size = total_size
            self._after_eviction(evicted)
            return evicted

    def mark_on_disk(self, hash: str, on_disk: bool = True) -> None:
        """Set the on-disk flag of the records with ``hash``; no-op when absent."""
        self._validate_hash(hash)
        logger.log(TRACE, f"mark_on_disk(hash={hash!r}, on_disk={bool(on_disk)})")

        with self._lock:
            with self._table.transaction():
                updated = self._table.update_where({"on_disk": int(bool(on_disk))}, hash=hash)
            if updated:
                self._stats_total_marks += 1
            else:
                logger.log(TRACE, f"mark_on_disk(hash={hash!r}): not found")

    def remove(self, hash: str) -> None:
        """Remove the records with ``hash``; no-op when absent."""
        self._validate_hash(hash)
        logger.log(TRACE, f"remove(hash={hash!r})")

        with self._lock:
            with self._table.transaction():
                freed = self._table.sum("size", hash=hash)
                deleted = self._table.delete_where(hash=hash)
            self._total_size -= freed
            self._stats_total_removes += deleted

    def get(self, hash: str) -> Optional[Record]:
        """Return the newest record with ``hash``, or None."""
        self._validate_hash(hash)
        logger.log(TRACE, f"get(hash={hash!r})")

        with self._lock:
            rows = self._table.select_where(order_by=("-id",), limit=1, hash=hash)

        if not rows:
            return None
        return Record.from_row(rows[0])

    def lookup(self, hash: str) -> Record:
        """Return the newest record with ``hash``.

        Raises:
            NotFound: If no record has this hash
        """
        record = self.get(hash)
        if record is None:
            raise NotFound(f"No record with hash {hash!r}")
        return record

    def exists(self, hash: str) -> bool:
        self._validate_hash(hash)
        with self._lock:
            return self._table.count(hash=hash) > 0

    def list_all(self) -> list[Record]:
        """All records in insertion (id) order."""
        logger.log(TRACE, "list_all()")
        with self._lock:
            rows = self._table.select_where()
        return [Record.from_row(row) for row in rows]

    def _first(self, order_by: tuple[str, ...], on_disk: Optional[bool]) -> Optional[Record]:
        predicate = {} if on_disk is None else {"on_disk": int(bool(on_disk))}
        with self._lock:
            rows = self._table.select_where(order_by=order_by, limit=1, **predicate)
        return Record.from_row(rows[0]) if rows else None

    def lowest(self, on_disk: Optional[bool] = None) -> Optional[Record]:
        """The record that would be evicted next, optionally within one tier."""
        return self._first(("priority", "id"), on_disk)

    def highest(self, on_disk: Optional[bool] = None) -> Optional[Record]:
        """The highest priority record (newest among ties), optionally within one tier."""
        return self._first(("-priority", "-id"), on_disk)

    def get_total_size(self) -> int:
        with self._lock:
            return self._total_size

    def get_count(self) -> int:
        with self._lock:
            return self._table.count()

    def get_stats(self) -> dict[str, int]:
        """Get index statistics."""
        with self._lock:
            return {
                "total_inserts": self._stats_total_inserts,
                "total_evictions": self._stats_total_evictions,
                "total_removes": self._stats_total_removes,
                "total_marks": self._stats_total_marks,
                "current_items": self._table.count(),
                "current_size": self._total_size,
                "max_size": self._max_size,
            }

    def clear(self) -> None:
        """Remove all records. Ids are not reused afterwards."""
        logger.log(TRACE, "clear()")
        with self._lock:
            with self._table.transaction():
                self._table.delete_where()
            self._total_size = 0

    def close(self) -> None:
        """Close the database connection."""
        if hasattr(self, "_table"):
            with self._lock:
                self._table.close()

    def __enter__(self) -> "PriorityDB":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        self.close()
