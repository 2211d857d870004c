"""Tests for the read-only query surface."""

import pytest
from pydantic import ValidationError

from prioritydb.errors import ErrorKind, NotFound
from prioritydb.priority_db import PriorityDB
from prioritydb.record import Record

DEFAULT_MAX_SIZE = 100_000_000


def test_lookup_returns_record(db_path: str) -> None:
    db = PriorityDB(DEFAULT_MAX_SIZE, db_path)
    db.insert(3, "hashbrowns", 10, True)

    record = db.lookup("hashbrowns")

    assert record == Record(id=1, priority=3, hash="hashbrowns", size=10, on_disk=True)
    db.close()


def test_lookup_missing_raises_not_found(db_path: str) -> None:
    db = PriorityDB(DEFAULT_MAX_SIZE, db_path)

    with pytest.raises(NotFound, match="missing") as exc_info:
        db.lookup("missing")

    assert exc_info.value.kind is ErrorKind.NOT_FOUND
    assert isinstance(exc_info.value, KeyError)
    db.close()


def test_get_missing_returns_none(db_path: str) -> None:
    db = PriorityDB(DEFAULT_MAX_SIZE, db_path)

    assert db.get("missing") is None
    db.close()


def test_exists(db_path: str) -> None:
    db = PriorityDB(DEFAULT_MAX_SIZE, db_path)
    db.insert(1, "hash", 5)

    assert db.exists("hash")
    assert not db.exists("other")
    db.close()


def test_list_all_empty(db_path: str) -> None:
    db = PriorityDB(DEFAULT_MAX_SIZE, db_path)

    assert db.list_all() == []
    db.close()


def test_list_all_ordered_by_id_not_priority(db_path: str) -> None:
    db = PriorityDB(DEFAULT_MAX_SIZE, db_path)
    db.insert(9, "a", 1)
    db.insert(1, "b", 1)
    db.insert(5, "c", 1)

    records = db.list_all()

    assert [r.id for r in records] == [1, 2, 3]
    assert [r.hash for r in records] == ["a", "b", "c"]
    db.close()


def test_queries_do_not_evict(db_path: str) -> None:
    with PriorityDB(100, db_path) as db:
        db.insert(1, "a", 60)
        db.insert(2, "b", 40)

    with PriorityDB(50, db_path) as db:
        db.list_all()
        db.get("a")
        db.lowest()
        db.highest()

        assert db.get_count() == 2


def test_lowest_and_highest(db_path: str) -> None:
    db = PriorityDB(DEFAULT_MAX_SIZE, db_path)
    db.insert(5, "mid", 1, True)
    db.insert(1, "low_disk", 1, True)
    db.insert(1, "low_memory", 1, False)
    db.insert(9, "high_memory", 1, False)
    db.insert(9, "high_memory_newer", 1, False)

    lowest = db.lowest()
    highest = db.highest()
    assert lowest is not None and lowest.hash == "low_disk"
    assert highest is not None and highest.hash == "high_memory_newer"

    lowest_memory = db.lowest(on_disk=False)
    highest_disk = db.highest(on_disk=True)
    assert lowest_memory is not None and lowest_memory.hash == "low_memory"
    assert highest_disk is not None and highest_disk.hash == "mid"
    db.close()


def test_lowest_and_highest_empty(db_path: str) -> None:
    db = PriorityDB(DEFAULT_MAX_SIZE, db_path)

    assert db.lowest() is None
    assert db.highest(on_disk=True) is None
    db.close()


def test_records_are_immutable(db_path: str) -> None:
    db = PriorityDB(DEFAULT_MAX_SIZE, db_path)
    db.insert(1, "hash", 5)
    record = db.lookup("hash")

    with pytest.raises(ValidationError):
        record.on_disk = True  # type: ignore[misc]

    db.close()


def test_record_rejects_empty_hash() -> None:
    with pytest.raises(ValidationError):
        Record(id=1, priority=1, hash="", size=1, on_disk=False)


def test_count_and_total_size(db_path: str) -> None:
    db = PriorityDB(DEFAULT_MAX_SIZE, db_path)
    db.insert(1, "a", 5)
    db.insert(1, "b", 7)

    assert db.get_count() == 2
    assert db.get_total_size() == 12
    db.close()
