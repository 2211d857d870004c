"""Example usage of PriorityDB."""

from prioritydb.priority_db import PriorityDB
from prioritydb.record import Record


def on_evict(record: Record) -> None:
    print(f"   Evicted {record.hash} (priority {record.priority}, {record.size} bytes)")


def main() -> None:
    """Demonstrate index usage."""
    # Create index with room for 1 KB of payloads
    db = PriorityDB(max_size=1024, db_path="prism.db", on_evict=on_evict)

    print("=== PriorityDB Example ===\n")

    # Track some objects
    print("1. Inserting records...")
    db.insert(10, "a1b2c3", 400, on_disk=False)
    db.insert(5, "d4e5f6", 300, on_disk=True)
    db.insert(20, "0a0b0c", 200, on_disk=False)
    print(f"   Tracking {db.get_count()} records, {db.get_total_size()} bytes\n")

    # Exceed capacity
    print("2. Inserting a record that exceeds capacity...")
    db.insert(15, "ffeedd", 300)
    print(f"   Tracking {db.get_count()} records, {db.get_total_size()} bytes\n")

    # Move a payload to disk
    print("3. Marking a record as on disk...")
    db.mark_on_disk("a1b2c3")
    print(f"   a1b2c3 on disk: {db.lookup('a1b2c3').on_disk}\n")

    # Candidates for tier moves
    print("4. Tier candidates...")
    lowest = db.lowest(on_disk=False)
    highest = db.highest(on_disk=True)
    print(f"   Next to evict from memory tier: {lowest.hash if lowest else None}")
    print(f"   Best candidate to promote from disk: {highest.hash if highest else None}\n")

    # List everything
    print("5. All records...")
    for record in db.list_all():
        print(f"   {record.id}: {record.hash} priority={record.priority} size={record.size} on_disk={record.on_disk}")
    print()

    # Statistics
    print("6. Statistics...")
    stats = db.get_stats()
    print(f"   Inserts: {stats['total_inserts']}, evictions: {stats['total_evictions']}\n")

    # Remove and close
    print("7. Removing a record and closing...")
    db.remove("0a0b0c")
    print(f"   0a0b0c exists: {db.exists('0a0b0c')}")
    db.close()
    print("   Index closed\n")

    print("=== Example complete ===")


if __name__ == "__main__":
    main()
