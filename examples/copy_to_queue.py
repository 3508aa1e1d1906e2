"""
Queue Export Example

This example scans a table into a BoundedQueueConsumer and reads the pages
on another thread, the way an exporter or transformation step would:
- The reader iterates pages until END_OF_STREAM
- A slow reader throttles the scan through the bounded queue
- Sections split one table across several cooperating processes

Run with: python examples/copy_to_queue.py
"""

import threading
import time

from dynamocopy import (
    BoundedQueueConsumer,
    InMemoryTableStore,
    SegmentPlan,
    SegmentPolicy,
    TableCopier,
    TransferSettings,
)


def build_source(store: InMemoryTableStore) -> None:
    store.add_table("events", hash_key="id", read_capacity=300, write_capacity=300)
    store.put_items(
        "events",
        ({"id": {"S": f"event-{i:04d}"}, "kind": {"S": "click"}} for i in range(500)),
    )


def export(consumer: BoundedQueueConsumer, exported: list[str]) -> None:
    for page in consumer:
        time.sleep(0.01)  # pretend to do some work per page
        exported.extend(item["id"]["S"] for item in page.items)


def export_section(store: InMemoryTableStore, section: int, total_sections: int) -> list[str]:
    settings = TransferSettings.build(
        source_table="events",
        destination_table="unused",
        read_throughput_ratio=1.0,
        write_throughput_ratio=1.0,
        section=section,
        total_sections=total_sections,
    )
    plan = SegmentPlan(SegmentPolicy(capacity_units_per_segment=100))
    copier = TableCopier(store, None, settings, segment_plan=plan, enable_tracing=False)

    consumer = BoundedQueueConsumer(maxsize=4)
    exported: list[str] = []
    reader = threading.Thread(target=export, args=(consumer, exported))
    reader.start()
    outcome = copier.copy_to_queue(consumer)
    reader.join()

    print(
        f"   Section {section}: {len(exported)} items from "
        f"{outcome.segments_total} segments in {outcome.duration_seconds:.2f}s"
    )
    return exported


def main() -> None:
    print("=" * 60)
    print("Queue Export Example")
    print("=" * 60)

    store = InMemoryTableStore(page_size=25)
    build_source(store)

    print("\n1. Exporting in two sections:")
    first = export_section(store, 0, 2)
    second = export_section(store, 1, 2)

    print("\n2. Checking the split:")
    print(f"   Overlap: {len(set(first) & set(second))} items")
    print(f"   Total: {len(first) + len(second)} of {store.describe_table('events')['ItemCount']}")

    print("\n" + "=" * 60)
    print("Example completed successfully!")
    print("=" * 60)


if __name__ == "__main__":
    main()
