"""
Table Copy Example

This example walks through a complete table-to-table transfer:
- Setting up a source table and an empty store for the destination
- Validating transfer settings
- Creating the destination from the source schema
- Running the copy and reading the outcome

It uses the in-memory store so it runs without AWS credentials. Swap in
DynamoDBTableStore.from_region(...) for a real transfer.

Run with: python examples/copy_table.py
"""

import logging

from dynamocopy import (
    InMemoryTableStore,
    SegmentPlan,
    SegmentPolicy,
    TableCopier,
    TransferSettings,
)

# =============================================================================
# Step 1: Build a source table
# =============================================================================
# Items use the DynamoDB wire format and are copied without conversion.


def build_source(store: InMemoryTableStore) -> None:
    store.add_table(
        "orders",
        hash_key="customer",
        range_key="order_id",
        read_capacity=400,
        write_capacity=400,
        GlobalSecondaryIndexes=[
            {
                "IndexName": "by-order",
                "KeySchema": [{"AttributeName": "order_id", "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "KEYS_ONLY"},
                "ProvisionedThroughput": {"ReadCapacityUnits": 50, "WriteCapacityUnits": 50},
            }
        ],
    )
    store.put_items(
        "orders",
        (
            {
                "customer": {"S": f"customer-{i % 40}"},
                "order_id": {"S": f"order-{i:05d}"},
                "total": {"N": str(i * 3)},
            }
            for i in range(2000)
        ),
    )


# =============================================================================
# Step 2: Run the transfer
# =============================================================================


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    print("=" * 60)
    print("Table Copy Example")
    print("=" * 60)

    store = InMemoryTableStore(page_size=50)
    build_source(store)

    settings = TransferSettings.build(
        source_table="orders",
        destination_table="orders-copy",
        read_throughput_ratio=0.5,
        write_throughput_ratio=0.5,
        create_destination=True,
        create_all_gsi=True,
        max_write_threads=4,
    )

    # Small capacity per segment so this little table is still scanned in parallel.
    plan = SegmentPlan(SegmentPolicy(capacity_units_per_segment=100))
    copier = TableCopier(store, store, settings, segment_plan=plan, enable_tracing=False)

    print("\n1. Pre-flight plan:")
    scan_plan = copier.plan_scan()
    print(f"   Segments: {scan_plan.segment_count}")
    print(f"   Read budget: {scan_plan.read_budget.units_per_second:.0f} units/s")

    print("\n2. Copying...")
    outcome = copier.transfer()

    print("\n3. Outcome:")
    print(f"   Success: {outcome.success}")
    print(f"   Segments completed: {outcome.segments_completed}/{outcome.segments_total}")
    for name, value in outcome.stats.to_dict().items():
        print(f"   {name}: {value}")

    destination = store.describe_table("orders-copy")
    indexes = [i["IndexName"] for i in destination.get("GlobalSecondaryIndexes", [])]
    print(f"\n4. Destination has {destination['ItemCount']} items, indexes {indexes}")

    print("\n" + "=" * 60)
    print("Example completed successfully!")
    print("=" * 60)


if __name__ == "__main__":
    main()
