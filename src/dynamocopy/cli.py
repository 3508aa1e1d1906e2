"""
Command line entry point.

Example:
    dynamocopy --source-table orders --source-region us-east-1 \\
        --destination-table orders-copy --destination-region us-west-2 \\
        --read-throughput-ratio 0.5 --write-throughput-ratio 0.5

Exit codes:
    0   transfer finished
    1   store error or any other failure
    2   invalid arguments or configuration
    130 transfer interrupted
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from collections.abc import Sequence
from typing import Any

from dynamocopy.bootstrap import TableCopier
from dynamocopy.config import DEFAULT_MAX_WRITE_THREADS, TransferSettings
from dynamocopy.exceptions import (
    ConfigurationError,
    DynamoCopyError,
    StoreError,
    TransferInterruptedError,
)
from dynamocopy.segments import SegmentPlan, SegmentPolicy
from dynamocopy.stores.dynamodb import DynamoDBTableStore

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_CONFIGURATION_ERROR = 2
EXIT_INTERRUPTED = 130

LOG_FORMAT = "%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dynamocopy",
        description="Copy a DynamoDB table into another within a share of provisioned throughput.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Copy within half of both tables' capacity
  dynamocopy --source-table orders --source-region us-east-1 \\
    --destination-table orders-copy --destination-region us-east-1 \\
    --read-throughput-ratio 0.5 --write-throughput-ratio 0.5

  # Create the destination with one index, split across two processes
  dynamocopy ... --create-destination --include-gsi by-customer \\
    --section 0 --total-sections 2
        """,
    )

    source = parser.add_argument_group("source")
    source.add_argument("--source-table", required=True, help="Table to copy from")
    source.add_argument("--source-region", help="Region of the source table")
    source.add_argument("--source-endpoint", help="Endpoint override for the source")

    destination = parser.add_argument_group("destination")
    destination.add_argument("--destination-table", required=True, help="Table to copy into")
    destination.add_argument("--destination-region", help="Region of the destination table")
    destination.add_argument("--destination-endpoint", help="Endpoint override for the destination")

    throughput = parser.add_argument_group("throughput")
    throughput.add_argument(
        "--read-throughput-ratio",
        type=float,
        required=True,
        help="Fraction of the source's read capacity to use (0 < ratio <= 1)",
    )
    throughput.add_argument(
        "--write-throughput-ratio",
        type=float,
        required=True,
        help="Fraction of the destination's write capacity to use (0 < ratio <= 1)",
    )
    throughput.add_argument(
        "--max-write-threads",
        type=int,
        default=DEFAULT_MAX_WRITE_THREADS,
        help=f"Maximum concurrent page writes (default: {DEFAULT_MAX_WRITE_THREADS})",
    )
    throughput.add_argument(
        "--consistent-scan",
        action="store_true",
        help="Use strongly consistent scans (twice the read cost)",
    )
    throughput.add_argument(
        "--max-segments",
        type=int,
        default=SegmentPolicy.max_segments,
        help=f"Upper bound on scan segments (default: {SegmentPolicy.max_segments})",
    )

    sections = parser.add_argument_group("sections")
    sections.add_argument("--section", type=int, default=0, help="Section of this process (default: 0)")
    sections.add_argument(
        "--total-sections",
        type=int,
        default=1,
        help="Number of cooperating processes (default: 1)",
    )

    creation = parser.add_argument_group("destination creation")
    creation.add_argument(
        "--create-destination",
        action="store_true",
        help="Create the destination table if it does not exist",
    )
    creation.add_argument("--create-all-gsi", action="store_true", help="Copy every GSI")
    creation.add_argument("--create-all-lsi", action="store_true", help="Copy every LSI")
    creation.add_argument(
        "--include-gsi",
        nargs="+",
        default=[],
        metavar="NAME",
        help="Global secondary indexes to copy",
    )
    creation.add_argument(
        "--include-lsi",
        nargs="+",
        default=[],
        metavar="NAME",
        help="Local secondary indexes to copy",
    )
    creation.add_argument(
        "--copy-stream-specification",
        action="store_true",
        help="Copy the source's stream specification",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )
    return parser


def settings_from_args(args: argparse.Namespace) -> TransferSettings:
    """
    Build validated settings from parsed arguments.

    Raises:
        ConfigurationError: If the values are invalid
    """
    values: dict[str, Any] = {
        "source_table": args.source_table,
        "source_region": args.source_region,
        "source_endpoint": args.source_endpoint,
        "destination_table": args.destination_table,
        "destination_region": args.destination_region,
        "destination_endpoint": args.destination_endpoint,
        "read_throughput_ratio": args.read_throughput_ratio,
        "write_throughput_ratio": args.write_throughput_ratio,
        "max_write_threads": args.max_write_threads,
        "consistent_scan": args.consistent_scan,
        "section": args.section,
        "total_sections": args.total_sections,
        "create_destination": args.create_destination,
        "create_all_gsi": args.create_all_gsi,
        "create_all_lsi": args.create_all_lsi,
        "include_gsi": tuple(args.include_gsi),
        "include_lsi": tuple(args.include_lsi),
        "copy_stream_specification": args.copy_stream_specification,
    }
    return TransferSettings.build(**values)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def create_copier(settings: TransferSettings, max_segments: int) -> TableCopier:
    """Build a copier talking to DynamoDB with the settings' regions and endpoints."""
    policy = SegmentPolicy(max_segments=max_segments)
    source = DynamoDBTableStore.from_region(
        settings.source_region,
        settings.source_endpoint,
        max_connections=max_segments + 1,
    )
    destination = DynamoDBTableStore.from_region(
        settings.destination_region,
        settings.destination_endpoint,
        max_connections=settings.max_write_threads + 1,
    )
    return TableCopier(source, destination, settings, segment_plan=SegmentPlan(policy))


def main(argv: Sequence[str] | None = None) -> int:
    """
    Run a transfer from the command line.

    Args:
        argv: Arguments without the program name (defaults to sys.argv[1:])

    Returns:
        Process exit code
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    try:
        settings = settings_from_args(args)
        copier = create_copier(settings, args.max_segments)
    except (ConfigurationError, ValueError) as e:
        logger.error("Invalid configuration: %s", e)
        return EXIT_CONFIGURATION_ERROR

    def _terminate(signum: int, frame: Any) -> None:
        logger.warning("Received signal %d, stopping transfer", signum)
        copier.cancel()

    previous = signal.signal(signal.SIGTERM, _terminate)
    try:
        outcome = copier.transfer()
    except ConfigurationError as e:
        logger.error("Invalid configuration: %s", e)
        return EXIT_CONFIGURATION_ERROR
    except TransferInterruptedError as e:
        logger.error("Transfer interrupted: %s", e)
        return EXIT_INTERRUPTED
    except KeyboardInterrupt:
        logger.error("Transfer interrupted before it started")
        return EXIT_INTERRUPTED
    except StoreError as e:
        logger.error("Store error during transfer: %s", e, exc_info=True)
        return EXIT_FAILURE
    except DynamoCopyError as e:
        logger.error("Transfer failed: %s", e, exc_info=True)
        return EXIT_FAILURE
    except Exception:
        logger.exception("Encountered exception when executing transfer")
        return EXIT_FAILURE
    finally:
        signal.signal(signal.SIGTERM, previous)

    logger.info(
        "Copied %d items in %.1fs",
        outcome.stats.items_written,
        outcome.duration_seconds,
        extra=outcome.stats.to_dict(),
    )
    return EXIT_SUCCESS


if __name__ == "__main__":
    sys.exit(main())
