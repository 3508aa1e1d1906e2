"""
Library exceptions for the dynamocopy package.

Exception Hierarchy:
    DynamoCopyError (base)
    +-- ConfigurationError
    |   +-- NullReadCapacityError
    |   +-- NullWriteCapacityError
    |   +-- SectionOutOfRangeError
    |   +-- DuplicateIndexNameError
    |   +-- DestinationTableMissingError
    |   +-- TableCreationError
    +-- StoreError
    |   +-- TransientStoreError
    |   +-- UnrecoverableStoreError
    |   |   +-- RetriesExhaustedError
    |   |   +-- UnprocessedItemsError
    |   +-- TableNotFoundError
    +-- TransferInterruptedError
    +-- ConsumerClosedError

Configuration errors are raised before any data moves and are never retried.
Transient store errors are retried locally by the component that raised them
and only escape as an UnrecoverableStoreError once the retry ceiling is hit.
"""


class DynamoCopyError(Exception):
    """Base exception for dynamocopy library."""

    pass


# =============================================================================
# Configuration errors
# =============================================================================


class ConfigurationError(DynamoCopyError):
    """Raised when the transfer is configured in a way that cannot run."""

    pass


class NullReadCapacityError(ConfigurationError):
    """Raised when the source table reports no provisioned read capacity."""

    def __init__(self, table_name: str) -> None:
        self.table_name = table_name
        super().__init__(
            f"Table {table_name} reports no provisioned read capacity. "
            "On-demand tables are not supported by ratio-based throttling."
        )


class NullWriteCapacityError(ConfigurationError):
    """Raised when the destination table reports no provisioned write capacity."""

    def __init__(self, table_name: str) -> None:
        self.table_name = table_name
        super().__init__(
            f"Table {table_name} reports no provisioned write capacity. "
            "On-demand tables are not supported by ratio-based throttling."
        )


class SectionOutOfRangeError(ConfigurationError):
    """Raised when a section number is outside [0, total_sections)."""

    def __init__(self, section: int, total_sections: int) -> None:
        self.section = section
        self.total_sections = total_sections
        super().__init__(
            f"Section {section} is out of range: must be >= 0 and < total sections "
            f"({total_sections})"
        )


class DuplicateIndexNameError(ConfigurationError):
    """Raised when an index include-list names the same index more than once."""

    def __init__(self, index_kind: str, index_name: str) -> None:
        self.index_kind = index_kind
        self.index_name = index_name
        super().__init__(f"Duplicate {index_kind} name in include list: {index_name}")


class DestinationTableMissingError(ConfigurationError):
    """Raised when the destination table is absent and creation was not requested."""

    def __init__(self, table_name: str) -> None:
        self.table_name = table_name
        super().__init__(f"Destination table {table_name} did not exist")


class TableCreationError(ConfigurationError):
    """Raised when the destination table could not be created or never became ready."""

    def __init__(self, table_name: str, message: str) -> None:
        self.table_name = table_name
        super().__init__(f"Unable to create destination table {table_name}: {message}")


# =============================================================================
# Store errors
# =============================================================================


class StoreError(DynamoCopyError):
    """Raised when there's an error talking to the table store."""

    def __init__(self, message: str, operation: str | None = None) -> None:
        self.operation = operation
        super().__init__(message)


class TransientStoreError(StoreError):
    """
    Raised for throttling, timeouts and other failures worth retrying.

    Attributes:
        code: Store error code when one was reported (e.g.
            'ProvisionedThroughputExceededException')
    """

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        code: str | None = None,
    ) -> None:
        self.code = code
        super().__init__(message, operation)


class UnrecoverableStoreError(StoreError):
    """Raised for store errors that retrying will not fix."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        code: str | None = None,
    ) -> None:
        self.code = code
        super().__init__(message, operation)


class RetriesExhaustedError(UnrecoverableStoreError):
    """
    Raised when a transient store error persisted past the retry ceiling.

    Attributes:
        attempts: Number of attempts made
        last_error: The last transient error observed
    """

    def __init__(self, operation: str, attempts: int, last_error: Exception) -> None:
        self.attempts = attempts
        self.last_error = last_error
        code = getattr(last_error, "code", None)
        super().__init__(
            f"{operation} failed after {attempts} attempts: {last_error}",
            operation,
            code,
        )


class UnprocessedItemsError(UnrecoverableStoreError):
    """
    Raised when a batch write keeps returning unprocessed items.

    Attributes:
        table_name: Destination table
        unprocessed_count: Items still unwritten when the ceiling was hit
        attempts: Number of batch write attempts made
    """

    def __init__(self, table_name: str, unprocessed_count: int, attempts: int) -> None:
        self.table_name = table_name
        self.unprocessed_count = unprocessed_count
        self.attempts = attempts
        super().__init__(
            f"{unprocessed_count} items still unprocessed in table {table_name} "
            f"after {attempts} batch write attempts",
            "batch_write",
        )


class TableNotFoundError(StoreError):
    """Raised when a table does not exist."""

    def __init__(self, table_name: str) -> None:
        self.table_name = table_name
        super().__init__(f"Table not found: {table_name}", "describe_table")


# =============================================================================
# Lifecycle errors
# =============================================================================


class TransferInterruptedError(DynamoCopyError):
    """Raised when a running transfer was asked to stop before it finished."""

    def __init__(self, message: str = "Transfer was interrupted") -> None:
        super().__init__(message)


class ConsumerClosedError(DynamoCopyError):
    """Raised when a page is submitted to a consumer that has been shut down."""

    pass


__all__ = [
    "DynamoCopyError",
    "ConfigurationError",
    "NullReadCapacityError",
    "NullWriteCapacityError",
    "SectionOutOfRangeError",
    "DuplicateIndexNameError",
    "DestinationTableMissingError",
    "TableCreationError",
    "StoreError",
    "TransientStoreError",
    "UnrecoverableStoreError",
    "RetriesExhaustedError",
    "UnprocessedItemsError",
    "TableNotFoundError",
    "TransferInterruptedError",
    "ConsumerClosedError",
]
