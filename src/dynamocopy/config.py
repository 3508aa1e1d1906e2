"""
User-facing transfer configuration.

TransferSettings is the whole configuration surface of a transfer: which
tables, where they live, how much of their throughput the copy may use,
how it is split across processes and how the destination is created.

Example:
    >>> settings = TransferSettings.build(
    ...     source_table="orders",
    ...     destination_table="orders-copy",
    ...     read_throughput_ratio=0.5,
    ...     write_throughput_ratio=0.8,
    ... )
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from dynamocopy.exceptions import ConfigurationError
from dynamocopy.models import SectionAssignment
from dynamocopy.retry import RetryConfig
from dynamocopy.scan import ScanOptions
from dynamocopy.schema import SchemaConversionOptions

DEFAULT_MAX_WRITE_THREADS = 16


class TransferSettings(BaseModel):
    """
    Validated settings for one transfer.

    Use ``TransferSettings.build(...)`` to get validation failures as
    ConfigurationError instead of pydantic's ValidationError.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Source
    source_table: str = Field(
        ...,
        min_length=1,
        description="Table to copy from",
    )
    source_region: str | None = Field(
        default=None,
        description="Region of the source table (default provider chain if None)",
    )
    source_endpoint: str | None = Field(
        default=None,
        description="Endpoint override for the source (e.g. DynamoDB Local)",
    )

    # Destination
    destination_table: str = Field(
        ...,
        min_length=1,
        description="Table to copy into",
    )
    destination_region: str | None = Field(
        default=None,
        description="Region of the destination table (default provider chain if None)",
    )
    destination_endpoint: str | None = Field(
        default=None,
        description="Endpoint override for the destination",
    )

    # Throughput
    read_throughput_ratio: float = Field(
        ...,
        gt=0.0,
        le=1.0,
        description="Fraction of the source's provisioned read capacity to use",
    )
    write_throughput_ratio: float = Field(
        ...,
        gt=0.0,
        le=1.0,
        description="Fraction of the destination's provisioned write capacity to use",
    )
    max_write_threads: int = Field(
        default=DEFAULT_MAX_WRITE_THREADS,
        ge=1,
        description="Maximum concurrent page writes",
    )
    consistent_scan: bool = Field(
        default=False,
        description="Use strongly consistent scans (twice the read cost)",
    )

    # Horizontal split across processes
    section: int = Field(
        default=0,
        ge=0,
        description="Section of the segments handled by this process",
    )
    total_sections: int = Field(
        default=1,
        ge=1,
        description="Number of cooperating processes",
    )

    # Destination creation
    create_destination: bool = Field(
        default=False,
        description="Create the destination table if it does not exist",
    )
    create_all_gsi: bool = Field(default=False, description="Copy every global secondary index")
    create_all_lsi: bool = Field(default=False, description="Copy every local secondary index")
    include_gsi: tuple[str, ...] = Field(
        default=(),
        description="Global secondary indexes to copy by name",
    )
    include_lsi: tuple[str, ...] = Field(
        default=(),
        description="Local secondary indexes to copy by name",
    )
    copy_stream_specification: bool = Field(
        default=False,
        description="Copy the source's stream specification",
    )

    @model_validator(mode="after")
    def _check_cross_field(self) -> TransferSettings:
        # Both raise ConfigurationError subclasses, which pydantic re-raises as is.
        self.section_assignment()
        self.schema_options()
        return self

    @classmethod
    def build(cls, **values: Any) -> TransferSettings:
        """
        Validate settings.

        Raises:
            ConfigurationError: If any value is missing or invalid
        """
        try:
            return cls(**values)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'settings'}: {err['msg']}"
                for err in e.errors()
            )
            raise ConfigurationError(f"Invalid transfer settings: {problems}") from e

    def section_assignment(self) -> SectionAssignment:
        return SectionAssignment(self.section, self.total_sections)

    def schema_options(self) -> SchemaConversionOptions:
        return SchemaConversionOptions(
            create_all_gsi=self.create_all_gsi,
            create_all_lsi=self.create_all_lsi,
            include_gsi=self.include_gsi,
            include_lsi=self.include_lsi,
            copy_stream_specification=self.copy_stream_specification,
        )

    def scan_options(self, retry: RetryConfig | None = None) -> ScanOptions:
        return ScanOptions(consistent_read=self.consistent_scan, retry=retry or RetryConfig())


__all__ = [
    "DEFAULT_MAX_WRITE_THREADS",
    "TransferSettings",
]
