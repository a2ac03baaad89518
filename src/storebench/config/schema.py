"""Pydantic models for storebench configuration.

A config file is optional: every section has defaults, so an empty file
(or no file at all) yields the reference setup of one append-only result
log under ``./storebench-output`` and reference pricing.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from storebench._constants import (
    DEFAULT_BUFFER_SIZE,
    DEFAULT_FLUSH_INTERVAL_SECONDS,
    DEFAULT_MAX_OPERATIONS,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_RESULTS_FILE,
    DEFAULT_ROTATE_MAX_BYTES,
    DEFAULT_SIGNIFICANCE_PCT,
    REFERENCE_READ_PRICE_PER_MILLION,
    REFERENCE_WRITE_PRICE_PER_MILLION,
)
from storebench.instrument.aggregator import SessionAggregator
from storebench.instrument.interceptor import StorageInterceptor
from storebench.instrument.metrics import Pricing
from storebench.results.reader import ResultReader
from storebench.results.record import Environment
from storebench.results.recorder import BenchRecorder
from storebench.results.writer import ResultWriter


# =============================================================================
# Sections
# =============================================================================


class OutputConfig(BaseModel):
    """Result log location and writer tuning."""

    model_config = ConfigDict(extra="forbid")

    path: str = str(Path(DEFAULT_OUTPUT_DIR) / DEFAULT_RESULTS_FILE)
    append: bool = True
    buffer_size: int = DEFAULT_BUFFER_SIZE
    flush_interval_seconds: float = DEFAULT_FLUSH_INTERVAL_SECONDS
    rotate_max_bytes: int = DEFAULT_ROTATE_MAX_BYTES

    @field_validator("buffer_size", "rotate_max_bytes")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Sizes must be positive."""
        if v < 1:
            raise ValueError("must be a positive integer")
        return v

    @field_validator("flush_interval_seconds")
    @classmethod
    def validate_flush_interval(cls, v: float) -> float:
        """0 disables the background timer; negatives are rejected."""
        if v < 0:
            raise ValueError("must be >= 0 (0 disables periodic flushing)")
        return v


class PricingConfig(BaseModel):
    """Per-million row prices used for cost estimates."""

    model_config = ConfigDict(extra="forbid")

    read_per_million: float = REFERENCE_READ_PRICE_PER_MILLION
    write_per_million: float = REFERENCE_WRITE_PRICE_PER_MILLION

    @field_validator("read_per_million", "write_per_million")
    @classmethod
    def validate_price(cls, v: float) -> float:
        if v < 0:
            raise ValueError("price must not be negative")
        return v

    def to_pricing(self) -> Pricing:
        return Pricing(
            read_per_million=self.read_per_million,
            write_per_million=self.write_per_million,
        )


class InstrumentConfig(BaseModel):
    """Storage interceptor options."""

    model_config = ConfigDict(extra="forbid")

    track_operations: bool = False
    max_operations: int = DEFAULT_MAX_OPERATIONS

    @field_validator("max_operations")
    @classmethod
    def validate_max_operations(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be a positive integer")
        return v


class RecorderConfig(BaseModel):
    """Defaults for records built by the recorder."""

    model_config = ConfigDict(extra="forbid")

    default_database: str = "unknown"
    default_dataset: str = "default"
    default_environment: Environment = Environment.LOCAL
    tags: dict[str, str] = Field(default_factory=dict)
    print_summary: bool = True
    git: bool = True


class CompareConfig(BaseModel):
    """Run comparison options."""

    model_config = ConfigDict(extra="forbid")

    threshold_pct: float = DEFAULT_SIGNIFICANCE_PCT

    @field_validator("threshold_pct")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        if v < 0:
            raise ValueError("threshold_pct must not be negative")
        return v


# =============================================================================
# Root
# =============================================================================


class StorebenchConfig(BaseModel):
    """Root storebench configuration."""

    model_config = ConfigDict(extra="forbid")

    name: str = "storebench"
    description: str = ""
    output: OutputConfig = Field(default_factory=OutputConfig)
    pricing: PricingConfig = Field(default_factory=PricingConfig)
    instrument: InstrumentConfig = Field(default_factory=InstrumentConfig)
    recorder: RecorderConfig = Field(default_factory=RecorderConfig)
    compare: CompareConfig = Field(default_factory=CompareConfig)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name must not be empty")
        return v

    # -------------------------------------------------------------------------
    # Factories
    # -------------------------------------------------------------------------

    def build_writer(self, output_path: str | Path | None = None, **overrides: Any) -> ResultWriter:
        """ResultWriter configured from the ``output`` section."""
        kwargs: dict[str, Any] = {
            "append": self.output.append,
            "buffer_size": self.output.buffer_size,
            "flush_interval": self.output.flush_interval_seconds,
        }
        kwargs.update(overrides)
        return ResultWriter(output_path or self.output.path, **kwargs)

    def build_reader(
        self, input_path: str | Path | list[str | Path] | None = None, **kwargs: Any
    ) -> ResultReader:
        """ResultReader over the configured log (or *input_path*)."""
        return ResultReader(input_path or self.output.path, **kwargs)

    def build_interceptor(self) -> StorageInterceptor:
        return StorageInterceptor(
            pricing=self.pricing.to_pricing(),
            track_operations=self.instrument.track_operations,
            max_operations=self.instrument.max_operations,
        )

    def build_aggregator(self) -> SessionAggregator:
        return SessionAggregator(pricing=self.pricing.to_pricing())

    def build_recorder(self, writer: ResultWriter | None = None, **overrides: Any) -> BenchRecorder:
        """BenchRecorder using the ``recorder`` defaults, writing to *writer*."""
        kwargs: dict[str, Any] = {
            "default_database": self.recorder.default_database,
            "default_dataset": self.recorder.default_dataset,
            "default_environment": self.recorder.default_environment,
            "tags": self.recorder.tags or None,
            "git": self.recorder.git,
            "print_summary": self.recorder.print_summary,
        }
        kwargs.update(overrides)
        return BenchRecorder(writer or self.build_writer(), **kwargs)
