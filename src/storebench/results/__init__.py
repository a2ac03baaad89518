"""Benchmark result log: record schema, JSONL writer and reader."""

from .errors import RecordError, ResultLogError, WriterClosedError
from .reader import (
    BaselineReport,
    Comparison,
    FieldStats,
    RangeStats,
    ResultFilter,
    ResultReader,
    ResultSummary,
    TotalStats,
    compare_to_baseline,
    find_fastest,
    format_comparison,
    format_summary,
    percent_change,
    read_recent_results,
    read_results,
)
from .record import (
    BenchmarkRecord,
    ContainerSize,
    Environment,
    NUMERIC_FIELDS,
    RECORD_FIELDS,
    GitInfo,
    Measurement,
    SampleStats,
    calculate_stats,
    create_record,
    generate_run_id,
    get_git_info,
    measure,
)
from .recorder import (
    BenchRecorder,
    detect_environment,
    extract_database,
    extract_dataset,
    normalize_benchmark_name,
)
from .writer import (
    ResultWriter,
    get_file_size,
    rotate_if_needed,
    write_result,
    write_results,
)

__all__ = [
    # Errors
    "ResultLogError",
    "RecordError",
    "WriterClosedError",
    # Schema
    "BenchmarkRecord",
    "ContainerSize",
    "Environment",
    "GitInfo",
    "NUMERIC_FIELDS",
    "RECORD_FIELDS",
    "Measurement",
    "SampleStats",
    "calculate_stats",
    "create_record",
    "generate_run_id",
    "get_git_info",
    "measure",
    # Writer
    "ResultWriter",
    "get_file_size",
    "rotate_if_needed",
    "write_result",
    "write_results",
    # Reader
    "ResultReader",
    "ResultFilter",
    "ResultSummary",
    "RangeStats",
    "TotalStats",
    "Comparison",
    "FieldStats",
    "BaselineReport",
    "compare_to_baseline",
    "find_fastest",
    "format_comparison",
    "format_summary",
    "percent_change",
    "read_recent_results",
    "read_results",
    # Recorder
    "BenchRecorder",
    "detect_environment",
    "extract_database",
    "extract_dataset",
    "normalize_benchmark_name",
]
