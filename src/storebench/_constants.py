"""Shared constants for storebench."""

# Unified output directory -- single top-level directory for all storebench outputs.
# Contains:
#   results.jsonl            -- the append-only benchmark result log
#   results-<timestamp>.jsonl -- rotated logs
DEFAULT_OUTPUT_DIR = "./storebench-output"
DEFAULT_RESULTS_FILE = "results.jsonl"

# Reference per-million prices used for examples and as config defaults.
# Row-based pricing: a 1 KB row costs the same as a 2 MB blob.
REFERENCE_READ_PRICE_PER_MILLION = 0.001
REFERENCE_WRITE_PRICE_PER_MILLION = 1.00

# Operation trace ring buffer
DEFAULT_MAX_OPERATIONS = 1000
TRACE_TRIM_TO = 500

# Writer defaults
DEFAULT_BUFFER_SIZE = 100
DEFAULT_FLUSH_INTERVAL_SECONDS = 5.0
DEFAULT_ROTATE_MAX_BYTES = 100 * 1024 * 1024

# Percentage change above which a comparison is considered significant
DEFAULT_SIGNIFICANCE_PCT = 5.0
