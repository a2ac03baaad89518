"""Exceptions raised by the result log."""

from __future__ import annotations


class ResultLogError(Exception):
    """Base exception for result log errors."""

    pass


class RecordError(ResultLogError):
    """Raised when a payload cannot be turned into a BenchmarkRecord."""

    pass


class WriterClosedError(ResultLogError):
    """Raised when writing to a closed ResultWriter."""

    pass
