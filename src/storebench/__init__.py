"""Storebench: storage-operation instrumentation and benchmark result logs."""

__version__ = "0.3.0"
