"""Buffered JSONL result writer.

Records are buffered in memory and appended to the result log one batch at
a time. Each batch goes out in a single ``write()`` call so concurrent
readers never observe a half-written line. A daemon thread flushes the
buffer periodically and whenever it fills up; ``close()`` performs the
final flush.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from datetime import datetime
from pathlib import Path
from typing import Any

from storebench._constants import (
    DEFAULT_BUFFER_SIZE,
    DEFAULT_FLUSH_INTERVAL_SECONDS,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_RESULTS_FILE,
    DEFAULT_ROTATE_MAX_BYTES,
)

from .errors import RecordError, WriterClosedError
from .record import BenchmarkRecord

logger = logging.getLogger(__name__)

DEFAULT_RESULTS_PATH = str(Path(DEFAULT_OUTPUT_DIR) / DEFAULT_RESULTS_FILE)

RecordLike = BenchmarkRecord | Mapping[str, Any]


def _as_record(record: RecordLike) -> BenchmarkRecord:
    if isinstance(record, BenchmarkRecord):
        return record
    return BenchmarkRecord.from_dict(record)


def _to_line(record: BenchmarkRecord) -> str:
    """Serialize one record to a JSONL line, newline included.

    Raises:
        RecordError: If a field holds a value JSON cannot encode
    """
    try:
        return record.to_json() + "\n"
    except (TypeError, ValueError) as e:
        raise RecordError(f"Record {record.benchmark!r} is not serializable: {e}") from e


class ResultWriter:
    """Append-only JSONL writer for benchmark records.

    Lifecycle is ``uninitialized -> initialized -> closed``. The first
    write (or an explicit :meth:`init`) creates the parent directory,
    truncates the file in overwrite mode and starts the flush worker.

    Usage::

        with ResultWriter("storebench-output/results.jsonl") as writer:
            writer.write(record)

    Args:
        output_path: Result log path
        append: Keep existing content (default) instead of truncating
        buffer_size: Buffered record count that wakes the flush worker
        flush_interval: Seconds between background flushes; 0 disables the timer
    """

    def __init__(
        self,
        output_path: Path | str = DEFAULT_RESULTS_PATH,
        append: bool = True,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        flush_interval: float = DEFAULT_FLUSH_INTERVAL_SECONDS,
    ) -> None:
        if buffer_size < 1:
            raise ValueError(f"buffer_size must be positive, got {buffer_size}")
        if flush_interval < 0:
            raise ValueError(f"flush_interval must not be negative, got {flush_interval}")

        self.output_path = Path(output_path)
        self.append = append
        self.buffer_size = buffer_size
        self.flush_interval = flush_interval

        # Serialized lines; a record is frozen at write time
        self._buffer: list[str] = []
        self._buffer_lock = threading.Lock()
        # Held for the whole of a flush so a second flush waits for the first
        self._flush_lock = threading.Lock()
        self._wake = threading.Event()
        self._stop = threading.Event()
        self._worker: threading.Thread | None = None

        self._initialized = False
        self._closed = False
        self._written = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def init(self) -> None:
        """Prepare the output file and start the flush worker. Idempotent."""
        with self._flush_lock:
            if self._initialized:
                return
            if self._closed:
                raise WriterClosedError(f"Writer for {self.output_path} is closed")

            self.output_path.parent.mkdir(parents=True, exist_ok=True)
            if not self.append:
                self.output_path.write_text("", encoding="utf-8")

            self._worker = threading.Thread(
                target=self._run,
                name=f"storebench-writer-{self.output_path.name}",
                daemon=True,
            )
            self._worker.start()
            self._initialized = True

        logger.debug(
            "Result writer initialized: %s (append=%s, buffer_size=%d, flush_interval=%.1fs)",
            self.output_path,
            self.append,
            self.buffer_size,
            self.flush_interval,
        )

    def close(self) -> None:
        """Stop the flush worker and write out everything still buffered.

        An I/O error from the final flush propagates and the writer stays
        open with its records retained, so ``close()`` can be retried.
        """
        if self._closed:
            return

        self._stop_worker()
        self.flush()
        self._closed = True
        logger.debug("Result writer closed: %s (%d records written)", self.output_path, self._written)

    def __enter__(self) -> ResultWriter:
        self.init()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def write(self, record: RecordLike) -> None:
        """Buffer one record. Never blocks on file I/O.

        Raises:
            WriterClosedError: If the writer has been closed
            RecordError: If a mapping is not a valid record or the record
                cannot be serialized
        """
        self._ensure_open()
        line = _to_line(_as_record(record))
        with self._buffer_lock:
            self._buffer.append(line)
            full = len(self._buffer) >= self.buffer_size
        if full:
            self._wake.set()

    def write_many(self, records: Iterable[RecordLike]) -> None:
        """Buffer several records. Nothing is buffered if any of them is invalid."""
        self._ensure_open()
        lines = [_to_line(_as_record(r)) for r in records]
        with self._buffer_lock:
            self._buffer.extend(lines)
            full = len(self._buffer) >= self.buffer_size
        if full:
            self._wake.set()

    def write_partial(self, partial: Mapping[str, Any]) -> BenchmarkRecord:
        """Fill defaults for a partial payload, buffer it and return the record."""
        record = BenchmarkRecord.from_partial(partial)
        self.write(record)
        return record

    def flush(self) -> int:
        """Append every buffered record to the log in one write.

        Returns:
            Number of records written

        Raises:
            OSError: If the append fails. On any error the batch is put back
                in front of the buffer for the next attempt
        """
        with self._flush_lock:
            with self._buffer_lock:
                batch, self._buffer = self._buffer, []
            if not batch:
                return 0

            try:
                self.output_path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.output_path, "a", encoding="utf-8") as f:
                    f.write("".join(batch))
            except Exception:
                with self._buffer_lock:
                    self._buffer[:0] = batch
                raise

            self._written += len(batch)

        logger.debug("Flushed %d records to %s", len(batch), self.output_path)
        return len(batch)

    @property
    def written_count(self) -> int:
        """Records successfully appended to the log."""
        return self._written

    @property
    def pending_count(self) -> int:
        """Records buffered but not yet flushed."""
        with self._buffer_lock:
            return len(self._buffer)

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def rotate_if_needed(self, max_bytes: int = DEFAULT_ROTATE_MAX_BYTES) -> bool:
        """Rotate the log if it has grown past *max_bytes*.

        Buffered records are flushed first so they land in the archived
        file together with the rest of their run.
        """
        self.flush()
        with self._flush_lock:
            return rotate_if_needed(self.output_path, max_bytes)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_open(self) -> None:
        if self._closed:
            raise WriterClosedError(f"Writer for {self.output_path} is closed")
        if not self._initialized:
            self.init()

    def _stop_worker(self) -> None:
        if self._worker is None:
            return
        self._stop.set()
        self._wake.set()
        self._worker.join()
        self._worker = None

    def _run(self) -> None:
        timeout = self.flush_interval if self.flush_interval > 0 else None
        while not self._stop.is_set():
            self._wake.wait(timeout)
            self._wake.clear()
            if self._stop.is_set():
                break
            try:
                self.flush()
            except Exception:
                logger.warning(
                    "Background flush to %s failed, records retained",
                    self.output_path,
                    exc_info=True,
                )


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------


def get_file_size(path: Path | str) -> int:
    """Size of *path* in bytes, 0 if it does not exist."""
    try:
        return Path(path).stat().st_size
    except FileNotFoundError:
        return 0


def rotate_if_needed(path: Path | str, max_bytes: int = DEFAULT_ROTATE_MAX_BYTES) -> bool:
    """Archive *path* once it exceeds *max_bytes*.

    The file is renamed to ``<stem>-<YYYYmmdd-HHMMSS-ffffff><suffix>`` and an
    empty file is created in its place.

    Returns:
        True if the file was rotated
    """
    path = Path(path)
    size = get_file_size(path)
    if size <= max_bytes:
        return False

    ts = datetime.now().strftime("%Y%m%d-%H%M%S-%f")
    archive_path = path.with_name(f"{path.stem}-{ts}{path.suffix}")
    path.rename(archive_path)
    path.touch()
    logger.info("Rotated %s (%d bytes) to %s", path, size, archive_path)
    return True


def write_results(
    output_path: Path | str,
    records: Iterable[RecordLike],
    append: bool = True,
) -> int:
    """Write records to a log in one shot, without a background worker.

    Returns:
        Number of records written
    """
    path = Path(output_path)
    lines = [_to_line(_as_record(r)) for r in records]
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a" if append else "w", encoding="utf-8") as f:
        f.write("".join(lines))
    logger.debug("Wrote %d records to %s", len(lines), path)
    return len(lines)


def write_result(output_path: Path | str, record: RecordLike, append: bool = True) -> None:
    """Write a single record to a log in one shot."""
    write_results(output_path, [record], append=append)
