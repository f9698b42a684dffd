"""Batched Parquet sinks for the twelve dataset tables."""

import dataclasses
import logging
import os
from pathlib import Path

import pyarrow as pa
import pyarrow.parquet as pq

from osu_dataset.schemas.rows import FileRows
from osu_dataset.storage.tables import TABLES, TableSpec

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100
DEFAULT_COMPRESSION = "snappy"
# Chunk size used when carrying an existing table file over into a new one.
MERGE_CHUNK_SIZE = 8192


class WriterAbortedError(RuntimeError):
    """Raised when a row is written to a writer that has already failed."""


class BatchWriter:
    """Buffer rows of one table and append them to a Parquet file in batches.

    Rows are converted to an Arrow table and written as one row group every
    *batch_size* rows.  ``close`` flushes whatever is left, finalizes the
    file and returns the total number of rows in it.

    A conversion or write error propagates to the caller and marks the
    writer as aborted; further writes raise ``WriterAbortedError``.
    """

    def __init__(
        self,
        path: Path,
        spec: TableSpec,
        batch_size: int = DEFAULT_BATCH_SIZE,
        compression: str = DEFAULT_COMPRESSION,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.path = Path(path)
        self.spec = spec
        self.batch_size = batch_size
        self.total_rows = 0
        self.aborted = False
        self._buffer: list = []
        self._writer: pq.ParquetWriter | None = pq.ParquetWriter(
            self.path, spec.schema, compression=compression,
        )

    @property
    def closed(self) -> bool:
        return self._writer is None

    def write(self, row) -> None:
        self._check_open()
        self._buffer.append(row)
        if len(self._buffer) >= self.batch_size:
            self.flush()

    def write_all(self, rows) -> None:
        for row in rows:
            self.write(row)

    def write_table(self, table: pa.Table) -> None:
        """Append an already-columnar table, cast to this writer's schema."""
        self._check_open()
        self.flush()
        if table.num_rows == 0:
            return
        try:
            self._writer.write_table(table.select(self.spec.schema.names).cast(self.spec.schema))
        except Exception:
            self.aborted = True
            raise
        self.total_rows += table.num_rows

    def flush(self) -> None:
        if not self._buffer:
            return
        self._check_open()
        rows, self._buffer = self._buffer, []
        try:
            table = pa.Table.from_pylist(
                [dataclasses.asdict(r) for r in rows], schema=self.spec.schema,
            )
            self._writer.write_table(table)
        except Exception:
            self.aborted = True
            raise
        self.total_rows += len(rows)
        logger.debug("Flushed %d rows to %s", len(rows), self.path.name)

    def close(self) -> int:
        """Flush remaining rows, finalize the file and return the row total."""
        if self._writer is None:
            return self.total_rows
        try:
            if not self.aborted:
                self.flush()
        finally:
            writer, self._writer = self._writer, None
            writer.close()
        return self.total_rows

    def _check_open(self) -> None:
        if self.aborted:
            raise WriterAbortedError(f"writer for {self.spec.name} was aborted")
        if self._writer is None:
            raise WriterAbortedError(f"writer for {self.spec.name} is closed")


def _temp_path(path: Path) -> Path:
    return path.with_name(f".{path.name}.tmp")


class DatasetWriters:
    """One ``BatchWriter`` per table, writing into *output_dir*.

    Every table is written to a hidden temporary file and atomically moved
    over ``<table>.parquet`` on close.  When *merge* is true the rows of an
    existing table file are copied into the temporary file first, in bounded
    chunks, so a run appends to the dataset of a previous run.  With
    ``merge=False`` the dataset is rewritten from scratch.

    Use as a context manager.  The commit is all-or-nothing: if the body
    raises, or any writer aborted or failed to close, every temporary file
    is removed and the previous dataset is left untouched.
    """

    def __init__(
        self,
        output_dir: Path,
        merge: bool = True,
        batch_size: int = DEFAULT_BATCH_SIZE,
        compression: str = DEFAULT_COMPRESSION,
    ):
        self.output_dir = Path(output_dir)
        self.merge = merge
        self.batch_size = batch_size
        self.compression = compression
        self.writers: dict[str, BatchWriter] = {}
        self.carried_rows: dict[str, int] = {}
        self._stats: dict[str, int] | None = None

    def open(self) -> "DatasetWriters":
        self.output_dir.mkdir(parents=True, exist_ok=True)
        try:
            for name, spec in TABLES.items():
                final = self.output_dir / spec.filename
                writer = BatchWriter(
                    _temp_path(final), spec, self.batch_size, self.compression,
                )
                self.writers[name] = writer
                self.carried_rows[name] = 0
                if self.merge and final.exists():
                    self.carried_rows[name] = self._carry_over(final, writer)
        except Exception:
            self._discard_all()
            raise
        if any(self.carried_rows.values()):
            logger.info(
                "Merging into existing dataset at %s (%d existing rows)",
                self.output_dir, sum(self.carried_rows.values()),
            )
        return self

    def __enter__(self) -> "DatasetWriters":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
        elif self._stats is None:
            logger.warning("Rolling back uncommitted tables in %s", self.output_dir)
            self._discard_all()

    @staticmethod
    def _carry_over(path: Path, writer: BatchWriter) -> int:
        pf = pq.ParquetFile(path)
        copied = 0
        for batch in pf.iter_batches(batch_size=MERGE_CHUNK_SIZE):
            writer.write_table(pa.Table.from_batches([batch]))
            copied += batch.num_rows
        return copied

    def write_rows(self, rows: FileRows) -> None:
        """Append every row set of *rows* to its table."""
        for name, writer in self.writers.items():
            writer.write_all(getattr(rows, name))

    def close(self) -> dict[str, int]:
        """Close all writers, commit their files and return per-table row totals.

        Every writer is closed even if one of them fails.  If any writer
        aborted or could not be finalized, no table is committed and the
        first error is raised (``WriterAbortedError`` when the failure was
        already reported by a write).
        """
        if self._stats is not None:
            return self._stats
        stats: dict[str, int] = {}
        first_error: Exception | None = None
        for name, writer in self.writers.items():
            try:
                stats[name] = writer.close()
            except Exception as e:
                logger.exception("Failed to finalize table %s", name)
                if first_error is None:
                    first_error = e

        failed = [name for name, w in self.writers.items() if w.aborted or name not in stats]
        if failed:
            self._discard_all()
            logger.warning("Discarded all uncommitted tables, failed: %s", ", ".join(failed))
            if first_error is None:
                first_error = WriterAbortedError(f"tables not committed, aborted: {', '.join(failed)}")
            raise first_error

        for writer in self.writers.values():
            os.replace(writer.path, self.output_dir / writer.spec.filename)
        self._stats = stats
        logger.info(
            "Wrote %d rows across %d tables to %s",
            sum(stats.values()), len(stats), self.output_dir,
        )
        return stats

    def _discard_all(self) -> None:
        for writer in self.writers.values():
            try:
                writer.close()
            except Exception:
                logger.exception("Failed to close %s", writer.path.name)
            writer.path.unlink(missing_ok=True)
        self._stats = {}
