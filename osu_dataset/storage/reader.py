"""Partition-scoped streaming reads over the dataset's Parquet tables.

Each table file is read in fixed-size record batches.  Every batch is
filtered against the requested ``folder_id`` before anything is kept, so peak
memory is one unfiltered batch plus the rows of the requested partition,
independent of the size of the whole dataset.
"""

import logging
from pathlib import Path
from typing import Iterator

import pyarrow as pa
import pyarrow.compute as pc
import pyarrow.parquet as pq

from osu_dataset.schemas.rows import FileRows
from osu_dataset.storage.tables import PARTITION_COLUMN, TABLES, TableSpec

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 8192


class SchemaError(ValueError):
    """A table file lacks an expected column or stores it with another type."""


class DatasetReader:
    """Read rows of one partition (``folder_id``) from a dataset directory.

    Example::

        reader = DatasetReader("dataset/")
        for folder_id in reader.load_folder_ids():
            rows = reader.load_folder(folder_id)
    """

    def __init__(self, dataset_dir: Path, chunk_size: int = DEFAULT_CHUNK_SIZE):
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self.dataset_dir = Path(dataset_dir)
        self.chunk_size = chunk_size

    def table_path(self, name: str) -> Path:
        return self.dataset_dir / TABLES[name].filename

    def _open(self, spec: TableSpec, columns: list[str]) -> pq.ParquetFile:
        path = self.dataset_dir / spec.filename
        if not path.exists():
            raise FileNotFoundError(f"table file not found: {path}")
        pf = pq.ParquetFile(path)
        file_schema = pf.schema_arrow
        for name in columns:
            expected = spec.schema.field(name).type
            idx = file_schema.get_field_index(name)
            if idx < 0:
                raise SchemaError(f"{path.name}: missing column {name!r}")
            actual = file_schema.field(idx).type
            if actual != expected:
                raise SchemaError(
                    f"{path.name}: column {name!r} has type {actual}, expected {expected}"
                )
        return pf

    def iter_chunks(self, name: str, columns: list[str] | None = None) -> Iterator[pa.RecordBatch]:
        """Yield the raw record batches of table *name*, *chunk_size* rows at a time."""
        spec = TABLES[name]
        columns = columns or spec.schema.names
        pf = self._open(spec, columns)
        yield from pf.iter_batches(batch_size=self.chunk_size, columns=columns)

    def load_folder_ids(self) -> list[str]:
        """Return the sorted distinct ``folder_id`` values of the beatmaps table.

        Only the partition column is read.  A dataset without a beatmaps
        table yet contains no partitions.
        """
        if not self.table_path("beatmaps").exists():
            return []
        ids: set[str] = set()
        for batch in self.iter_chunks("beatmaps", columns=[PARTITION_COLUMN]):
            column = batch.column(0)
            ids.update(v for v in column.to_pylist() if v is not None)
        return sorted(ids)

    def read_table_filtered(self, name: str, folder_id: str) -> pa.Table:
        """Return the rows of table *name* whose ``folder_id`` equals *folder_id*."""
        spec = TABLES[name]
        target = pa.scalar(folder_id, pa.string())
        kept: list[pa.RecordBatch] = []
        scanned = 0
        for batch in self.iter_chunks(name):
            scanned += batch.num_rows
            mask = pc.equal(batch.column(PARTITION_COLUMN), target)
            reduced = batch.filter(mask)
            if reduced.num_rows > 0:
                kept.append(reduced)
        logger.debug(
            "%s: kept %d of %d rows for folder %s",
            spec.filename, sum(b.num_rows for b in kept), scanned, folder_id,
        )
        if not kept:
            return spec.schema.empty_table()
        return pa.Table.from_batches(kept)

    def load_rows(self, name: str, folder_id: str) -> list:
        """Return the rows of table *name* for *folder_id* as row dataclasses."""
        row_type = TABLES[name].row_type
        return [row_type(**d) for d in self.read_table_filtered(name, folder_id).to_pylist()]

    def load_folder(self, folder_id: str) -> FileRows:
        """Load all twelve row sets of one partition.

        Raises:
            SchemaError: if any table is missing a column or has a mistyped one.
            FileNotFoundError: if a table file does not exist.
        """
        return FileRows(**{name: self.load_rows(name, folder_id) for name in TABLES})
