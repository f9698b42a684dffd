"""Dataset I/O tuning: batch, chunk and compression settings in one dataclass."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path

from osu_dataset.storage.reader import DEFAULT_CHUNK_SIZE
from osu_dataset.storage.writer import DEFAULT_BATCH_SIZE, DEFAULT_COMPRESSION


@dataclass
class DatasetConfig:
    """Settings shared by the build and reconstruct pipelines."""

    # Rows buffered per table before a row group is written
    batch_size: int = DEFAULT_BATCH_SIZE
    # Rows per record batch when streaming a table back in
    chunk_size: int = DEFAULT_CHUNK_SIZE
    compression: str = DEFAULT_COMPRESSION

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {self.batch_size}")
        if self.chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")

    def save(self, path: Path) -> None:
        """Save config to JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(asdict(self), indent=2), encoding="utf-8")

    @classmethod
    def load(cls, path: Path) -> DatasetConfig:
        """Load config from JSON file, ignoring unknown keys."""
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})
