"""Tests for the batched Parquet sinks: row groups, merging and aborts."""

import pyarrow as pa
import pyarrow.parquet as pq
import pytest

from osu_dataset.codec.encoder import flatten_beatmap
from osu_dataset.schemas.document import Beatmap, HitCircle, HitObject, Pos
from osu_dataset.schemas.rows import BreakRow, FileRows, HitObjectRow
from osu_dataset.storage.tables import TABLES
from osu_dataset.storage.writer import BatchWriter, DatasetWriters, WriterAbortedError


def _make_rows(folder_id: str, n_objects: int = 3, osu_file: str = "a.osu") -> FileRows:
    """Flattened rows of a beatmap with *n_objects* circles."""
    beatmap = Beatmap(
        audio_file="audio.mp3",
        hit_objects=[
            HitObject(float(i * 100), HitCircle(Pos(float(i), float(i))))
            for i in range(n_objects)
        ],
    )
    return flatten_beatmap(beatmap, folder_id, osu_file)


def _folder_ids(path) -> list[str]:
    return sorted(pq.read_table(path, columns=["folder_id"]).column(0).to_pylist())


class TestBatchWriter:
    def test_row_groups_follow_batch_size(self, tmp_path):
        path = tmp_path / "breaks.parquet"
        writer = BatchWriter(path, TABLES["breaks"], batch_size=2)
        writer.write_all(BreakRow("f", "a.osu", float(i), float(i + 1)) for i in range(5))
        assert writer.close() == 5

        pf = pq.ParquetFile(path)
        assert pf.metadata.num_rows == 5
        assert pf.metadata.num_row_groups == 3

    def test_empty_flush_is_noop(self, tmp_path):
        path = tmp_path / "breaks.parquet"
        writer = BatchWriter(path, TABLES["breaks"])
        writer.flush()
        assert writer.close() == 0
        table = pq.read_table(path)
        assert table.num_rows == 0
        assert table.schema.names == TABLES["breaks"].schema.names

    def test_schema_types(self, tmp_path):
        path = tmp_path / "hit_objects.parquet"
        writer = BatchWriter(path, TABLES["hit_objects"])
        writer.write(HitObjectRow("f", "a.osu", 0, 10.0, "circle", 1, 2, True, 0))
        writer.close()
        schema = pq.read_schema(path)
        assert schema.field("pos_x").type == pa.int32()
        assert schema.field("start_time").type == pa.float64()
        assert schema.field("curve_type").type == pa.string()

    def test_conversion_error_aborts(self, tmp_path):
        writer = BatchWriter(tmp_path / "breaks.parquet", TABLES["breaks"], batch_size=1)
        with pytest.raises((pa.ArrowInvalid, pa.ArrowTypeError)):
            writer.write(BreakRow("f", "a.osu", "soon", 1.0))
        assert writer.aborted
        with pytest.raises(WriterAbortedError):
            writer.write(BreakRow("f", "a.osu", 0.0, 1.0))
        writer.close()
        assert writer.closed

    def test_invalid_batch_size(self, tmp_path):
        with pytest.raises(ValueError):
            BatchWriter(tmp_path / "breaks.parquet", TABLES["breaks"], batch_size=0)

    def test_close_twice(self, tmp_path):
        writer = BatchWriter(tmp_path / "breaks.parquet", TABLES["breaks"])
        writer.write(BreakRow("f", "a.osu", 0.0, 1.0))
        assert writer.close() == 1
        assert writer.close() == 1


class TestDatasetWriters:
    def test_writes_all_twelve_tables(self, tmp_path):
        with DatasetWriters(tmp_path) as writers:
            writers.write_rows(_make_rows("A"))
        stats = writers.close()
        assert stats["beatmaps"] == 1
        assert stats["hit_objects"] == 3
        for spec in TABLES.values():
            assert (tmp_path / spec.filename).exists()
        # Temp files are committed.
        assert not list(tmp_path.glob(".*.tmp"))

    def test_merge_appends_to_existing(self, tmp_path):
        with DatasetWriters(tmp_path) as writers:
            writers.write_rows(_make_rows("A"))
        with DatasetWriters(tmp_path, merge=True) as writers:
            writers.write_rows(_make_rows("B", n_objects=2))
        stats = writers.close()

        assert writers.carried_rows["hit_objects"] == 3
        assert stats["hit_objects"] == 5
        assert _folder_ids(tmp_path / "beatmaps.parquet") == ["A", "B"]

    def test_merge_in_small_chunks(self, tmp_path, monkeypatch):
        monkeypatch.setattr("osu_dataset.storage.writer.MERGE_CHUNK_SIZE", 2)
        with DatasetWriters(tmp_path) as writers:
            writers.write_rows(_make_rows("A", n_objects=7))
        with DatasetWriters(tmp_path) as writers:
            writers.write_rows(_make_rows("B", n_objects=1))
        assert pq.ParquetFile(tmp_path / "hit_objects.parquet").metadata.num_rows == 8

    def test_no_merge_rewrites(self, tmp_path):
        with DatasetWriters(tmp_path) as writers:
            writers.write_rows(_make_rows("A"))
        with DatasetWriters(tmp_path, merge=False) as writers:
            writers.write_rows(_make_rows("B"))
        assert _folder_ids(tmp_path / "beatmaps.parquet") == ["B"]

    def test_failed_table_rolls_back_every_table(self, tmp_path):
        with DatasetWriters(tmp_path) as writers:
            writers.write_rows(_make_rows("A"))

        bad = _make_rows("B")
        bad.breaks.append(BreakRow("B", "a.osu", "later", 1.0))
        with pytest.raises((pa.ArrowInvalid, pa.ArrowTypeError)):
            with DatasetWriters(tmp_path, batch_size=1) as writers:
                writers.write_rows(bad)

        assert _folder_ids(tmp_path / "beatmaps.parquet") == ["A"]
        assert _folder_ids(tmp_path / "hit_objects.parquet") == ["A", "A", "A"]
        for spec in TABLES.values():
            assert (tmp_path / spec.filename).exists()
        assert not list(tmp_path.glob(".*.tmp"))

    def test_failed_first_run_writes_nothing(self, tmp_path):
        bad = _make_rows("A")
        bad.breaks.append(BreakRow("A", "a.osu", "later", 1.0))
        with pytest.raises((pa.ArrowInvalid, pa.ArrowTypeError)):
            with DatasetWriters(tmp_path, batch_size=1) as writers:
                writers.write_rows(bad)
        assert not list(tmp_path.iterdir())

    def test_close_after_abort_commits_nothing(self, tmp_path):
        with DatasetWriters(tmp_path) as writers:
            writers.write_rows(_make_rows("A"))

        writers = DatasetWriters(tmp_path, batch_size=1).open()
        writers.write_rows(_make_rows("B"))
        with pytest.raises((pa.ArrowInvalid, pa.ArrowTypeError)):
            writers.write_rows(FileRows(breaks=[BreakRow("C", "a.osu", "later", 1.0)]))
        with pytest.raises(WriterAbortedError):
            writers.close()

        assert _folder_ids(tmp_path / "beatmaps.parquet") == ["A"]
        assert not list(tmp_path.glob(".*.tmp"))

    def test_close_is_cached(self, tmp_path):
        writers = DatasetWriters(tmp_path).open()
        writers.write_rows(_make_rows("A"))
        first = writers.close()
        assert writers.close() is first
