"""Reassemble beatmap folders from a dataset."""

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from osu_dataset.codec.beatmap import reconstruct_beatmap
from osu_dataset.codec.storyboard import reconstruct_storyboard
from osu_dataset.config import DatasetConfig
from osu_dataset.exporters.osb_writer import write_storyboard
from osu_dataset.exporters.osu_writer import write_beatmap
from osu_dataset.schemas.document import ElementType
from osu_dataset.schemas.rows import FileRows
from osu_dataset.storage.reader import DatasetReader

logger = logging.getLogger(__name__)

_VISUAL_TYPES = (ElementType.SPRITE.value, ElementType.ANIMATION.value)


def _visual_count(rows: FileRows) -> int:
    """Elements the .osb writer emits; samples and videos are stored only."""
    return sum(1 for r in rows.storyboard_elements if r.element_type in _VISUAL_TYPES)


@dataclass
class ReconstructConfig:
    dataset_dir: Path = Path("data/dataset")
    output_dir: Path = Path("data/reconstructed")
    # Defaults to <dataset_dir>/assets
    assets_dir: Path | None = None
    folder_ids: list[str] = field(default_factory=list)
    limit: int | None = None
    dataset: DatasetConfig = field(default_factory=DatasetConfig)


@dataclass
class FolderResult:
    folder_id: str
    output_path: Path
    osu_files: list[str] = field(default_factory=list)
    storyboard_elements: int = 0
    assets_copied: int = 0
    # Files (or the whole folder) that could not be written
    errors: list[str] = field(default_factory=list)
    # Rows skipped inside files that were written
    issues: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass
class ReconstructResult:
    folders: list[FolderResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for f in self.folders if f.ok)

    @property
    def failed(self) -> int:
        return sum(1 for f in self.folders if not f.ok)


class FolderAssembler:
    """Write the ``.osu`` / ``.osb`` files and assets of one partition.

    Failures are isolated per file: a file that cannot be rebuilt is
    recorded in ``FolderResult.errors`` and the remaining files are still
    written.
    """

    def __init__(self, assets_dir: Path | None = None):
        self.assets_dir = Path(assets_dir) if assets_dir is not None else None

    def assemble(self, folder_id: str, rows: FileRows, output_dir: Path) -> FolderResult:
        folder_output = Path(output_dir) / folder_id
        folder_output.mkdir(parents=True, exist_ok=True)
        result = FolderResult(folder_id=folder_id, output_path=folder_output)

        beatmap_rows = sorted(rows.beatmaps, key=lambda r: r.osu_file)
        for beatmap_row in beatmap_rows:
            osu_file = beatmap_row.osu_file
            try:
                self._write_beatmap(rows, osu_file, folder_output, result)
            except Exception as e:
                logger.exception("Failed to rebuild %s/%s", folder_id, osu_file)
                result.errors.append(f"{osu_file}: {e}")

        for source_file in rows.storyboard_sources(is_embedded=False):
            try:
                self._write_standalone_storyboard(rows, source_file, folder_output, result)
            except Exception as e:
                logger.exception("Failed to rebuild %s/%s", folder_id, source_file)
                result.errors.append(f"{source_file}: {e}")

        if self.assets_dir is not None:
            source = self.assets_dir / folder_id
            if source.is_dir():
                result.assets_copied = self._copy_tree(source, folder_output)
            if beatmap_rows:
                self._copy_audio(source, beatmap_rows[0].audio_file, folder_output)

        return result

    def _write_beatmap(self, rows: FileRows, osu_file: str, folder_output: Path, result: FolderResult) -> None:
        recon = reconstruct_beatmap(rows.for_beatmap(osu_file))
        write_beatmap(recon.beatmap, folder_output / osu_file)
        result.osu_files.append(osu_file)
        result.issues.extend(f"{osu_file}: {issue}" for issue in recon.issues)

        embedded = rows.for_storyboard(osu_file, is_embedded=True)
        visual = _visual_count(embedded)
        if not visual:
            return
        storyboard, issues = reconstruct_storyboard(embedded)
        osb_name = f"{Path(osu_file).stem}.osb"
        write_storyboard(storyboard, folder_output / osb_name)
        result.storyboard_elements += visual
        result.issues.extend(f"{osb_name}: {issue}" for issue in issues)

    def _write_standalone_storyboard(
        self, rows: FileRows, source_file: str, folder_output: Path, result: FolderResult,
    ) -> None:
        sb_rows = rows.for_storyboard(source_file, is_embedded=False)
        visual = _visual_count(sb_rows)
        # Scripts holding only samples or videos are not written.
        if not visual:
            return
        storyboard, issues = reconstruct_storyboard(sb_rows)
        write_storyboard(storyboard, folder_output / source_file)
        result.storyboard_elements += visual
        result.issues.extend(f"{source_file}: {issue}" for issue in issues)

    @staticmethod
    def _copy_tree(source: Path, dest: Path) -> int:
        count = 0
        for path in sorted(source.rglob("*")):
            if not path.is_file():
                continue
            target = dest / path.relative_to(source)
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(path, target)
            except OSError:
                logger.exception("Failed to copy asset %s", path)
                continue
            count += 1
        return count

    @staticmethod
    def _copy_audio(source: Path, audio_file: str, dest: Path) -> None:
        if not audio_file:
            return
        src = source / audio_file
        target = dest / audio_file
        if not src.is_file():
            logger.warning("Audio file %s not found in %s", audio_file, source)
            return
        if target.exists():
            return
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, target)
        except OSError:
            logger.exception("Failed to copy audio %s", src)


def select_folder_ids(reader: DatasetReader, config: ReconstructConfig) -> list[str]:
    if config.folder_ids:
        return list(config.folder_ids)
    ids = reader.load_folder_ids()
    logger.info("Found %d folders in %s", len(ids), reader.dataset_dir)
    if config.limit is not None:
        ids = ids[: config.limit]
    return ids


def reconstruct_dataset(config: ReconstructConfig) -> ReconstructResult:
    """Rebuild every selected folder; one folder's failure does not stop the rest."""
    reader = DatasetReader(config.dataset_dir, config.dataset.chunk_size)
    assets_dir = config.assets_dir or Path(config.dataset_dir) / "assets"
    assembler = FolderAssembler(assets_dir)
    output_dir = Path(config.output_dir)
    result = ReconstructResult()

    folder_ids = select_folder_ids(reader, config)
    logger.info("Reconstructing %d folder(s)...", len(folder_ids))
    for folder_id in folder_ids:
        try:
            rows = reader.load_folder(folder_id)
            if not rows.beatmaps:
                raise LookupError(f"folder {folder_id!r} not found in dataset")
            folder_result = assembler.assemble(folder_id, rows, output_dir)
        except Exception as e:
            logger.exception("Failed to reconstruct %s", folder_id)
            folder_result = FolderResult(folder_id, output_dir / folder_id, errors=[str(e)])
        result.folders.append(folder_result)

    logger.info(
        "Reconstruction complete: %d succeeded, %d failed",
        result.succeeded, result.failed,
    )
    return result
