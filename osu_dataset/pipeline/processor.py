"""Encode one beatmap folder (a partition) into row sets and capture its assets."""

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Callable, Iterable

from osu_dataset.codec.encoder import flatten_beatmap, flatten_storyboard
from osu_dataset.parsers.osu_parser import parse_beatmap_file
from osu_dataset.parsers.storyboard_parser import parse_storyboard_file
from osu_dataset.schemas.document import Animation, Beatmap, Storyboard
from osu_dataset.schemas.rows import FileRows

logger = logging.getLogger(__name__)

BeatmapParser = Callable[[Path], Beatmap]
StoryboardParser = Callable[[Path], Storyboard]


class EmptyFolderError(ValueError):
    """A folder produced no beatmap rows."""


@dataclass
class FolderEncoding:
    folder_id: str
    rows: FileRows = field(default_factory=FileRows)
    osu_files: list[str] = field(default_factory=list)
    storyboard_files: list[str] = field(default_factory=list)
    assets: set[str] = field(default_factory=set)
    # Per-file failures; the rest of the folder is still encoded.
    errors: list[str] = field(default_factory=list)


def find_files(folder: Path, suffix: str) -> list[Path]:
    """Files directly inside *folder* with *suffix*, case-insensitive, sorted by name."""
    return sorted(
        (p for p in folder.iterdir() if p.is_file() and p.suffix.lower() == suffix),
        key=lambda p: p.name,
    )


def animation_frame_paths(path: str, frame_count: int) -> list[str]:
    """Frame files of an animation: ``sb/anim.png`` -> ``sb/anim0.png``, ``sb/anim1.png``, ..."""
    rel = PurePosixPath(path.replace("\\", "/"))
    if not rel.name:
        return []
    return [str(rel.with_name(f"{rel.stem}{i}{rel.suffix}")) for i in range(frame_count)]


def _element_assets(storyboard: Storyboard) -> set[str]:
    assets = set()
    for _, element in storyboard.iter_elements():
        if not element.path:
            continue
        assets.add(element.path)
        if isinstance(element.kind, Animation):
            assets.update(animation_frame_paths(element.path, element.kind.frame_count))
    return assets


def _flatten_storyboard_file(
    encoding: FolderEncoding,
    path: Path,
    parse_storyboard: StoryboardParser,
    is_embedded: bool,
) -> None:
    try:
        storyboard = parse_storyboard(path)
    except Exception as e:
        logger.warning("Failed to parse storyboard in %s: %s", path.name, e)
        encoding.errors.append(f"{path.name}: {e}")
        return
    if storyboard.element_count() == 0:
        return
    encoding.rows.extend(flatten_storyboard(storyboard, encoding.folder_id, path.name, is_embedded))
    encoding.storyboard_files.append(path.name)
    encoding.assets.update(_element_assets(storyboard))


def encode_folder(
    folder: Path,
    parse_beatmap: BeatmapParser = parse_beatmap_file,
    parse_storyboard: StoryboardParser = parse_storyboard_file,
) -> FolderEncoding:
    """Parse and flatten every ``.osu`` and ``.osb`` file in *folder*.

    Each ``.osu`` file contributes its beatmap rows plus, when it embeds
    one, a storyboard flattened with ``is_embedded=True``.  Standalone
    ``.osb`` files are flattened with ``is_embedded=False``.  A file that
    fails is recorded in ``errors`` and skipped.

    Raises:
        EmptyFolderError: if no ``.osu`` file yields rows.
    """
    folder = Path(folder)
    encoding = FolderEncoding(folder_id=folder.name)

    osu_paths = find_files(folder, ".osu")
    if not osu_paths:
        raise EmptyFolderError("No .osu files found")

    for osu_path in osu_paths:
        try:
            beatmap = parse_beatmap(osu_path)
            rows = flatten_beatmap(beatmap, encoding.folder_id, osu_path.name)
        except Exception as e:
            logger.warning("Skipping %s: %s", osu_path, e)
            encoding.errors.append(f"{osu_path.name}: {e}")
            continue
        encoding.rows.extend(rows)
        encoding.osu_files.append(osu_path.name)
        for name in (beatmap.audio_file, beatmap.background_file):
            if name:
                encoding.assets.add(name)
        _flatten_storyboard_file(encoding, osu_path, parse_storyboard, is_embedded=True)

    if not encoding.rows.beatmaps:
        raise EmptyFolderError("; ".join(encoding.errors) or "No readable .osu files")

    for osb_path in find_files(folder, ".osb"):
        _flatten_storyboard_file(encoding, osb_path, parse_storyboard, is_embedded=False)

    logger.debug(
        "Encoded %s: %d beatmaps, %d storyboards, %d assets",
        encoding.folder_id, len(encoding.osu_files), len(encoding.storyboard_files),
        len(encoding.assets),
    )
    return encoding


def _relative_asset(name: str) -> PurePosixPath | None:
    rel = PurePosixPath(name.replace("\\", "/").strip())
    if not rel.parts or rel.is_absolute() or ".." in rel.parts:
        return None
    return rel


def copy_assets(source_folder: Path, names: Iterable[str], dest_folder: Path) -> int:
    """Copy the named files from *source_folder* into *dest_folder*.

    Paths are taken relative to the folder, with ``\\`` separators
    normalized.  Missing files are logged and skipped, as is any file whose
    copy fails.  Returns the number of files copied.
    """
    copied = 0
    for name in sorted(set(names)):
        rel = _relative_asset(name)
        if rel is None:
            logger.warning("Ignoring asset path outside the folder: %r", name)
            continue
        src = Path(source_folder, *rel.parts)
        if not src.is_file():
            logger.warning("Missing asset %s in %s", rel, source_folder.name)
            continue
        dest = Path(dest_folder, *rel.parts)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, dest)
        except OSError:
            logger.exception("Failed to copy asset %s", src)
            continue
        copied += 1
    return copied
