"""Build (or extend) a dataset from a directory of beatmap folders."""

import logging
import random
import threading
from dataclasses import dataclass, field
from pathlib import Path

from osu_dataset.config import DatasetConfig
from osu_dataset.parsers.osu_parser import parse_beatmap_file
from osu_dataset.parsers.storyboard_parser import parse_storyboard_file
from osu_dataset.pipeline.ledger import LEDGER_FILENAME, FailureLedger
from osu_dataset.pipeline.processor import (
    BeatmapParser,
    StoryboardParser,
    copy_assets,
    encode_folder,
)
from osu_dataset.storage.reader import DatasetReader
from osu_dataset.storage.writer import DatasetWriters

logger = logging.getLogger(__name__)

ASSETS_DIRNAME = "assets"


class CancellationToken:
    """Cooperative stop request, checked between folders."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class BuildConfig:
    input_dir: Path = Path("data/songs")
    output_dir: Path = Path("data/dataset")
    # Rebuild from scratch instead of extending the existing dataset
    force: bool = False
    # Process only this many randomly chosen new folders
    sample: int | None = None
    seed: int | None = None
    copy_assets: bool = True
    dataset: DatasetConfig = field(default_factory=DatasetConfig)


@dataclass
class BuildResult:
    processed: int = 0
    skipped_existing: int = 0
    skipped_failed: int = 0
    failed: int = 0
    assets_copied: int = 0
    cancelled: bool = False
    # A table write failed and nothing from this run was committed
    rolled_back: bool = False
    row_counts: dict[str, int] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)


def discover_folders(input_dir: Path) -> list[Path]:
    return sorted((p for p in Path(input_dir).iterdir() if p.is_dir()), key=lambda p: p.name)


def run_build(
    config: BuildConfig,
    token: CancellationToken | None = None,
    parse_beatmap: BeatmapParser = parse_beatmap_file,
    parse_storyboard: StoryboardParser = parse_storyboard_file,
) -> BuildResult:
    """Encode every new folder under ``input_dir`` into the dataset.

    Folders already present in the dataset, and folders listed in the
    failure ledger, are skipped unless ``force`` is set.  Without ``force``
    the existing table rows are kept and new rows are appended; with it the
    tables and the ledger start empty.

    The token is checked before each folder.  Whatever way the loop ends,
    all table writers are flushed and closed.  If a table write fails, the
    whole run is rolled back: the previous dataset stays as it was, the
    folder being written goes to the failure ledger and ``rolled_back`` is
    set.  Assets are copied only for committed folders.
    """
    token = token or CancellationToken()
    result = BuildResult()
    output_dir = Path(config.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    assets_dir = output_dir / ASSETS_DIRNAME

    ledger = FailureLedger(output_dir / LEDGER_FILENAME)
    if config.force:
        existing: set[str] = set()
        ledger.clear()
    else:
        existing = set(DatasetReader(output_dir, config.dataset.chunk_size).load_folder_ids())
        if existing:
            logger.info("Found %d already processed folders (use --force to rebuild)", len(existing))
        if len(ledger):
            logger.info("Skipping %d permanently failed folders", len(ledger))

    folders = []
    for folder in discover_folders(config.input_dir):
        if folder.name in existing:
            result.skipped_existing += 1
        elif folder.name in ledger:
            result.skipped_failed += 1
        else:
            folders.append(folder)

    if config.sample is not None and config.sample < len(folders):
        rng = random.Random(config.seed)
        folders = sorted(rng.sample(folders, config.sample), key=lambda p: p.name)
        logger.info("Sample mode: processing %d random folders", len(folders))

    logger.info("Found %d new beatmap folders to process", len(folders))

    pending_assets: list[tuple[Path, set[str], str]] = []
    writing: str | None = None
    try:
        with DatasetWriters(
            output_dir,
            merge=not config.force,
            batch_size=config.dataset.batch_size,
            compression=config.dataset.compression,
        ) as writers:
            for i, folder in enumerate(folders, start=1):
                if token.cancelled:
                    logger.info("Cancellation requested, stopping after %d folders", i - 1)
                    result.cancelled = True
                    break
                try:
                    encoding = encode_folder(folder, parse_beatmap, parse_storyboard)
                except Exception as e:
                    logger.exception("Failed to process %s", folder)
                    ledger.record(folder.name, str(e))
                    result.failed += 1
                    result.errors.append(f"{folder.name}: {e}")
                    continue

                writing = folder.name
                writers.write_rows(encoding.rows)
                writing = None
                result.processed += 1
                result.errors.extend(f"{folder.name}/{err}" for err in encoding.errors)
                pending_assets.append((folder, encoding.assets, encoding.folder_id))
                logger.debug("[%d/%d] %s", i, len(folders), folder.name)
        result.row_counts = writers.close()
    except Exception as e:
        # Nothing from this run was committed; the previous dataset is intact.
        logger.exception("Dataset write failed, keeping the previous dataset")
        result.rolled_back = True
        result.processed = 0
        pending_assets = []
        if writing is not None:
            ledger.record(writing, f"table write failed: {e}")
            result.failed += 1
            result.errors.append(f"{writing}: table write failed: {e}")
        else:
            result.errors.append(f"dataset write failed: {e}")
    finally:
        ledger.save()

    if config.copy_assets:
        for folder, assets, folder_id in pending_assets:
            result.assets_copied += copy_assets(folder, assets, assets_dir / folder_id)

    logger.info(
        "Build complete: %d processed, %d failed, %d skipped%s",
        result.processed,
        result.failed,
        result.skipped_existing + result.skipped_failed,
        " (rolled back)" if result.rolled_back else " (cancelled)" if result.cancelled else "",
    )
    return result
