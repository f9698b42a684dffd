"""Command-line interface for the osu! dataset tools."""

import argparse
import logging
import signal
from pathlib import Path


def _load_dataset_config(args: argparse.Namespace):
    from osu_dataset.config import DatasetConfig

    if getattr(args, "config", None):
        return DatasetConfig.load(Path(args.config))
    return DatasetConfig()


def cmd_build(args: argparse.Namespace) -> int:
    from osu_dataset.pipeline.batch import BuildConfig, CancellationToken, run_build

    config = BuildConfig(
        input_dir=Path(args.input),
        output_dir=Path(args.output),
        force=args.force,
        sample=args.sample,
        seed=args.seed,
        copy_assets=not args.no_assets,
        dataset=_load_dataset_config(args),
    )

    # First Ctrl+C stops after the current folder; the second one aborts.
    token = CancellationToken()
    previous = signal.getsignal(signal.SIGINT)

    def _on_interrupt(signum, frame):
        print("\nInterrupted, finishing current folder (Ctrl+C again to abort)...")
        token.cancel()
        signal.signal(signal.SIGINT, previous)

    signal.signal(signal.SIGINT, _on_interrupt)
    try:
        result = run_build(config, token)
    finally:
        signal.signal(signal.SIGINT, previous)

    total_rows = sum(result.row_counts.values())
    status = " (rolled back)" if result.rolled_back else " (cancelled)" if result.cancelled else ""
    print(
        f"Done{status}: {result.processed} folders processed, {result.failed} failed, "
        f"{result.skipped_existing + result.skipped_failed} skipped, "
        f"{total_rows} rows in {args.output}"
    )
    for err in result.errors:
        print(f"  {err}")
    return 1 if result.cancelled or result.rolled_back else 0


def cmd_reconstruct(args: argparse.Namespace) -> int:
    from osu_dataset.pipeline.reconstruct import ReconstructConfig, reconstruct_dataset

    config = ReconstructConfig(
        dataset_dir=Path(args.dataset),
        output_dir=Path(args.output),
        assets_dir=Path(args.assets) if args.assets else None,
        folder_ids=list(args.folder_id or []),
        limit=args.limit,
        dataset=_load_dataset_config(args),
    )
    result = reconstruct_dataset(config)

    for folder in result.folders:
        if folder.ok:
            print(
                f"  {folder.folder_id}: {len(folder.osu_files)} beatmaps, "
                f"{folder.storyboard_elements} storyboard elements, "
                f"{folder.assets_copied} assets"
            )
        else:
            print(f"  {folder.folder_id}: FAILED ({'; '.join(folder.errors)})")
    print(f"Reconstructed {result.succeeded} folders to {args.output} ({result.failed} failed)")
    return 1 if result.failed else 0


def cmd_list_folders(args: argparse.Namespace) -> int:
    from osu_dataset.storage.reader import DatasetReader

    folder_ids = DatasetReader(Path(args.dataset)).load_folder_ids()
    for folder_id in folder_ids:
        print(folder_id)
    print(f"{len(folder_ids)} folders in {args.dataset}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="osu-dataset",
        description="Convert osu! beatmap folders to Parquet tables and back",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )
    sub = parser.add_subparsers(dest="command")

    # build
    bd = sub.add_parser("build", help="Encode beatmap folders into a dataset")
    bd.add_argument("--input", default="data/songs", help="Directory of beatmap folders")
    bd.add_argument("--output", default="data/dataset", help="Dataset directory")
    bd.add_argument("--force", action="store_true",
                    help="Rebuild from scratch, ignoring existing rows and failures")
    bd.add_argument("--sample", type=int, default=None,
                    help="Process only N randomly chosen new folders")
    bd.add_argument("--seed", type=int, default=None, help="Random seed for --sample")
    bd.add_argument("--no-assets", action="store_true", help="Do not copy referenced assets")
    bd.add_argument("--config", default=None, help="Optional JSON dataset config")

    # reconstruct
    rc = sub.add_parser("reconstruct", help="Rebuild beatmap folders from a dataset")
    rc.add_argument("--dataset", default="data/dataset", help="Dataset directory")
    rc.add_argument("--output", default="data/reconstructed", help="Output directory")
    rc.add_argument("--assets", default=None,
                    help="Assets directory (default: <dataset>/assets)")
    rc.add_argument("--folder-id", action="append", default=None,
                    help="Rebuild only this folder (repeatable)")
    rc.add_argument("--limit", type=int, default=None, help="Rebuild at most N folders")
    rc.add_argument("--config", default=None, help="Optional JSON dataset config")

    # list-folders
    ls = sub.add_parser("list-folders", help="List folder ids stored in a dataset")
    ls.add_argument("--dataset", default="data/dataset", help="Dataset directory")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    commands = {
        "build": cmd_build,
        "reconstruct": cmd_reconstruct,
        "list-folders": cmd_list_folders,
    }

    handler = commands.get(args.command)
    if handler:
        return handler(args)
    parser.print_help()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
