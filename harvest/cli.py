import argparse, asyncio, logging, sys
from typing import List, Optional

from .adapters.base import RetryPolicy
from .config import Settings, get_settings
from .images import ImageEnricher, make_client
from .pipeline import pick_source, run_harvest
from .reconcile import reconcile_local_images
from .store import SnapshotStore, StoreError

logger = logging.getLogger("harvest")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="harvest", description="Incremental listing harvester.")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="harvest, merge, enrich new listings and save")
    run.add_argument("source", nargs="?", help="listing page URL, saved .html, or .json/.jsonl dump")
    run.add_argument("--concurrency", type=int, help="listings enriched at once")
    run.add_argument("--no-images", action="store_true", help="skip image enrichment")

    sub.add_parser("reconcile", help="point records at images already on disk")

    export = sub.add_parser("export", help="write the CSV view of the snapshot")
    export.add_argument("--out", help="CSV path (defaults to CSV_PATH)")

    for p in (run, sub.choices["reconcile"], export):
        p.add_argument("--snapshot", help="snapshot JSON path")
        p.add_argument("--images-dir", help="local image directory")
    return parser.parse_args(argv)


def _apply(settings: Settings, args: argparse.Namespace) -> Settings:
    update = {}
    for flag, field in (("snapshot", "snapshot_path"), ("images_dir", "images_dir"),
                        ("source", "source"), ("concurrency", "concurrency")):
        value = getattr(args, flag, None)
        if value is not None:
            update[field] = value
    return Settings.model_validate({**settings.model_dump(), **update}) if update else settings


def _store(settings: Settings) -> SnapshotStore:
    return SnapshotStore(settings.snapshot_path, settings.new_batch_path, settings.csv_path or None)


async def _run(settings: Settings, no_images: bool) -> int:
    store = _store(settings)
    source = pick_source(settings.source, timeout=settings.fetch_timeout)
    retry = RetryPolicy(settings.source_max_attempts, settings.source_backoff)
    if no_images:
        await run_harvest(source, store, None, settings.concurrency, retry)
        return 0
    async with make_client(timeout=settings.fetch_timeout) as client:
        enricher = ImageEnricher(settings.images_dir, client, max_size=settings.image_max_size,
                                 quality=settings.image_quality, sharpen=settings.image_sharpen,
                                 delay=settings.image_delay)
        await run_harvest(source, store, enricher, settings.concurrency, retry)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        settings = _apply(get_settings(), args)
    except (RuntimeError, ValueError) as e:
        print(f"[INIT] {e}", file=sys.stderr)
        return 2
    logging.basicConfig(level=settings.log_level.upper(),
                        format="%(asctime)s %(levelname)-7s %(name)s %(message)s")

    try:
        if args.command == "run":
            if not settings.source:
                logger.error("[INIT] no source given (argument or HARVEST_SOURCE)")
                return 2
            return asyncio.run(_run(settings, args.no_images))

        store = _store(settings)
        snapshot = store.load()
        if args.command == "reconcile":
            snapshot, changed = reconcile_local_images(snapshot, settings.images_dir)
            if changed:
                store.checkpoint(snapshot)
        elif args.command == "export":
            store.export_csv(snapshot.values(), args.out or settings.csv_path or "ads.csv")
    except StoreError as e:
        logger.error("[STORE] %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
