"""
JSON snapshot store.

The primary file holds every known record as a JSON array; the new-batch
file holds only the records first seen by the latest run. Loading never
fails a run, saving always raises on failure.
"""
import csv, io, logging
from pathlib import Path
from typing import Iterable, List, Optional

import orjson
from pydantic import ValidationError

from .cache import dump_json, load_json, write_atomic
from .merge import Snapshot
from .schema import Record

logger = logging.getLogger(__name__)

CSV_COLUMNS = ["title", "price", "link", "main_image", "main_image_local",
               "other_images", "description", "location"]


class StoreError(Exception):
    pass


def to_csv(records: Iterable[Record]) -> str:
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=CSV_COLUMNS, extrasaction="ignore")
    writer.writeheader()
    for rec in records:
        row = rec.to_json()
        row["other_images"] = " | ".join(rec.other_images)
        row["main_image_local"] = rec.main_image_local or ""
        writer.writerow(row)
    return buf.getvalue()


class SnapshotStore:
    def __init__(self, snapshot_path, new_batch_path, csv_path=None):
        self.snapshot_path = Path(snapshot_path)
        self.new_batch_path = Path(new_batch_path)
        self.csv_path = Path(csv_path) if csv_path else None

    def load(self) -> Snapshot:
        try:
            rows = load_json(self.snapshot_path)
        except (OSError, orjson.JSONDecodeError) as e:
            logger.error("[STORE] cannot read %s, starting empty: %s", self.snapshot_path, e)
            return {}
        if rows is None:
            logger.info("[STORE] no snapshot at %s, starting empty", self.snapshot_path)
            return {}
        if not isinstance(rows, list):
            logger.error("[STORE] %s is not a JSON array, starting empty", self.snapshot_path)
            return {}

        snap: Snapshot = {}
        for i, row in enumerate(rows):
            try:
                rec = Record.model_validate(row)
            except ValidationError as e:
                logger.warning("[STORE] skipping malformed row %d: %s", i, e.errors()[0].get("msg"))
                continue
            if not rec.identity_key:
                logger.warning("[STORE] skipping row %d without identity", i)
                continue
            snap[rec.identity_key] = rec
        logger.info("[STORE] loaded %d record(s) from %s", len(snap), self.snapshot_path)
        return snap

    def checkpoint(self, snapshot: Snapshot):
        self._write_snapshot(snapshot)

    def save(self, snapshot: Snapshot, new_batch: List[Record]):
        self._write_snapshot(snapshot)
        if new_batch:
            try:
                dump_json(self.new_batch_path, [r.to_json() for r in new_batch])
            except (OSError, TypeError) as e:
                raise StoreError(f"failed to write {self.new_batch_path}: {e}") from e
            logger.info("[STORE] %d new record(s) → %s", len(new_batch), self.new_batch_path)
        if self.csv_path:
            # the CSV is only a view; the JSON files above are what count
            try:
                self.export_csv(snapshot.values())
            except StoreError as e:
                logger.error("[STORE] CSV view not written: %s", e)

    def export_csv(self, records: Iterable[Record], path: Optional[Path] = None):
        target = Path(path) if path else self.csv_path
        if target is None:
            raise ValueError("no csv path configured")
        try:
            write_atomic(target, to_csv(records).encode("utf-8"))
        except OSError as e:
            raise StoreError(f"failed to write {target}: {e}") from e

    def _write_snapshot(self, snapshot: Snapshot):
        try:
            dump_json(self.snapshot_path, [r.to_json() for r in snapshot.values()])
        except (OSError, TypeError) as e:
            raise StoreError(f"failed to write {self.snapshot_path}: {e}") from e
        logger.info("[STORE] %d record(s) → %s", len(snapshot), self.snapshot_path)
