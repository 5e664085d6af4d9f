import logging, re
from pathlib import Path
from typing import Dict, Tuple

from .images import EXT
from .merge import Snapshot
from .normalizer import record_dir_name

logger = logging.getLogger(__name__)

EXTRA_RE = re.compile(r"^extra_(\d+)\." + EXT + r"$")


def reconcile_local_images(snapshot: Snapshot, images_dir) -> Tuple[Snapshot, int]:
    """
    Point records at images already sitting in ``images_dir``.

    Useful after a run died mid-way or the snapshot was restored from an
    older copy. Fills a missing main image and rebuilds the extras list from
    ``extra_<n>`` files; existing values are never cleared.
    """
    root = Path(images_dir)
    out: Snapshot = {}
    changed = 0
    for key, rec in snapshot.items():
        folder = root / record_dir_name(key)
        if not folder.is_dir():
            out[key] = rec
            continue

        update: Dict = {}
        main = folder / f"main.{EXT}"
        if not rec.main_image_local and main.is_file():
            update["main_image_local"] = main.as_posix()

        extras = []
        for f in folder.iterdir():
            m = EXTRA_RE.match(f.name)
            if m and 1 <= int(m.group(1)) <= len(rec.other_images):
                extras.append((int(m.group(1)), f.as_posix()))
        if len(extras) > len(rec.other_images_local):
            update["other_images_local"] = [p for _, p in sorted(extras)]

        if update:
            changed += 1
            rec = rec.model_copy(update=update)
        out[key] = rec

    logger.info("[RECONCILE] %d of %d record(s) updated from %s", changed, len(snapshot), root)
    return out, changed
