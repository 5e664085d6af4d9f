import logging
from typing import Dict, Iterable, List, Mapping, NamedTuple
from .schema import Record, admit

logger = logging.getLogger(__name__)

Snapshot = Dict[str, Record]


class MergeResult(NamedTuple):
    merged: Snapshot
    new_batch: List[Record]
    admitted: int


def snapshot_of(records: Iterable[Record]) -> Snapshot:
    snap: Snapshot = {}
    for rec in records:
        key = rec.identity_key
        if key:
            snap[key] = rec
    return snap


def carry_forward(prior: Record, incoming: Record) -> Record:
    """
    Keep local image fields a re-harvested record does not bring along.

    A re-scrape that skipped enrichment must not forget images that are
    already on disk.
    """
    update = {}
    if not incoming.main_image_local and prior.main_image_local:
        update["main_image_local"] = prior.main_image_local
    if not incoming.other_images_local and prior.other_images_local:
        update["other_images_local"] = prior.other_images_local[:len(incoming.other_images)]
    return incoming.model_copy(update=update) if update else incoming


def merge(prior: Mapping[str, Record], harvested: Iterable) -> MergeResult:
    """
    Fold a fresh harvest into the prior snapshot.

    Additive only: every prior identity survives. Harvested duplicates
    collapse to their first occurrence, and a harvested record replaces the
    prior one with the same identity (keeping its slot) via carry_forward.
    """
    merged: Snapshot = snapshot_of(prior.values())
    known = set(merged)
    seen = set()
    new_batch: List[Record] = []
    admitted = 0

    for raw in harvested:
        rec = admit(raw)
        if rec is None:
            continue
        admitted += 1
        key = rec.identity_key
        if key in seen:
            continue
        seen.add(key)
        if key in known:
            merged[key] = carry_forward(merged[key], rec)
        else:
            merged[key] = rec
            new_batch.append(rec)

    logger.info("[MERGE] admitted=%d new=%d total=%d", admitted, len(new_batch), len(merged))
    return MergeResult(merged, new_batch, admitted)


def fold(snapshot: Mapping[str, Record], records: Iterable[Record]) -> Snapshot:
    out: Snapshot = dict(snapshot)
    for rec in records:
        out[rec.identity_key] = rec
    return out
