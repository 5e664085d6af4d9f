"""
One harvest run: harvest → merge → chunked image enrichment → persist.

Only a failed save stops a run; a dead listing source just means nothing
new this time, and failed images just mean fewer local copies.
"""
import logging
from dataclasses import asdict, dataclass
from typing import List, Optional

from .adapters.base import ListingSource, RetryPolicy, fetch_with_retry
from .adapters.html_source import HtmlListingSource
from .adapters.json_source import JsonListingSource
from .batching import run_in_chunks
from .images import ImageEnricher, slot_counts
from .merge import Snapshot, fold, merge
from .schema import Record
from .store import SnapshotStore

logger = logging.getLogger(__name__)


@dataclass
class RunStats:
    harvested: int = 0
    admitted: int = 0
    new: int = 0
    images_ok: int = 0
    images_failed: int = 0
    total: int = 0

    def as_dict(self):
        return asdict(self)


def pick_source(location: str, timeout: float = 20.0) -> ListingSource:
    if location.endswith((".json", ".jsonl")):
        return JsonListingSource(location)
    return HtmlListingSource(location, timeout=timeout)


def _checkpointer(store: SnapshotStore, merged: Snapshot, new_batch: List[Record]):
    # records still waiting for enrichment stay out of checkpoints so a
    # crashed run sees them as new again next time
    pending = {r.identity_key for r in new_batch}
    settled = {k: v for k, v in merged.items() if k not in pending}

    def on_chunk(done: List[Record]):
        store.checkpoint(fold(settled, done))
    return on_chunk


async def run_harvest(
    source: ListingSource,
    store: SnapshotStore,
    enricher: Optional[ImageEnricher],
    concurrency: int = 5,
    retry: RetryPolicy = RetryPolicy(),
) -> RunStats:
    stats = RunStats()
    prior = store.load()

    try:
        raw = await fetch_with_retry(source, retry)
    except Exception as e:
        logger.error("[HARVEST] source gave up, continuing with nothing new: %s: %s", type(e).__name__, e)
        raw = []
    stats.harvested = len(raw)
    logger.info("[HARVEST] %d raw item(s)", stats.harvested)

    merged, new_batch, stats.admitted = merge(prior, raw)
    stats.new = len(new_batch)

    enriched = new_batch
    if new_batch and enricher is not None:
        enriched = await run_in_chunks(new_batch, concurrency, enricher.enrich_record,
                                       on_chunk=_checkpointer(store, merged, new_batch))
        for rec in enriched:
            ok, failed = slot_counts(rec)
            stats.images_ok += ok
            stats.images_failed += failed

    final = fold(merged, enriched)
    stats.total = len(final)
    store.save(final, enriched)

    logger.info("[DONE] harvested=%d admitted=%d new=%d images_ok=%d images_failed=%d total=%d",
                stats.harvested, stats.admitted, stats.new, stats.images_ok, stats.images_failed, stats.total)
    return stats
