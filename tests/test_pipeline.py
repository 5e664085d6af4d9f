import asyncio
import json
from pathlib import Path

import pytest

from harvest.adapters.base import RetryPolicy
from harvest.images import ImageEnricher
from harvest.merge import snapshot_of
from harvest.pipeline import _checkpointer, pick_source, run_harvest
from harvest.adapters.html_source import HtmlListingSource
from harvest.adapters.json_source import JsonListingSource
from harvest.store import SnapshotStore, StoreError

from conftest import image_client, make_record


class StaticSource:
    def __init__(self, items):
        self.items = items

    async def fetch(self):
        return list(self.items)


class DeadSource:
    async def fetch(self):
        raise ConnectionError("site down")


@pytest.fixture
def store(tmp_path):
    return SnapshotStore(tmp_path / "ads.json", tmp_path / "new_ads.json", tmp_path / "ads.csv")


def read(path: Path):
    return json.loads(path.read_text(encoding="utf-8"))


def test_first_run_end_to_end(tmp_path, store):
    source = StaticSource([{"title": "A", "price": "100", "link": "http://s/a?x=1",
                            "image_urls": ["http://i/1.jpg"]}])
    enricher = ImageEnricher(tmp_path / "images", image_client(), delay=0)
    stats = asyncio.run(run_harvest(source, store, enricher, concurrency=2))

    assert (stats.harvested, stats.admitted, stats.new, stats.total) == (1, 1, 1, 1)
    assert (stats.images_ok, stats.images_failed) == (1, 0)
    rows = read(store.snapshot_path)
    assert len(rows) == 1
    assert rows[0]["main_image_local"]
    assert Path(rows[0]["main_image_local"]).is_file()
    new_rows = read(store.new_batch_path)
    assert [r["link"] for r in new_rows] == ["http://s/a?x=1"]
    assert store.load().keys() == {"http://s/a"}
    assert store.csv_path.read_text(encoding="utf-8").startswith("title,price,link")


def test_second_run_keeps_history_and_local_images(tmp_path, store):
    store.save(snapshot_of([make_record("http://s/a", main_image_local="img/1.jpg"),
                            make_record("http://s/old")]), [])
    source = StaticSource([
        {"title": "A again", "price": "90", "link": "http://s/a/", "image_urls": ["http://i/a/main.png"]},
        {"title": "B", "price": "5", "link": "http://s/b", "image_urls": ["http://i/b/main.png"]},
        {"title": "", "price": "5", "link": "http://s/c", "image_urls": ["http://i/c.png"]},
    ])
    enricher = ImageEnricher(tmp_path / "images", image_client(), delay=0)
    stats = asyncio.run(run_harvest(source, store, enricher))

    assert (stats.harvested, stats.admitted, stats.new, stats.total) == (3, 2, 1, 3)
    snap = store.load()
    assert list(snap) == ["http://s/a", "http://s/old", "http://s/b"]
    assert snap["http://s/a"].title == "A again"
    assert snap["http://s/a"].main_image_local == "img/1.jpg"
    assert snap["http://s/b"].main_image_local
    assert [r["link"] for r in read(store.new_batch_path)] == ["http://s/b"]


def test_nothing_new_still_saves_merged(store):
    store.save(snapshot_of([make_record("http://s/a", price="100")]), [])
    source = StaticSource([{"title": "Item a", "price": "80", "link": "http://s/a",
                            "image_urls": ["http://i/a/main.png"]}])
    stats = asyncio.run(run_harvest(source, store, None))
    assert stats.new == 0
    assert store.load()["http://s/a"].price == "80"
    assert not store.new_batch_path.exists()


def test_dead_source_keeps_prior_snapshot(store):
    store.save(snapshot_of([make_record("http://s/a")]), [])
    stats = asyncio.run(run_harvest(DeadSource(), store, None, retry=RetryPolicy(2, 0)))
    assert stats.harvested == 0
    assert list(store.load()) == ["http://s/a"]


def test_isolated_failure_still_lands_in_snapshot(tmp_path, store):
    items = [{"title": f"T{n}", "price": "1", "link": f"http://s/{n}", "image_urls": [f"http://i/{n}/main.png"]}
             for n in range(1, 6)]
    enricher = ImageEnricher(tmp_path / "images", image_client(fail={"http://i/3/main.png"}), delay=0)
    stats = asyncio.run(run_harvest(StaticSource(items), store, enricher, concurrency=2))

    assert (stats.images_ok, stats.images_failed, stats.total) == (4, 1, 5)
    snap = store.load()
    assert snap["http://s/3"].main_image_local is None
    assert snap["http://s/3"].main_image == "http://i/3/main.png"
    assert all(snap[f"http://s/{n}"].main_image_local for n in (1, 2, 4, 5))


def test_checkpoint_leaves_pending_records_out(store):
    prior = snapshot_of([make_record("http://s/a")])
    new = [make_record("http://s/b"), make_record("http://s/c")]
    merged = {**prior, **snapshot_of(new)}
    on_chunk = _checkpointer(store, merged, new)

    on_chunk([new[0].model_copy(update={"main_image_local": "b.jpg"})])
    snap = store.load()
    assert list(snap) == ["http://s/a", "http://s/b"]
    assert snap["http://s/b"].main_image_local == "b.jpg"


def test_save_failure_propagates(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("x")
    store = SnapshotStore(blocker / "ads.json", tmp_path / "new.json")
    with pytest.raises(StoreError):
        asyncio.run(run_harvest(StaticSource([]), store, None))


def test_pick_source():
    assert isinstance(pick_source("dump.json"), JsonListingSource)
    assert isinstance(pick_source("dump.jsonl"), JsonListingSource)
    assert isinstance(pick_source("https://example.com/seller"), HtmlListingSource)
