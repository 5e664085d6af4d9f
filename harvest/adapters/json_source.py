import asyncio
from pathlib import Path
from typing import Any, Dict, List

import orjson


def coerce_raw(item: Any) -> Any:
    """
    Map older dump shapes onto the raw listing shape.

    Earlier scrapes wrote ``url`` for the link and ``image`` or
    ``main_image``/``other_images`` instead of one ``image_urls`` list.
    """
    if not isinstance(item, dict) or "image_urls" in item:
        return item
    out = dict(item)
    if not out.get("link") and out.get("url"):
        out["link"] = out.pop("url")
    images = []
    for k in ("main_image", "image"):
        if out.get(k):
            images.append(out[k])
    images.extend(out.get("other_images") or [])
    out["image_urls"] = images
    return out


def _read(path: Path) -> List[Any]:
    data = path.read_bytes()
    if path.suffix == ".jsonl":
        return [orjson.loads(line) for line in data.splitlines() if line.strip()]
    rows = orjson.loads(data)
    if not isinstance(rows, list):
        raise ValueError(f"{path} does not hold a JSON array")
    return rows


class JsonListingSource:
    def __init__(self, path):
        self.path = Path(path)

    async def fetch(self) -> List[Dict[str, Any]]:
        rows = await asyncio.to_thread(_read, self.path)
        return [coerce_raw(r) for r in rows]
