"""
Image enrichment: fetch a listing's remote images, shrink them and keep a
local JPEG copy next to the other images of the same listing.

Every image is its own unit of failure. A broken main image leaves
``main_image_local`` unset, a broken extra is left out of
``other_images_local``; nothing here ever raises past ``enrich_record``.
"""
import asyncio, io, logging
from pathlib import Path
from typing import List, Optional

import httpx
from PIL import Image, ImageFilter, ImageOps

from .cache import write_atomic
from .normalizer import record_dir_name
from .schema import Record

logger = logging.getLogger(__name__)

UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
EXT = "jpg"
MAX_BYTES = 20 * 1024 * 1024


class EnrichmentError(Exception):
    def __init__(self, url: str, reason: str):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


def make_client(timeout: float = 20.0, **kwargs) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        headers={"User-Agent": UA, "Accept": "image/avif,image/webp,image/*,*/*;q=0.8"},
        timeout=timeout,
        follow_redirects=True,
        **kwargs,
    )


def transform_image(data: bytes, max_size: int = 1000, quality: int = 80, sharpen: bool = True) -> bytes:
    """Decode, fit inside max_size x max_size (never upscale), re-encode as JPEG."""
    with Image.open(io.BytesIO(data)) as src:
        src.load()
        im = ImageOps.exif_transpose(src)
        if im.mode != "RGB":
            im = im.convert("RGB")
        im.thumbnail((max_size, max_size), Image.Resampling.LANCZOS)
        # 3x3 kernel needs at least 3px each way
        if sharpen and min(im.size) >= 3:
            im = im.filter(ImageFilter.SHARPEN)
        out = io.BytesIO()
        im.save(out, format="JPEG", quality=quality, optimize=True)
        return out.getvalue()


class ImageEnricher:
    def __init__(self, images_dir, client: httpx.AsyncClient, max_size: int = 1000,
                 quality: int = 80, sharpen: bool = True, delay: float = 0.5):
        self.images_dir = Path(images_dir)
        self.client = client
        self.max_size = max_size
        self.quality = quality
        self.sharpen = sharpen
        self.delay = delay

    def folder_for(self, record: Record) -> Path:
        return self.images_dir / record_dir_name(record.identity_key)

    async def fetch(self, url: str) -> bytes:
        try:
            resp = await self.client.get(url)
            resp.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise EnrichmentError(url, f"{type(e).__name__}: {e}") from e
        ctype = resp.headers.get("content-type", "")
        if ctype.startswith("text/"):
            raise EnrichmentError(url, f"not an image ({ctype})")
        data = resp.content
        if not data:
            raise EnrichmentError(url, "empty body")
        if len(data) > MAX_BYTES:
            raise EnrichmentError(url, f"too large ({len(data)} bytes)")
        return data

    async def enrich_image(self, url: str, dest: Path) -> str:
        """Fetch, transform and store one image; returns the written path."""
        if not url:
            raise EnrichmentError(url, "no url")
        data = await self.fetch(url)
        try:
            jpeg = await asyncio.to_thread(transform_image, data, self.max_size, self.quality, self.sharpen)
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            raise EnrichmentError(url, f"decode failed: {e}") from e
        try:
            await asyncio.to_thread(write_atomic, dest, jpeg)
        except OSError as e:
            raise EnrichmentError(url, f"write failed: {e}") from e
        return dest.as_posix()

    async def _slot(self, url: str, dest: Path, link: str) -> Optional[str]:
        try:
            path = await self.enrich_image(url, dest)
        except EnrichmentError as e:
            logger.warning("[ENRICH] FAIL %s → %s | %s", dest.name, link, e.reason)
            return None
        logger.info("[ENRICH] OK   %s → %s", dest.name, path)
        return path

    async def enrich_record(self, record: Record) -> Record:
        """
        Main image first, then extras in order, pausing ``delay`` seconds
        between fetches. Returns an updated copy; the input is not touched.
        """
        folder = self.folder_for(record)
        main_local = await self._slot(record.main_image, folder / f"main.{EXT}", record.link)

        others: List[str] = []
        for n, url in enumerate(record.other_images, start=1):
            if self.delay:
                await asyncio.sleep(self.delay)
            path = await self._slot(url, folder / f"extra_{n}.{EXT}", record.link)
            if path:
                others.append(path)

        return record.model_copy(update={"main_image_local": main_local, "other_images_local": others})


def slot_counts(record: Record):
    """(ok, failed) image slots of an enriched record."""
    ok = (1 if record.main_image_local else 0) + len(record.other_images_local)
    total = (1 if record.main_image else 0) + len(record.other_images)
    return ok, max(total - ok, 0)
