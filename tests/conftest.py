import io

import httpx
import pytest
from PIL import Image

from harvest.images import ImageEnricher
from harvest.schema import Record


def image_bytes(size=(1, 1), fmt="PNG", color="red") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


def make_record(link: str, n_extra: int = 0, **kw) -> Record:
    slug = link.rstrip("/").rsplit("/", 1)[-1]
    data = dict(
        title=f"Item {slug}",
        price="100",
        link=link,
        main_image=f"http://i/{slug}/main.png",
        other_images=[f"http://i/{slug}/{n}.png" for n in range(n_extra)],
    )
    data.update(kw)
    return Record(**data)


def image_client(fail=()) -> httpx.AsyncClient:
    """AsyncClient answering every URL with a tiny PNG, except those in ``fail`` (500)."""
    png = image_bytes()

    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) in fail:
            return httpx.Response(500, text="boom")
        return httpx.Response(200, content=png, headers={"content-type": "image/png"})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def enricher_factory(tmp_path):
    def build(fail=(), **kw):
        kw.setdefault("delay", 0)
        return ImageEnricher(tmp_path / "images", image_client(fail), **kw)
    return build
