import re
from typing import Iterable, List
from slugify import slugify
from .cache import key_for

_TRAILING = re.compile(r"[\s/]+$")


def _strip_url(url: str) -> str:
    base = (url or "").split("?", 1)[0]
    return _TRAILING.sub("", base).strip()


def normalize(link: str) -> str:
    """
    Canonical identity for a listing link.

    Query string, trailing slashes and surrounding whitespace are dropped
    and the result is lower-cased, so tracking parameters never split one
    listing into two. Total: "" maps to "".
    """
    return _strip_url(link).lower()


def normalize_image_url(url: str) -> str:
    # same as normalize() but keeps case, image paths are case-sensitive
    return _strip_url(url)


def dedupe_image_urls(urls: Iterable[str]) -> List[str]:
    seen = set()
    out: List[str] = []
    for url in urls:
        if not isinstance(url, str) or not url.strip():
            continue
        key = normalize_image_url(url)
        if not key or key in seen:
            continue
        seen.add(key)
        out.append(url.strip())
    return out


def record_dir_name(identity_key: str) -> str:
    base = slugify(identity_key, max_length=60)
    digest = key_for(identity_key)[:10]
    return f"{base}-{digest}" if base else digest
