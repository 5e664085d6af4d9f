# html_source.py
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"

CARD = ".b-list-advert-base.qa-advert-list-item"
TITLE = ".b-advert-title-inner"
PRICE = ".qa-advert-price"
DESCRIPTION = ".b-list-advert-base__description-text"
REGION = ".b-list-advert__region__text"


def _text(node, sel: str) -> str:
    n = node.select_one(sel)
    return n.get_text(" ", strip=True) if n else ""


def _link(card) -> Optional[str]:
    if card.name == "a" and card.get("href"):
        return card["href"]
    parent = card.find_parent("a", href=True)
    if parent:
        return parent["href"]
    inner = card.select_one("a[href]")
    return inner["href"] if inner else None


def extract_listings(html: str, base_url: str = "") -> List[Dict[str, Any]]:
    """Listing cards on a seller/search page, in page order."""
    soup = BeautifulSoup(html, "lxml")
    items = []
    for card in soup.select(CARD):
        images = []
        for img in card.select("img"):
            src = img.get("data-src") or img.get("src")
            if src and not src.startswith("data:"):
                images.append(urljoin(base_url, src))
        href = _link(card)
        items.append({
            "title": _text(card, TITLE),
            "price": _text(card, PRICE),
            "description": _text(card, DESCRIPTION),
            "location": _text(card, REGION),
            "link": urljoin(base_url, href) if href else "",
            "image_urls": images,
        })
    return items


class HtmlListingSource:
    """
    Reads one already-rendered listing page, either a saved file or a plain
    GET. Pages that need a real browser to render are out of reach here.
    """

    def __init__(self, location: str, timeout: float = 20.0, transport=None):
        self.location = location
        self.timeout = timeout
        self.transport = transport

    async def fetch(self) -> List[Dict[str, Any]]:
        if not self.location.startswith(("http://", "https://")):
            return extract_listings(Path(self.location).read_text(encoding="utf-8"))
        async with httpx.AsyncClient(headers={"User-Agent": UA}, timeout=self.timeout,
                                     follow_redirects=True, transport=self.transport) as client:
            resp = await client.get(self.location)
            resp.raise_for_status()
            return extract_listings(resp.text, base_url=str(resp.url))
