"""VOGE Italia range, enumerated through the WordPress pages API.

Every published page is a candidate except the known editorial ones, so
a model is never missed because it is absent from the menus.
"""

import json
import re
from html import unescape
from typing import Iterator, List, Optional

from bs4 import BeautifulSoup

from motosync.discovery import discover_paginated
from motosync.extraction import ExtractedFields
from motosync.html_utils import (
    Number,
    find_displacement_in_text,
    find_price_in_text,
    parse_number,
    parse_price,
    price_in_bounds,
)
from motosync.images import filter_images
from motosync.logging_config import get_logger
from motosync.models import CandidateRef
from motosync.sources.base import SourceAdapter
from motosync.url_validation import absolutize_url

__all__ = ["VogeAdapter", "EDITORIAL_SLUGS"]

logger = get_logger("sources.voge")

BASE_URL = "https://vogeitaly.it"
PAGES_PER_REQUEST = 100
MAX_API_PAGES = 10

# Published pages that are not models
EDITORIAL_SLUGS = frozenset([
    "accessori", "care", "coming-soon", "social", "loncin",
    "informativa-clienti-e-fornitori", "privacy-policy",
    "vuoidiventarerivenditore", "eicma2024", "sample-page",
    "concessionari", "promozioni", "chi-siamo", "contatti",
    "news", "faq", "garanzia", "promo", "di-nuovo",
    "areastampa", "cookie-policy", "informativa-al-trattamento-dei-dati",
    "promo-news",
])

# "Prezzo di listino € 5.990" / "€ 5.990,00"
PRICE_IN_TEXT_RE = re.compile(r"\d{1,3}(?:[.,]\d{3})*(?:[.,]\d{2})?")
LINKED_JPEG_RE = re.compile(r"\.(?:jpg|jpeg)$", re.IGNORECASE)


def _is_known_good(url: str) -> bool:
    lower = url.lower()
    if not lower.startswith("http"):
        return False
    if ".png" in lower or "logo" in lower or "icon" in lower:
        return False
    return ".jpg" in lower or ".jpeg" in lower


class VogeAdapter(SourceAdapter):
    key = "voge"
    brand_name = "VOGE"
    request_delay = 1.5
    allowed_domains = ("vogeitaly.it",)
    category_rules = (("sfida", "scooter"),)

    def discover(self) -> Iterator[CandidateRef]:
        return discover_paginated(
            self.fetch,
            self.api_page_url,
            self.pages_from_api,
            max_pages=MAX_API_PAGES,
            blacklist=self.blacklist,
        )

    def api_page_url(self, page: int) -> str:
        return (
            f"{BASE_URL}/wp-json/wp/v2/pages?per_page={PAGES_PER_REQUEST}"
            f"&_fields=id,link,slug,title&page={page}"
        )

    def pages_from_api(self, body: str, page_url: str) -> List[CandidateRef]:
        """Candidates from one page of the pages API (editorial pages dropped)."""
        try:
            pages = json.loads(body)
        except ValueError:
            logger.warning(f"Pages API returned invalid JSON: {page_url}")
            return []
        if not isinstance(pages, list):
            return []

        refs: List[CandidateRef] = []
        for page in pages:
            slug = (page.get("slug") or "").lower()
            link = page.get("link") or ""
            if not link or not slug or slug in EDITORIAL_SLUGS:
                continue
            if link.rstrip("/") == BASE_URL:
                continue
            title = unescape((page.get("title") or {}).get("rendered") or "")
            refs.append(CandidateRef(url=link, hints={"slug": slug, "title": title}))
        return refs

    # -------------------------------------------------------------------------
    # Fields
    # -------------------------------------------------------------------------

    def model_name(self, soup: BeautifulSoup, ref: CandidateRef) -> str:
        name = ""
        for selector in ("h1", "h2.vc_custom_heading"):
            el = soup.select_one(selector)
            if el and el.get_text(strip=True):
                name = el.get_text(" ", strip=True)
                break
        if not name:
            title = soup.title.get_text() if soup.title else ref.hints.get("title", "")
            name = title.split("–")[0]
        return " ".join(name.replace("VOGE", "").split())

    def price(self, soup: BeautifulSoup, raw: str = "") -> Optional[Number]:
        """Promo price, then the list price table row, then a price heading.

        Falls back to the first plausible price anywhere in the raw page.
        """
        promo = soup.select_one(".promo-price")
        if promo:
            value = price_in_bounds(parse_price(promo.get_text(" ", strip=True)), self.price_bounds)
            if value is not None:
                return value

        for td in soup.find_all("td"):
            if "prezzo" not in td.get_text(" ", strip=True).lower():
                continue
            cell = td.find_next_sibling(["td", "th"])
            if cell:
                value = price_in_bounds(parse_price(cell.get_text(" ", strip=True)), self.price_bounds)
                if value is not None:
                    return value

        for el in soup.select("p strong, p > span > strong, h2, h3, h4"):
            text = el.get_text(" ", strip=True)
            lower = text.lower()
            if "€" not in text or ("prezzo" not in lower and "listino" not in lower):
                continue
            match = PRICE_IN_TEXT_RE.search(text)
            if match:
                value = price_in_bounds(parse_price(match.group(0)), self.price_bounds)
                if value is not None:
                    return value
        return find_price_in_text(raw, self.price_bounds)

    def displacement(self, soup: BeautifulSoup, raw: str = "") -> Optional[int]:
        for td in soup.find_all("td"):
            if "cilindrata" not in td.get_text(" ", strip=True).lower():
                continue
            cell = td.find_next_sibling("td")
            if cell:
                cc = parse_number(cell.get_text(" ", strip=True).replace(",", "."))
                if cc:
                    return cc
        return find_displacement_in_text(raw)

    def description(self, soup: BeautifulSoup) -> str:
        for p in soup.select(".wpb_wrapper p"):
            text = " ".join(p.get_text(" ", strip=True).split())
            if len(text) > 30 and not any(word in text for word in ("Prezzo", "€", "Listino")):
                return text
        return ""

    def extract_fields(self, raw: str, ref: CandidateRef) -> ExtractedFields:
        soup = BeautifulSoup(raw, "html.parser")
        # Pages rarely state a model year; the current year applies
        return ExtractedFields(
            model=self.model_name(soup, ref),
            price=self.price(soup, raw),
            displacement=self.displacement(soup, raw),
            description=self.description(soup),
        )

    def extract_images(self, raw: str, ref: CandidateRef) -> List[str]:
        """Slider hero, then gallery images linking to a full-size JPEG.

        Gallery thumbnails that link to a page show other models and are
        never taken. The lightbox gallery is used only when the standard
        gallery yields nothing.
        """
        soup = BeautifulSoup(raw, "html.parser")
        candidates: List[Optional[str]] = []

        hero = soup.select_one("img.rev-slidebg")
        if hero:
            candidates.append(absolutize_url(hero.get("src"), ref.url))

        gallery = self._linked_jpegs(soup.select("img.vc_single_image-img"), ref.url)
        if not gallery:
            gallery = self._linked_jpegs(soup.select(".mkdf-ig-lightbox img"), ref.url)

        return filter_images(candidates + gallery, accept=_is_known_good, studio_markers=("estudio",))

    @staticmethod
    def _linked_jpegs(imgs, base_url: str) -> List[Optional[str]]:
        urls: List[Optional[str]] = []
        for img in imgs:
            link = img.find_parent("a")
            href = (link.get("href") or "") if link else ""
            if not LINKED_JPEG_RE.search(href) or "estudio" in href.lower():
                continue
            urls.append(absolutize_url(href, base_url))
        return urls
