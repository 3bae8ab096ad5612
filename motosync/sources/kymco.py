"""KYMCO Italia scooter range.

Lifestyle photos are CSS background images under /wp-content/uploads/, but
some uploads there are studio cutouts too, so every candidate image is
classified by its corner pixels.
"""

import re
from typing import Iterator, List, Optional

from bs4 import BeautifulSoup

from motosync.config import MAX_IMAGES_TO_CLASSIFY
from motosync.discovery import discover_hierarchical
from motosync.extraction import ExtractedFields, ExtractionRejected
from motosync.html_utils import Number, background_image_url, first_text, parse_number, parse_price
from motosync.images import StudioClassifier, filter_images
from motosync.models import CandidateRef
from motosync.sources.base import SourceAdapter
from motosync.url_validation import absolutize_url

__all__ = ["KymcoAdapter"]

BASE_URL = "https://kymco.it"

# Detail pages are /Prodotti/_CODE; other /Prodotti/ links are variants
PRODUCT_LINK_RE = re.compile(r"kymco\.it/Prodotti/_", re.IGNORECASE)
PRICE_RE = re.compile(r"€\s*([\d.]+,\d{2})")
PRICE_SELECTORS = ('[itemprop="price"]', ".prezzo", ".price")
DISPLACEMENT_RE = re.compile(r"cilindrata[:\s]*(\d+)", re.IGNORECASE)

UPLOADS_MARKER = "/wp-content/uploads/"
# /media/ holds the spec-sheet studio shots
EXCLUDED_IMAGE_MARKERS = ("/media/", "logo", "icon", "banner")


def _body_text(soup: BeautifulSoup) -> str:
    root = soup.body or soup
    return root.get_text(" ", strip=True)


def _spec_value(soup: BeautifulSoup, label: str) -> Optional[str]:
    """Text of the cell following a spec label cell, if any."""
    for cell in soup.find_all(["td", "th", "dt"]):
        if label not in cell.get_text(" ", strip=True).lower():
            continue
        value = cell.find_next_sibling(["td", "dd"])
        if value and value.get_text(strip=True):
            return value.get_text(" ", strip=True)
    return None


def _is_upload_photo(url: str) -> bool:
    lower = url.lower()
    if UPLOADS_MARKER not in lower:
        return False
    if any(marker in lower for marker in EXCLUDED_IMAGE_MARKERS):
        return False
    return ".jpg" in lower or ".jpeg" in lower


class KymcoAdapter(SourceAdapter):
    key = "kymco"
    brand_name = "KYMCO"
    request_delay = 1.5
    listing_url = f"{BASE_URL}/prodotti_categorie/scooter/"
    allowed_domains = ("kymco.it",)
    default_category = "scooter"

    def __init__(self, session=None):
        super().__init__(session)
        self.classifier = StudioClassifier(self.fetch_image)

    def discover(self) -> Iterator[CandidateRef]:
        # The scooter listing is the only category page
        return discover_hierarchical(
            self.fetch,
            self.listing_url,
            lambda html, url: [url],
            self.item_links,
            blacklist=self.blacklist,
        )

    def item_links(self, html: str, page_url: str) -> List[str]:
        soup = BeautifulSoup(html, "html.parser")
        links: List[str] = []
        for a in soup.find_all("a", href=True):
            url = absolutize_url(a["href"], BASE_URL)
            if not url or not PRODUCT_LINK_RE.search(url):
                continue
            url = url.rstrip("/")
            if url not in links:
                links.append(url)
        return links

    def extract_fields(self, raw: str, ref: CandidateRef) -> ExtractedFields:
        soup = BeautifulSoup(raw, "html.parser")

        title = first_text(soup, ["title"])
        if "404" in title or "non trovata" in title.lower():
            raise ExtractionRejected("page not found")

        return ExtractedFields(
            model=first_text(soup, ["h1"]),
            price=self.price(soup),
            displacement=self.displacement(soup),
        )

    def price(self, soup: BeautifulSoup) -> Optional[Number]:
        """Price element or spec row, then the first "€ 2.390,00" in the text."""
        price = parse_price(first_text(soup, PRICE_SELECTORS) or _spec_value(soup, "prezzo"))
        if price is not None:
            return price
        match = PRICE_RE.search(_body_text(soup))
        return parse_price(match.group(1)) if match else None

    def displacement(self, soup: BeautifulSoup) -> Optional[int]:
        value = _spec_value(soup, "cilindrata")
        cc = parse_number(value.replace(",", ".")) if value else None
        if cc:
            return cc
        match = DISPLACEMENT_RE.search(_body_text(soup))
        return parse_number(match.group(1)) if match else None

    def extract_images(self, raw: str, ref: CandidateRef) -> List[str]:
        """Upload photos that pass the pixel check, in page order."""
        soup = BeautifulSoup(raw, "html.parser")
        candidates: List[Optional[str]] = []
        for el in soup.select('[style*="background"]'):
            candidates.append(absolutize_url(background_image_url(el.get("style")), BASE_URL))

        uploads = filter_images(candidates, accept=_is_upload_photo, limit=MAX_IMAGES_TO_CLASSIFY)
        return self.classifier.action_images(uploads)
