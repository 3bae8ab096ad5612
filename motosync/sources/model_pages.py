"""Shared layout of the KTM-group model sites (KTM, Husqvarna).

Both sites list categories under /models/<category>.html and models under
/models/<category>/.../<model>.html, and share the technical data table and
the PHO_* image naming scheme of their media library.
"""

import re
from typing import Iterator, List, Optional

from bs4 import BeautifulSoup

from motosync.discovery import discover_hierarchical
from motosync.html_utils import find_displacement_in_text, first_paragraph, parse_number
from motosync.models import CandidateRef
from motosync.sources.base import SourceAdapter
from motosync.url_validation import absolutize_url

__all__ = [
    "ModelPagesAdapter",
    "STAGE_MARKER",
    "DETAIL_MARKER",
    "MOBILE_MARKER",
]

# Hero lifestyle shots
STAGE_MARKER = "PHO_STAGE"
# Feature close-ups; only the "action" variants are outdoor shots
DETAIL_MARKER = "PHO_BIKE_DET"
MOBILE_MARKER = "MOBILE"

DISPLACEMENT_LABELS = ("cilindrata", "displacement")
LABEL_VALUE_RE = re.compile(r"[\d.,]+")


def _models_relative(href: str) -> Optional[str]:
    if "/models/" not in href:
        return None
    return href.split("/models/", 1)[1]


class ModelPagesAdapter(SourceAdapter):
    """Hierarchical discovery and field helpers for the model sites."""

    models_url: str = ""

    def discover(self) -> Iterator[CandidateRef]:
        return discover_hierarchical(
            self.fetch,
            self.models_url,
            self.category_links,
            self.item_links,
            blacklist=self.blacklist,
        )

    def category_links(self, html: str, page_url: str) -> List[str]:
        """Links exactly one level below /models/ (e.g. /models/naked-bike.html)."""
        soup = BeautifulSoup(html, "html.parser")
        links: List[str] = []
        for a in soup.select('a[href*="/models/"]'):
            href = a.get("href") or ""
            if href.endswith("models.html"):
                continue
            relative = _models_relative(href)
            if not relative or "/" in relative:
                continue
            url = absolutize_url(href, page_url)
            if url and url not in links:
                links.append(url)
        return links

    def item_links(self, html: str, page_url: str) -> List[str]:
        """Links at least two levels below /models/."""
        soup = BeautifulSoup(html, "html.parser")
        links: List[str] = []
        for a in soup.select('a[href*="/models/"]'):
            href = a.get("href") or ""
            relative = _models_relative(href)
            if not relative or "/" not in relative:
                continue
            url = absolutize_url(href, page_url)
            if url and url not in links:
                links.append(url)
        return links

    def displacement(self, soup: BeautifulSoup, raw: str) -> Optional[int]:
        """Displacement from the technical data list, else a regex over raw."""
        for label in soup.select(".c-technical-data__list-label"):
            label_text = label.get_text(" ", strip=True)
            if not any(word in label_text.lower() for word in DISPLACEMENT_LABELS):
                continue
            sibling = label.find_next_sibling()
            value = sibling.get_text(" ", strip=True) if sibling else ""
            if not value and label.parent:
                value = label.parent.get_text(" ", strip=True).replace(label_text, "").strip()
            match = LABEL_VALUE_RE.search(value)
            if match:
                cc = parse_number(match.group(0).replace(",", "."))
                if cc:
                    return cc
        return find_displacement_in_text(raw)

    def description(self, soup: BeautifulSoup) -> str:
        return first_paragraph(soup)
