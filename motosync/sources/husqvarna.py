"""Husqvarna Motorcycles Italia model range."""

import re
from types import MappingProxyType
from typing import List, Optional, Tuple

from bs4 import BeautifulSoup

from motosync.extraction import ExtractedFields
from motosync.html_utils import (
    Number,
    clean_model_name,
    find_price_in_text,
    first_text,
    parse_price,
    price_in_bounds,
    srcset_first,
)
from motosync.images import filter_images
from motosync.models import CandidateRef
from motosync.sources.model_pages import DETAIL_MARKER, MOBILE_MARKER, STAGE_MARKER, ModelPagesAdapter
from motosync.url_validation import absolutize_url

__all__ = ["HusqvarnaAdapter"]

BASE_URL = "https://www.husqvarna-motorcycles.com"

# "Norden 901 2026", "2026 FE 350", "Svartpilen 401 | 2025"
HEADLINE_YEAR_RE = re.compile(r"(?:^|\s)(\d{4})(?:\s|$)")
TRAILING_YEAR_RE = re.compile(r"\|?\s*(\d{4})$")
# ".../svartpilen-401-2025.html"
URL_YEAR_RE = re.compile(r"[/-](\d{4})(?:\.html|[/-]|$)")


def parse_headline(headline: str, url: str) -> Tuple[Optional[int], str]:
    """Split a headline into (year, model); the URL is a fallback for the year."""
    headline = " ".join(headline.split())
    year = None
    model = headline
    match = HEADLINE_YEAR_RE.search(headline) or TRAILING_YEAR_RE.search(headline)
    if match:
        year = int(match.group(1))
        model = headline.replace(match.group(0), " ", 1)

    if year is None:
        url_match = URL_YEAR_RE.search(url)
        if url_match:
            year = int(url_match.group(1))

    return year, clean_model_name(model, ["Husqvarna"])


class HusqvarnaAdapter(ModelPagesAdapter):
    key = "husqvarna"
    brand_name = "HUSQVARNA"
    request_delay = 1.0
    year_cutoff = 2025
    models_url = f"{BASE_URL}/it-it/models.html"
    allowed_domains = ("husqvarna-motorcycles.com",)
    extra_headers = MappingProxyType({"Cookie": "onetrust-policy=accepted"})
    category_rules = (
        ("/motocross/", "cross"),
        ("/kids-motocross/", "cross"),
        ("/enduro/", "enduro"),
        ("/electric/", "cross"),
    )

    def price(self, soup: BeautifulSoup, raw: str) -> Optional[Number]:
        text = first_text(soup, [".js-model-price p", ".priceinfo__price-value"])
        value = price_in_bounds(parse_price(text), self.price_bounds)
        if value is None:
            value = find_price_in_text(raw, self.price_bounds)
        return value

    def extract_fields(self, raw: str, ref: CandidateRef) -> ExtractedFields:
        soup = BeautifulSoup(raw, "html.parser")
        year, model = parse_headline(first_text(soup, ["h1"]), ref.url)
        return ExtractedFields(
            model=model,
            year=year,
            price=self.price(soup, raw),
            displacement=self.displacement(soup, raw),
            description=self.description(soup),
        )

    def extract_images(self, raw: str, ref: CandidateRef) -> List[str]:
        """Stage heroes first, then action detail shots."""
        soup = BeautifulSoup(raw, "html.parser")
        stage: List[Optional[str]] = []
        details: List[Optional[str]] = []
        for el in soup.select("source, img"):
            url = absolutize_url(srcset_first(el.get("srcset")) or el.get("src"), ref.url)
            if not url or MOBILE_MARKER in url:
                continue
            if STAGE_MARKER in url:
                stage.append(url)
            elif DETAIL_MARKER in url and "action" in url.lower():
                details.append(url)
        return filter_images(stage + details, accept=_is_known_good)


def _is_known_good(url: str) -> bool:
    if MOBILE_MARKER in url:
        return False
    return STAGE_MARKER in url or (DETAIL_MARKER in url and "action" in url.lower())
