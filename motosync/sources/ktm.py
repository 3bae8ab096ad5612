"""KTM Italia (ktm.com/it-it) model range."""

import re
from typing import List, Optional, Tuple

from bs4 import BeautifulSoup

from motosync.extraction import ExtractedFields
from motosync.html_utils import (
    Number,
    clean_model_name,
    find_price_in_text,
    first_text,
    has_ancestor_class,
    parse_price,
    price_in_bounds,
    srcset_first,
)
from motosync.images import filter_images
from motosync.models import CandidateRef
from motosync.sources.model_pages import DETAIL_MARKER, MOBILE_MARKER, STAGE_MARKER, ModelPagesAdapter
from motosync.url_validation import absolutize_url

__all__ = ["KtmAdapter"]

BASE_URL = "https://www.ktm.com"

# "2026 KTM 450 SX-F" -> (2026, "450 SX-F")
HEADLINE_RE = re.compile(r"^(\d{4})\s+(?:KTM\s+)?(.+)$", re.IGNORECASE)

# Studio side and perspective views
STUDIO_MARKERS = ("PHO_BIKE_90_", "PHO_BIKE_PERS")
# The model slider shows studio cutouts only
SLIDER_CLASSES = ("js-model-slide", "models__slide", "glide__slide")


def parse_headline(headline: str) -> Tuple[Optional[int], str]:
    """Split a model headline into (year, model)."""
    match = HEADLINE_RE.match(headline.strip())
    if match:
        return int(match.group(1)), match.group(2).strip()
    return None, clean_model_name(headline, ["KTM"])


class KtmAdapter(ModelPagesAdapter):
    key = "ktm"
    brand_name = "KTM"
    request_delay = 1.0
    year_cutoff = 2025
    models_url = f"{BASE_URL}/it-it/models.html"
    allowed_domains = ("ktm.com",)
    rejected_model_markers = ("BRABUS",)
    category_rules = (
        ("/motocross/", "cross"),
        ("/mx/", "cross"),
        ("/enduro/", "enduro"),
        ("sx-e", "cross"),
        ("freeride", "enduro"),
    )

    def price(self, soup: BeautifulSoup, raw: str) -> Optional[Number]:
        value = price_in_bounds(parse_price(first_text(soup, [".priceinfo__price-value"])), self.price_bounds)
        if value is None:
            value = find_price_in_text(raw, self.price_bounds)
        return value

    def extract_fields(self, raw: str, ref: CandidateRef) -> ExtractedFields:
        soup = BeautifulSoup(raw, "html.parser")
        year, model = parse_headline(first_text(soup, ["h1.priceinfo__headline", "h1"]))
        return ExtractedFields(
            model=model,
            year=year,
            price=self.price(soup, raw),
            displacement=self.displacement(soup, raw),
            description=self.description(soup),
        )

    def extract_images(self, raw: str, ref: CandidateRef) -> List[str]:
        """Stage heroes first, then action detail shots outside the studio slider."""
        soup = BeautifulSoup(raw, "html.parser")

        stage: List[Optional[str]] = []
        for el in soup.select("source, img"):
            url = absolutize_url(srcset_first(el.get("srcset")) or el.get("src"), ref.url)
            if url and STAGE_MARKER in url and MOBILE_MARKER not in url:
                stage.append(url)

        details: List[Optional[str]] = []
        for img in soup.find_all("img"):
            url = absolutize_url(img.get("src"), ref.url)
            if not url or DETAIL_MARKER not in url or "action" not in url.lower():
                continue
            if has_ancestor_class(img, SLIDER_CLASSES):
                continue
            details.append(url)

        return filter_images(stage + details, accept=_is_known_good, studio_markers=STUDIO_MARKERS)


def _is_known_good(url: str) -> bool:
    if STAGE_MARKER in url:
        return MOBILE_MARKER not in url
    return DETAIL_MARKER in url and "action" in url.lower()
