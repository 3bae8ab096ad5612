"""Used listings of the dealer's moto.it storefront.

The listing pages only carry listing ids; details come from the AJAX
endpoint the storefront's modal uses.
"""

import json
import re
from typing import Iterator, List, Optional

from bs4 import BeautifulSoup

from motosync.config import CONDITION_USED
from motosync.discovery import discover_paginated
from motosync.extraction import ExtractedFields
from motosync.html_utils import (
    clean_model_name,
    extract_year,
    find_displacement_in_text,
    find_price_in_text,
    first_text,
    parse_number,
    parse_price,
)
from motosync.images import filter_images
from motosync.logging_config import get_logger
from motosync.models import CandidateRef
from motosync.sources.base import SourceAdapter

__all__ = ["MotoItAdapter"]

logger = get_logger("sources.moto_it")

LISTING_URL = "https://dealer.moto.it/avanzimoto/Usato"
DETAIL_URL = "https://dealer.moto.it/avanzimoto/Detail/Detail"
MAX_LISTING_PAGES = 10
LISTING_PAGE_DELAY = 0.8

LISTING_ID_RE = re.compile(r"annuncio_(\d+)")
IMAGE_CDN = "cdn-img.stcrm.it"
THUMBNAIL_SIZE_RE = re.compile(r"/HOR_STD/\d+x/")
HIGH_RES_SIZE = "/1000x750/"
DESCRIPTION_LIMIT = 500


def listing_page_url(page: int) -> str:
    return LISTING_URL if page == 1 else f"{LISTING_URL}/pagina-{page}"


def _is_cdn_image(url: str) -> bool:
    return IMAGE_CDN in url


class MotoItAdapter(SourceAdapter):
    key = "moto-it"
    # Each listing names its own brand
    brand_name = None
    condition = CONDITION_USED
    request_delay = 0.6
    allowed_domains = ("dealer.moto.it",)
    referer = "https://dealer.moto.it/"
    source_id_field = "motoItProductId"

    def discover(self) -> Iterator[CandidateRef]:
        return discover_paginated(
            self.fetch,
            listing_page_url,
            self.listing_ids,
            max_pages=MAX_LISTING_PAGES,
            blacklist=self.blacklist,
            page_delay=LISTING_PAGE_DELAY,
        )

    def listing_ids(self, html: str, page_url: str) -> List[CandidateRef]:
        """Listing ids from data-target="#annuncio_<id>" attributes."""
        soup = BeautifulSoup(html, "html.parser")
        refs: List[CandidateRef] = []
        seen = set()
        for el in soup.select("[data-target]"):
            match = LISTING_ID_RE.search(el.get("data-target") or "")
            if not match or match.group(1) in seen:
                continue
            listing_id = match.group(1)
            seen.add(listing_id)
            refs.append(CandidateRef(url=f"{DETAIL_URL}?ID={listing_id}", source_id=listing_id))
        return refs

    def fetch_candidate(self, ref: CandidateRef) -> str:
        return self.fetch(ref.url, headers={"X-Requested-With": "XMLHttpRequest"})

    def extract_fields(self, raw: str, ref: CandidateRef) -> ExtractedFields:
        soup = BeautifulSoup(raw, "html.parser")

        brand = first_text(soup, [".dlr-modal__print__header__title"])
        subtitle = first_text(soup, [".dlr-modal__print__header__subtitle"])
        # "CB 500 X (2021)": the year is in the subtitle
        year = extract_year(subtitle)

        price = kilometers = displacement = None
        for row in soup.select(".dlr-modal__specs__table tr"):
            label_el = row.select_one("th.spec-label")
            value_el = row.find("td")
            if not label_el or not value_el:
                continue
            label = label_el.get_text(" ", strip=True).lower()
            value = value_el.get_text(" ", strip=True)
            if "prezzo" in label:
                price_el = value_el.select_one('[itemprop="price"]')
                price = parse_price(price_el.get_text(strip=True) if price_el else value)
            elif label == "km":
                kilometers = parse_number(value)
            elif "cilindrata" in label:
                displacement = parse_number(value)
            elif "anno" in label and year is None:
                year = extract_year(value)

        # No usable specs table: scan the whole modal
        if price is None:
            price = find_price_in_text(raw, self.price_bounds)
        if displacement is None:
            displacement = find_displacement_in_text(raw)

        description_el = soup.select_one(".dlr-modal__description__content")
        description = description_el.get_text(" ", strip=True)[:DESCRIPTION_LIMIT] if description_el else ""

        return ExtractedFields(
            model=clean_model_name(subtitle, [brand] if brand else []),
            year=year,
            price=price,
            displacement=displacement,
            kilometers=kilometers,
            description=description,
            brand_name=brand or None,
            source_id=ref.source_id,
        )

    def extract_images(self, raw: str, ref: CandidateRef) -> List[str]:
        """Gallery from the modal's JS array, else high-res variants of the thumbnails."""
        urls: List[Optional[str]] = []
        if ref.source_id:
            pattern = re.compile(rf"var\s+annuncio_{ref.source_id}\s*=\s*(\[.*?\])", re.DOTALL)
            match = pattern.search(raw)
            if match:
                try:
                    gallery = json.loads(match.group(1))
                except ValueError:
                    logger.debug(f"Unparseable gallery array for listing {ref.source_id}")
                    gallery = []
                for entry in gallery:
                    if isinstance(entry, dict):
                        urls.append(entry.get("href"))

        images = filter_images(urls, accept=_is_cdn_image)
        if images:
            return images

        soup = BeautifulSoup(raw, "html.parser")
        thumbnails = [
            THUMBNAIL_SIZE_RE.sub(HIGH_RES_SIZE, img.get("src") or "")
            for img in soup.select(f'img[src*="{IMAGE_CDN}"]')
        ]
        return filter_images(thumbnails, accept=_is_cdn_image)
