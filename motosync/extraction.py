"""Turn one fetched item document into a normalized CatalogItem.

Adapters supply the site-specific heuristics (fields, images, category);
this module applies the acceptance rules every source shares.
"""

from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Optional

from motosync.config import CATEGORIES, CONDITION_USED, MAX_IMAGES, MAX_YEAR, MIN_YEAR
from motosync.html_utils import Number, price_in_bounds, slugify
from motosync.logging_config import log_sync_event
from motosync.models import CandidateRef, CatalogItem

if TYPE_CHECKING:
    from motosync.sources.base import SourceAdapter

__all__ = [
    "ExtractionRejected",
    "ExtractedFields",
    "normalize_year",
    "extract",
]


class ExtractionRejected(Exception):
    """An item fails acceptance criteria. Expected outcome, not a failure."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


@dataclass
class ExtractedFields:
    """Raw field values an adapter pulled from one item page."""

    model: str
    year: Optional[int] = None
    price: Optional[Number] = None
    displacement: Optional[int] = None
    kilometers: Optional[int] = None
    description: str = ""
    # Only for sources listing several brands
    brand_name: Optional[str] = None
    source_id: Optional[str] = None


def normalize_year(year: Optional[int]) -> int:
    """Clamp unusable years to the current year."""
    if year is None or not MIN_YEAR <= year <= MAX_YEAR:
        return date.today().year
    return year


def _build_item(adapter: "SourceAdapter", raw: str, ref: CandidateRef) -> CatalogItem:
    fields = adapter.extract_fields(raw, ref)

    model = " ".join(fields.model.split())
    if not model:
        raise ExtractionRejected("no model name")
    for marker in adapter.rejected_model_markers:
        if marker.upper() in model.upper():
            raise ExtractionRejected(f"model matches excluded marker {marker!r}")

    brand_name = (fields.brand_name or adapter.brand_name or "").strip()
    if not brand_name:
        raise ExtractionRejected("no brand")

    year = normalize_year(fields.year)
    if adapter.year_cutoff is not None and year < adapter.year_cutoff:
        raise ExtractionRejected(f"model year {year} older than {adapter.year_cutoff}")

    images = []
    for url in adapter.extract_images(raw, ref):
        if url not in images:
            images.append(url)
    images = images[:MAX_IMAGES]
    if not images:
        raise ExtractionRejected("no accepted images")

    category = ref.hints.get("category") or adapter.category_of(ref.url)
    if category not in CATEGORIES:
        category = adapter.default_category

    displacement = fields.displacement if fields.displacement and fields.displacement > 0 else None
    kilometers = None
    if adapter.condition == CONDITION_USED and fields.kilometers is not None and fields.kilometers >= 0:
        kilometers = fields.kilometers

    source_id = fields.source_id or ref.source_id or slugify(f"{brand_name}-{model}-{year}")

    return CatalogItem(
        source_id=source_id,
        brand_name=brand_name,
        model=model,
        year=year,
        category=category,
        condition=adapter.condition,
        url=ref.url,
        price=price_in_bounds(fields.price, adapter.price_bounds),
        displacement=displacement,
        kilometers=kilometers,
        short_description=fields.description.strip(),
        images=images,
    )


def extract(adapter: "SourceAdapter", raw: str, ref: CandidateRef) -> Optional[CatalogItem]:
    """Extract a CatalogItem from a raw document.

    Returns:
        The item, or None when it fails acceptance (no model, excluded
        model, stale year, zero accepted images). Rejections are logged.
    """
    try:
        return _build_item(adapter, raw, ref)
    except ExtractionRejected as e:
        log_sync_event("extraction_rejected", {
            "message": f"    Rejected: {e.reason}",
            "source": adapter.key,
            "url": ref.url,
            "reason": e.reason,
        })
        return None
