"""Base class for source adapters.

An adapter holds everything specific to one origin site: how candidates are
discovered, which selectors and regexes yield fields, which images are
acceptable and how URLs map to categories. The pipeline drives adapters
through this interface only.
"""

from abc import ABC, abstractmethod
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import requests  # type: ignore[import-untyped]

from motosync.config import CONDITION_NEW, DEFAULT_CATEGORY, DEFAULT_PRICE_BOUNDS
from motosync.extraction import ExtractedFields
from motosync.fetcher import create_session, fetch_bytes, fetch_html
from motosync.models import CandidateRef

__all__ = ["SourceAdapter"]


class SourceAdapter(ABC):
    """One origin site."""

    # Registry key used on the command line
    key: str = ""
    # Fixed brand for single-brand sources; None when items carry their own
    brand_name: Optional[str] = None
    condition: str = CONDITION_NEW
    # Pause between candidates (seconds)
    request_delay: float = 1.0
    # Items with an older model year are rejected
    year_cutoff: Optional[int] = None
    price_bounds: Tuple[float, float] = DEFAULT_PRICE_BOUNDS
    # URL path substrings never treated as candidates
    blacklist: Sequence[str] = ()
    # (path substring, category) pairs, first match wins
    category_rules: Sequence[Tuple[str, str]] = ()
    default_category: str = DEFAULT_CATEGORY
    # Model names containing one of these are rejected
    rejected_model_markers: Sequence[str] = ()
    allowed_domains: Optional[Sequence[str]] = None
    # Sent when downloading images from the origin CDN
    referer: Optional[str] = None
    # Merged into every page request; read-only, shared by every instance
    extra_headers: Mapping[str, str] = MappingProxyType({})
    # Stored document field holding the source's own listing id
    source_id_field: Optional[str] = None

    def __init__(self, session: Optional[requests.Session] = None):
        self.session = session or create_session()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.key}>"

    # -------------------------------------------------------------------------
    # HTTP helpers
    # -------------------------------------------------------------------------

    def fetch(self, url: str, headers: Optional[Dict[str, str]] = None) -> str:
        request_headers = dict(self.extra_headers)
        if headers:
            request_headers.update(headers)
        return fetch_html(
            url, headers=request_headers, session=self.session, allowed_domains=self.allowed_domains
        )

    def asset_headers(self) -> Dict[str, str]:
        """Headers for downloading this source's images."""
        return {"Referer": self.referer} if self.referer else {}

    def fetch_image(self, url: str) -> Tuple[bytes, Optional[str]]:
        return fetch_bytes(url, headers=self.asset_headers(), session=self.session)

    # -------------------------------------------------------------------------
    # Adapter interface
    # -------------------------------------------------------------------------

    @abstractmethod
    def discover(self) -> Iterator[CandidateRef]:
        """Lazily enumerate candidates."""

    def fetch_candidate(self, ref: CandidateRef) -> str:
        """Fetch the raw document for a candidate."""
        return self.fetch(ref.url)

    @abstractmethod
    def extract_fields(self, raw: str, ref: CandidateRef) -> ExtractedFields:
        """Pull model, year, price and the other scalar fields from raw."""

    @abstractmethod
    def extract_images(self, raw: str, ref: CandidateRef) -> List[str]:
        """Accepted image URLs in priority order (hero first)."""

    def category_of(self, url: str) -> str:
        lower = url.lower()
        for marker, category in self.category_rules:
            if marker in lower:
                return category
        return self.default_category
