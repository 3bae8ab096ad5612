"""Candidate discovery: hierarchical and paginated listing shapes.

Both discoverers are generators: candidates are produced lazily while the
pipeline consumes them, and each generator can be iterated only once.
"""

import time
from typing import Callable, Iterable, Iterator, List, Optional, Sequence, Set
from urllib.parse import urlparse

from motosync.fetcher import FetchError
from motosync.logging_config import get_logger, log_sync_event
from motosync.models import CandidateRef
from motosync.url_validation import canonical_url

__all__ = [
    "DiscoveryError",
    "is_blacklisted",
    "discover_hierarchical",
    "discover_paginated",
]

logger = get_logger("discovery")

FetchFn = Callable[[str], str]


class DiscoveryError(Exception):
    """Raised when a source's entry point cannot be resolved."""
    pass


def is_blacklisted(url: str, blacklist: Sequence[str]) -> bool:
    """Whether the URL path contains any blacklisted substring."""
    if not blacklist:
        return False
    path = urlparse(url).path.lower()
    return any(entry.lower() in path for entry in blacklist)


def discover_hierarchical(
    fetch: FetchFn,
    entry_url: str,
    category_links: Callable[[str, str], Iterable[str]],
    item_links: Callable[[str, str], Iterable[str]],
    blacklist: Sequence[str] = (),
) -> Iterator[CandidateRef]:
    """Entry page -> category pages -> item links.

    Args:
        fetch: Callable returning the body of a URL (raises FetchError)
        entry_url: The listing entry point
        category_links: (html, page_url) -> category page URLs
        item_links: (html, page_url) -> item detail URLs
        blacklist: Path substrings excluded from categories and items

    Yields:
        CandidateRef per unique item, deduplicated by canonical URL across
        categories

    Raises:
        DiscoveryError: If the entry page cannot be fetched
    """
    try:
        entry_html = fetch(entry_url)
    except FetchError as e:
        raise DiscoveryError(f"Entry point unreachable: {entry_url}") from e

    categories: List[str] = []
    for url in category_links(entry_html, entry_url):
        if url not in categories and not is_blacklisted(url, blacklist):
            categories.append(url)
    logger.info(f"Found {len(categories)} categories")

    seen: Set[str] = set()
    for category_url in categories:
        if category_url == entry_url:
            html = entry_html
        else:
            logger.info(f"  Category: {category_url}")
            try:
                html = fetch(category_url)
            except FetchError as e:
                log_sync_event("category_error", {
                    "message": f"  Skipping category {category_url}: {e}",
                    "url": category_url,
                    "error": str(e),
                })
                continue

        for link in item_links(html, category_url):
            key = canonical_url(link)
            if key in seen or is_blacklisted(link, blacklist):
                continue
            seen.add(key)
            yield CandidateRef(url=link)


def discover_paginated(
    fetch: FetchFn,
    page_url: Callable[[int], str],
    items_on_page: Callable[[str, str], List[CandidateRef]],
    max_pages: int,
    blacklist: Sequence[str] = (),
    page_delay: float = 0.0,
) -> Iterator[CandidateRef]:
    """Pages 1..max_pages of a flat listing.

    Pagination ends normally at the first page that yields no items or
    cannot be fetched. Only a failure of page 1 is an error.

    Args:
        fetch: Callable returning the body of a URL (raises FetchError)
        page_url: page number (1-based) -> URL
        items_on_page: (body, page_url) -> candidates on that page
        max_pages: Safety limit
        blacklist: Path substrings excluded from candidates
        page_delay: Pause before fetching each page after the first

    Raises:
        DiscoveryError: If page 1 cannot be fetched
    """
    seen: Set[str] = set()
    for page in range(1, max_pages + 1):
        url = page_url(page)
        if page > 1 and page_delay:
            time.sleep(page_delay)

        logger.info(f"Listing page {page}: {url}")
        try:
            body = fetch(url)
        except FetchError as e:
            if page == 1:
                raise DiscoveryError(f"Entry point unreachable: {url}") from e
            logger.info(f"  Page {page} failed to load, stopping pagination")
            return

        refs = items_on_page(body, url)
        logger.info(f"  Found {len(refs)} items on page {page}")
        if not refs:
            return

        for ref in refs:
            key = ref.source_id or canonical_url(ref.url)
            if key in seen or is_blacklisted(ref.url, blacklist):
                continue
            seen.add(key)
            yield ref

    logger.info(f"Reached max pages limit ({max_pages})")
