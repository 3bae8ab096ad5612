"""HTTP fetching with retry and linear backoff."""

import time
from typing import Dict, Iterable, Optional, Tuple

import requests  # type: ignore[import-untyped]

from motosync.config import HEADERS, MAX_ATTEMPTS, REQUEST_TIMEOUT, RETRY_BASE_DELAY
from motosync.logging_config import get_logger
from motosync.url_validation import URLValidationError, validate_url

__all__ = [
    "FetchError",
    "create_session",
    "fetch_html",
    "fetch_bytes",
]

logger = get_logger("fetcher")

# Module-level session for connection reuse
_session: Optional[requests.Session] = None


class FetchError(Exception):
    """Raised when a document cannot be fetched after all retries."""

    def __init__(self, url: str, message: str):
        super().__init__(f"{message} ({url})")
        self.url = url


def create_session() -> requests.Session:
    """Create a requests Session carrying the browser headers."""
    session = requests.Session()
    session.headers.update(HEADERS)
    session.headers.setdefault("Accept-Encoding", "gzip, deflate")
    return session


def _get_session() -> requests.Session:
    """Get or create the module-level session."""
    global _session
    if _session is None:
        _session = create_session()
    return _session


def _request(
    url: str,
    headers: Optional[Dict[str, str]],
    session: Optional[requests.Session],
    allowed_domains: Optional[Iterable[str]],
) -> requests.Response:
    """GET a URL, retrying non-2xx responses and network errors.

    Attempt n (1-based) that fails is followed by a sleep of
    n * RETRY_BASE_DELAY seconds, except after the last attempt.

    Raises:
        FetchError: On an invalid URL (not retried) or after MAX_ATTEMPTS
    """
    try:
        url = validate_url(url, allowed_domains=allowed_domains)
    except URLValidationError as e:
        logger.error(f"URL validation failed: {e}")
        raise FetchError(url, f"Invalid URL: {e}") from e

    sess = session or _get_session()
    request_headers = dict(HEADERS)
    if headers:
        request_headers.update(headers)

    last_error = "unknown error"
    for attempt in range(1, MAX_ATTEMPTS + 1):
        try:
            resp = sess.get(url, headers=request_headers, timeout=REQUEST_TIMEOUT)
            if 200 <= resp.status_code < 300:
                return resp
            last_error = f"HTTP {resp.status_code}"
        except requests.exceptions.Timeout as e:
            last_error = f"Timeout: {e}"
        except requests.exceptions.ConnectionError as e:
            last_error = f"Connection error: {e}"
        except requests.exceptions.RequestException as e:
            last_error = f"Request error: {e}"

        if attempt < MAX_ATTEMPTS:
            backoff = attempt * RETRY_BASE_DELAY
            logger.warning(
                f"{last_error} for {url}, retrying in {backoff:.1f}s "
                f"(attempt {attempt}/{MAX_ATTEMPTS})"
            )
            time.sleep(backoff)

    logger.error(f"Failed to fetch {url} after {MAX_ATTEMPTS} attempts: {last_error}")
    raise FetchError(url, f"{last_error} after {MAX_ATTEMPTS} attempts")


def fetch_html(
    url: str,
    headers: Optional[Dict[str, str]] = None,
    session: Optional[requests.Session] = None,
    allowed_domains: Optional[Iterable[str]] = None,
) -> str:
    """Fetch a text document (HTML or JSON).

    Args:
        url: URL to fetch
        headers: Extra headers merged over the browser headers
        session: Optional requests.Session for connection reuse
        allowed_domains: Optional domain whitelist for the URL

    Returns:
        Response body as text

    Raises:
        FetchError: If the request fails after all retries
    """
    resp = _request(url, headers, session, allowed_domains)
    return str(resp.text)


def fetch_bytes(
    url: str,
    headers: Optional[Dict[str, str]] = None,
    session: Optional[requests.Session] = None,
    allowed_domains: Optional[Iterable[str]] = None,
) -> Tuple[bytes, Optional[str]]:
    """Fetch a binary resource.

    Returns:
        Tuple of (body, content type without parameters or None)

    Raises:
        FetchError: If the request fails after all retries
    """
    resp = _request(url, headers, session, allowed_domains)
    content_type = resp.headers.get("Content-Type")
    if content_type:
        content_type = content_type.split(";")[0].strip() or None
    return resp.content, content_type
