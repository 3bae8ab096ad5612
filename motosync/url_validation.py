"""URL validation and normalization utilities.

Provides security-focused URL validation for scraped links and image
sources before they are fetched or uploaded.
"""

import re
from typing import Iterable, Optional
from urllib.parse import urljoin, urlparse, urlunparse

__all__ = [
    "URLValidationError",
    "sanitize_url",
    "validate_url",
    "validate_image_url",
    "absolutize_url",
    "canonical_url",
]


class URLValidationError(Exception):
    """Raised when URL validation fails."""
    pass


IMAGE_EXTENSION_PATTERN = re.compile(r"\.(jpg|jpeg|png|webp|avif|gif)(\?.*)?$", re.IGNORECASE)

# Dangerous URL schemes to reject
DANGEROUS_SCHEMES = {"javascript", "data", "vbscript", "file"}

SUSPICIOUS_PATTERNS = [
    r"\.\.\/",           # Path traversal
    r"%2e%2e",           # Encoded path traversal
    r"<script",          # XSS attempt
    r"javascript:",      # JS injection
]


def sanitize_url(url: str) -> str:
    """Strip whitespace and control characters from a URL."""
    if not url:
        return ""

    url = url.strip()
    url = re.sub(r"[\x00-\x1f\x7f-\x9f]", "", url)
    url = url.replace("%00", "")

    return url


def validate_url(
    url: str,
    allowed_domains: Optional[Iterable[str]] = None,
    require_https: bool = False,
) -> str:
    """Validate a URL for safety.

    Args:
        url: URL to validate
        allowed_domains: Domains accepted for this URL; subdomains of an
            allowed domain are accepted too. None disables the domain check.
        require_https: Whether to require the HTTPS scheme

    Returns:
        Sanitized URL

    Raises:
        URLValidationError: If the URL is invalid or from an untrusted domain
    """
    if not url:
        raise URLValidationError("URL is empty")

    url = sanitize_url(url)

    try:
        parsed = urlparse(url)
    except ValueError as e:
        raise URLValidationError(f"Failed to parse URL: {e}") from e

    scheme = parsed.scheme.lower()
    if scheme in DANGEROUS_SCHEMES:
        raise URLValidationError(f"Dangerous URL scheme: {scheme}")

    if require_https and scheme != "https":
        raise URLValidationError(f"URL must use HTTPS, got: {scheme}")

    if scheme not in ("http", "https"):
        raise URLValidationError(f"Invalid URL scheme: {scheme}")

    domain = (parsed.hostname or "").lower()
    if not domain:
        raise URLValidationError("URL has no domain")

    if allowed_domains is not None:
        allowed = {d.lower() for d in allowed_domains}
        if not any(domain == d or domain.endswith("." + d) for d in allowed):
            raise URLValidationError(
                f"URL domain '{domain}' not in allowed domains: {sorted(allowed)}"
            )

    url_lower = url.lower()
    for pattern in SUSPICIOUS_PATTERNS:
        if re.search(pattern, url_lower):
            raise URLValidationError(f"URL contains suspicious pattern: {pattern}")

    return url


def validate_image_url(url: str, allowed_domains: Optional[Iterable[str]] = None) -> str:
    """Validate an image URL.

    Image URLs must pass validate_url and either carry an image extension or
    live under an uploads/CDN path.

    Raises:
        URLValidationError: If the URL does not look like an image
    """
    url = validate_url(url, allowed_domains=allowed_domains)

    path = urlparse(url).path.lower()
    if not IMAGE_EXTENSION_PATTERN.search(path):
        if not any(marker in url.lower() for marker in ("uploads", "cdn", "assets", "media")):
            raise URLValidationError(f"URL does not look like an image: {url}")

    return url


def absolutize_url(href: Optional[str], base_url: str) -> Optional[str]:
    """Turn a scraped href/src into an absolute http(s) URL.

    Protocol-relative URLs (//cdn...) get https. Returns None for empty,
    fragment-only or non-http values.
    """
    if not href:
        return None
    href = sanitize_url(href)
    if not href or href.startswith("#"):
        return None
    if href.startswith("//"):
        href = "https:" + href
    full = urljoin(base_url, href)
    if urlparse(full).scheme not in ("http", "https"):
        return None
    return full


def canonical_url(url: str) -> str:
    """Canonical form used to deduplicate item links.

    Lower-cases scheme and host, drops query, fragment and trailing slash.
    """
    parsed = urlparse(sanitize_url(url))
    path = parsed.path.rstrip("/") or "/"
    return urlunparse((parsed.scheme.lower(), parsed.netloc.lower(), path, "", "", ""))
