"""Configuration and constants for the catalog sync."""

import os
from dataclasses import dataclass
from typing import Optional, Tuple

from dotenv import load_dotenv

__all__ = [
    "HEADERS",
    "REQUEST_TIMEOUT",
    "MAX_ATTEMPTS",
    "RETRY_BASE_DELAY",
    "UPLOAD_DELAY",
    "DEFAULT_PRICE_BOUNDS",
    "MAX_IMAGES",
    "MIN_YEAR",
    "MAX_YEAR",
    "STUDIO_WHITE_THRESHOLD",
    "STUDIO_CORNER_INSET",
    "MAX_IMAGES_TO_CLASSIFY",
    "CATEGORIES",
    "DEFAULT_CATEGORY",
    "CONDITION_NEW",
    "CONDITION_USED",
    "DEFAULT_DATASET",
    "DEFAULT_API_VERSION",
    "ConfigError",
    "SanitySettings",
    "load_settings",
]

# Origin sites reject or degrade responses for non-browser clients
HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "it-IT,it;q=0.9,en-US;q=0.8,en;q=0.7",
}

# Request timeout (seconds)
REQUEST_TIMEOUT = 20

# Retry settings with linear backoff (attempt * base seconds)
MAX_ATTEMPTS = 3
RETRY_BASE_DELAY = 2.0

# Pause between consecutive image uploads (seconds)
UPLOAD_DELAY = 0.3

# Prices outside these bounds are page noise, not list prices
DEFAULT_PRICE_BOUNDS: Tuple[float, float] = (500, 50000)

# Catalog display constraint
MAX_IMAGES = 4

MIN_YEAR = 1900
MAX_YEAR = 2100

# Pixel inspection: a corner is "white" when every channel exceeds this
STUDIO_WHITE_THRESHOLD = 245
STUDIO_CORNER_INSET = 10
MAX_IMAGES_TO_CLASSIFY = 12

CATEGORIES = ("strada", "enduro", "cross", "scooter")
DEFAULT_CATEGORY = "strada"

CONDITION_NEW = "nuova"
CONDITION_USED = "usata"

# Content store
DEFAULT_DATASET = "production"
DEFAULT_API_VERSION = "2024-01-01"


class ConfigError(Exception):
    """Raised when required settings are missing or invalid."""
    pass


@dataclass(frozen=True)
class SanitySettings:
    """Connection settings for the content store."""

    project_id: str
    dataset: str = DEFAULT_DATASET
    api_version: str = DEFAULT_API_VERSION
    token: Optional[str] = None


def load_settings(require_token: bool = True) -> SanitySettings:
    """Load content store settings from the environment (and a .env file).

    Args:
        require_token: Whether SANITY_API_TOKEN must be present. Dry runs only
            read, so they can go without a write token.

    Returns:
        SanitySettings

    Raises:
        ConfigError: If a required variable is missing
    """
    load_dotenv()

    project_id = os.getenv("SANITY_PROJECT_ID", "").strip()
    if not project_id:
        raise ConfigError("SANITY_PROJECT_ID is not set")

    token = os.getenv("SANITY_API_TOKEN", "").strip() or None
    if require_token and not token:
        raise ConfigError("SANITY_API_TOKEN is not set (required unless --dry-run)")

    return SanitySettings(
        project_id=project_id,
        dataset=os.getenv("SANITY_DATASET", DEFAULT_DATASET).strip() or DEFAULT_DATASET,
        api_version=os.getenv("SANITY_API_VERSION", DEFAULT_API_VERSION).strip() or DEFAULT_API_VERSION,
        token=token,
    )
