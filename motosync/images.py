"""Image acceptance: whitelist filtering and studio-shot detection.

A missing photo only makes a listing poorer, while a white-background studio
cutout looks broken on the site, so every source admits images through a
whitelist of known-good markers and anything that looks like a studio shot
is dropped.
"""

from io import BytesIO
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from PIL import Image, UnidentifiedImageError

from motosync.config import MAX_IMAGES, STUDIO_CORNER_INSET, STUDIO_WHITE_THRESHOLD
from motosync.fetcher import FetchError
from motosync.logging_config import get_logger

__all__ = [
    "filter_images",
    "is_studio_pixels",
    "StudioClassifier",
]

logger = get_logger("images")


def filter_images(
    urls: Iterable[Optional[str]],
    accept: Callable[[str], bool],
    studio_markers: Sequence[str] = (),
    limit: int = MAX_IMAGES,
) -> List[str]:
    """Apply a whitelist to candidate image URLs.

    Args:
        urls: Candidate URLs in priority order (None entries are ignored)
        accept: Predicate that recognises a known-good image
        studio_markers: Case-insensitive substrings that always exclude a URL
        limit: Maximum number of URLs returned

    Returns:
        Accepted URLs, deduplicated, in input order, at most `limit`
    """
    markers = [m.lower() for m in studio_markers]
    accepted: List[str] = []
    for url in urls:
        if not url or url in accepted:
            continue
        lower = url.lower()
        if any(marker in lower for marker in markers):
            continue
        if not accept(url):
            continue
        accepted.append(url)
        if len(accepted) >= limit:
            break
    return accepted


def _is_near_white(pixel: Tuple[int, ...]) -> bool:
    return all(channel > STUDIO_WHITE_THRESHOLD for channel in pixel[:3])


def is_studio_pixels(data: bytes) -> bool:
    """Whether image bytes look like a studio shot.

    Samples the top-left and top-right corners (slightly inset to skip
    borders). The image is studio only when both corners are near-white.

    Raises:
        ValueError: If the bytes cannot be decoded as an image
    """
    try:
        with Image.open(BytesIO(data)) as img:
            rgb = img.convert("RGB")
            width, height = rgb.size
            inset_x = min(STUDIO_CORNER_INSET, width - 1)
            inset_y = min(STUDIO_CORNER_INSET, height - 1)
            top_left = rgb.getpixel((inset_x, inset_y))
            top_right = rgb.getpixel((max(width - 1 - inset_x, 0), inset_y))
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
        raise ValueError(f"Cannot decode image: {e}") from e

    return _is_near_white(top_left) and _is_near_white(top_right)


class StudioClassifier:
    """Downloads images and classifies them by corner pixels.

    Any failure to download or decode counts as studio: an unverified image
    is never admitted. Results are cached per URL for the run.
    """

    def __init__(self, fetch_bytes: Callable[[str], Tuple[bytes, Optional[str]]]):
        self._fetch_bytes = fetch_bytes
        self._cache: Dict[str, bool] = {}

    def is_studio(self, url: str) -> bool:
        if url in self._cache:
            return self._cache[url]
        try:
            data, _ = self._fetch_bytes(url)
            studio = is_studio_pixels(data)
        except (FetchError, ValueError) as e:
            logger.debug(f"Could not inspect {url}, treating as studio: {e}")
            studio = True
        except Exception as e:
            logger.warning(f"Unexpected error inspecting {url}, treating as studio: {e}")
            studio = True
        self._cache[url] = studio
        return studio

    def action_images(self, urls: Iterable[str], limit: int = MAX_IMAGES) -> List[str]:
        """Return the URLs that are not studio shots, in order, up to limit."""
        accepted: List[str] = []
        for url in urls:
            if len(accepted) >= limit:
                break
            if not self.is_studio(url):
                accepted.append(url)
        return accepted
