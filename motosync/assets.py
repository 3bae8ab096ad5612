"""Copy origin images into the content store's asset library."""

import logging
import mimetypes
import time
import uuid
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlparse

import requests  # type: ignore[import-untyped]

from motosync.config import UPLOAD_DELAY
from motosync.content_store import ContentStoreAuthError, ContentStoreError, SanityClient
from motosync.fetcher import FetchError, fetch_bytes
from motosync.logging_config import log_sync_event
from motosync.url_validation import URLValidationError, validate_image_url

__all__ = [
    "UploadError",
    "upload_image",
    "upload_images",
    "image_entry",
]

DEFAULT_CONTENT_TYPE = "image/jpeg"


class UploadError(Exception):
    """Raised when one image cannot be downloaded or uploaded."""

    def __init__(self, url: str, message: str):
        super().__init__(f"{message} ({url})")
        self.url = url


def _content_type(url: str, reported: Optional[str]) -> str:
    if reported and reported.startswith("image/"):
        return reported
    guessed, _ = mimetypes.guess_type(urlparse(url).path)
    if guessed and guessed.startswith("image/"):
        return guessed
    return DEFAULT_CONTENT_TYPE


def upload_image(
    image_url: str,
    store: SanityClient,
    headers: Optional[Dict[str, str]] = None,
    filename_prefix: str = "image",
    session: Optional[requests.Session] = None,
) -> str:
    """Download one image and upload it as an asset.

    Args:
        image_url: Origin URL
        store: Content store client
        headers: Extra download headers (e.g. a Referer the CDN requires)
        filename_prefix: Prefix of the uploaded file name
        session: Optional requests.Session for the download

    Returns:
        The asset id

    Raises:
        UploadError: If the download or the upload fails
        ContentStoreAuthError: If the store rejects the credentials
    """
    try:
        image_url = validate_image_url(image_url)
    except URLValidationError as e:
        raise UploadError(image_url, f"Not an image URL: {e}") from e

    try:
        data, reported_type = fetch_bytes(image_url, headers=headers, session=session)
    except FetchError as e:
        raise UploadError(image_url, f"Download failed: {e}") from e
    if not data:
        raise UploadError(image_url, "Empty image body")

    content_type = _content_type(image_url, reported_type)
    extension = mimetypes.guess_extension(content_type) or ".jpg"
    filename = f"{filename_prefix}-{int(time.time() * 1000)}{extension}"

    try:
        return store.upload_asset(data, content_type, filename)
    except ContentStoreAuthError:
        raise
    except ContentStoreError as e:
        raise UploadError(image_url, f"Upload failed: {e}") from e


def image_entry(asset_id: str, alt: str) -> Dict[str, Any]:
    """An image array member referencing an uploaded asset."""
    return {
        "_key": uuid.uuid4().hex[:12],
        "_type": "image",
        "alt": alt,
        "asset": {"_type": "reference", "_ref": asset_id},
    }


def upload_images(
    image_urls: Iterable[str],
    store: SanityClient,
    alt: str,
    headers: Optional[Dict[str, str]] = None,
    filename_prefix: str = "image",
    session: Optional[requests.Session] = None,
) -> List[Dict[str, Any]]:
    """Upload images sequentially, skipping the ones that fail.

    Returns:
        Image entries in input order for the successful uploads
    """
    entries: List[Dict[str, Any]] = []
    for i, url in enumerate(image_urls):
        if i > 0:
            time.sleep(UPLOAD_DELAY)
        try:
            asset_id = upload_image(url, store, headers, filename_prefix, session)
        except UploadError as e:
            log_sync_event("upload_error", {
                "message": f"    Image upload failed: {e}",
                "url": url,
                "error": str(e),
            }, level=logging.WARNING)
            continue
        entries.append(image_entry(asset_id, alt))
    return entries
