"""Content store (Sanity HTTP API) client and brand helpers.

The pipeline needs only a handful of primitives from the store: a GROQ
query, create / patch / delete mutations and a binary image upload. They
are implemented over plain requests calls against the documented HTTP API.
"""

import json
from typing import Any, Dict, List, Optional

import requests  # type: ignore[import-untyped]

from motosync.config import REQUEST_TIMEOUT, SanitySettings
from motosync.html_utils import slugify
from motosync.logging_config import get_logger, log_sync_event
from motosync.models import Brand, ExistingRecord

__all__ = [
    "ContentStoreError",
    "ContentStoreAuthError",
    "SanityClient",
    "BrandResolver",
    "EXISTING_RECORDS_QUERY",
    "record_from_document",
]

logger = get_logger("content_store")

# Fields read back for reconciliation; cilindrata is the stored name of displacement
EXISTING_RECORDS_QUERY = """
*[_type == "motorcycle" && condition == $condition] {
  _id, model, condition, year, price, kilometers, cilindrata, shortDescription,
  motoItProductId,
  "brandId": brand._ref,
  "imageCount": count(images)
}
"""

BRANDS_QUERY = '*[_type == "brand"] { _id, name, "slug": slug.current }'


class ContentStoreError(Exception):
    """Raised when a content store request fails."""
    pass


class ContentStoreAuthError(ContentStoreError):
    """Raised on 401/403: the token is missing, expired or lacks rights."""
    pass


class SanityClient:
    """Minimal Sanity HTTP API client.

    Usage:
        client = SanityClient(load_settings())
        brands = client.query('*[_type == "brand"]')
        doc_id = client.create({"_type": "brand", "name": "KTM"})
        client.patch(doc_id, {"name": "KTM"})
    """

    def __init__(self, settings: SanitySettings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.session = session or requests.Session()
        if settings.token:
            self.session.headers["Authorization"] = f"Bearer {settings.token}"
        self.base_url = (
            f"https://{settings.project_id}.api.sanity.io/v{settings.api_version}"
        )

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    def _check(self, resp: requests.Response, action: str) -> Dict[str, Any]:
        if resp.status_code in (401, 403):
            raise ContentStoreAuthError(
                f"{action} rejected with HTTP {resp.status_code}: check SANITY_API_TOKEN"
            )
        if not 200 <= resp.status_code < 300:
            raise ContentStoreError(f"{action} failed with HTTP {resp.status_code}: {resp.text[:300]}")
        try:
            return resp.json()
        except ValueError as e:
            raise ContentStoreError(f"{action} returned invalid JSON") from e

    def _send(self, method: str, url: str, action: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            resp = self.session.request(method, url, timeout=REQUEST_TIMEOUT, **kwargs)
        except requests.exceptions.RequestException as e:
            raise ContentStoreError(f"{action} failed: {e}") from e
        return self._check(resp, action)

    def _mutate(self, mutations: List[Dict[str, Any]], action: str) -> Dict[str, Any]:
        url = f"{self.base_url}/data/mutate/{self.settings.dataset}"
        return self._send(
            "POST",
            url,
            action,
            params={"returnIds": "true", "visibility": "sync"},
            json={"mutations": mutations},
        )

    # -------------------------------------------------------------------------
    # Primitives
    # -------------------------------------------------------------------------

    def query(self, groq: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Run a GROQ query and return its result."""
        url = f"{self.base_url}/data/query/{self.settings.dataset}"
        query_params = {"query": groq}
        for key, value in (params or {}).items():
            query_params[f"${key}"] = json.dumps(value)
        data = self._send("GET", url, "query", params=query_params)
        return data.get("result")

    def create(self, document: Dict[str, Any]) -> str:
        """Create a document and return its id."""
        data = self._mutate([{"create": document}], f"create {document.get('_type')}")
        results = data.get("results") or []
        if not results or not results[0].get("id"):
            raise ContentStoreError("create returned no document id")
        return str(results[0]["id"])

    def patch(self, doc_id: str, fields: Dict[str, Any]) -> None:
        """Set the given fields on a document, leaving the others untouched."""
        self._mutate([{"patch": {"id": doc_id, "set": fields}}], f"patch {doc_id}")

    def delete(self, doc_id: str) -> None:
        """Delete a document."""
        self._mutate([{"delete": {"id": doc_id}}], f"delete {doc_id}")

    def upload_asset(self, data: bytes, content_type: str, filename: str) -> str:
        """Upload image bytes and return the asset document id."""
        url = f"{self.base_url}/assets/images/{self.settings.dataset}"
        result = self._send(
            "POST",
            url,
            f"upload {filename}",
            params={"filename": filename},
            data=data,
            headers={"Content-Type": content_type},
        )
        document = result.get("document") or {}
        if not document.get("_id"):
            raise ContentStoreError("asset upload returned no asset id")
        return str(document["_id"])


def record_from_document(doc: Dict[str, Any]) -> ExistingRecord:
    """Build an ExistingRecord from a row of EXISTING_RECORDS_QUERY."""
    return ExistingRecord(
        id=doc["_id"],
        brand_id=doc.get("brandId"),
        model=doc.get("model") or "",
        condition=doc.get("condition") or "",
        year=doc.get("year"),
        price=doc.get("price"),
        displacement=doc.get("cilindrata") or None,
        kilometers=doc.get("kilometers"),
        short_description=doc.get("shortDescription") or "",
        image_count=doc.get("imageCount") or 0,
        source_id=doc.get("motoItProductId"),
    )


class BrandResolver:
    """Finds brands by case-insensitive name and creates missing ones lazily.

    All brands are loaded once; names are compared upper-cased so "Husqvarna"
    and "HUSQVARNA" resolve to the same document.
    """

    def __init__(self, store: SanityClient, dry_run: bool = False):
        self.store = store
        self.dry_run = dry_run
        self._brands: Optional[Dict[str, Brand]] = None

    def _load(self) -> Dict[str, Brand]:
        if self._brands is None:
            rows = self.store.query(BRANDS_QUERY) or []
            self._brands = {}
            for row in rows:
                name = (row.get("name") or "").strip()
                if not name:
                    continue
                key = name.upper()
                # Keep the first document when duplicates already exist
                self._brands.setdefault(
                    key, Brand(id=row["_id"], name=name, slug=row.get("slug") or slugify(name))
                )
        return self._brands

    def find(self, name: str) -> Optional[Brand]:
        return self._load().get(name.strip().upper())

    def resolve(self, name: str) -> Brand:
        """Return the brand called name, creating it if needed."""
        brands = self._load()
        normalized = " ".join(name.split()).upper()
        existing = brands.get(normalized)
        if existing:
            return existing

        slug = slugify(normalized)
        if self.dry_run:
            brand = Brand(id=f"brand-{slug}", name=normalized, slug=slug)
        else:
            brand_id = self.store.create({
                "_type": "brand",
                "name": normalized,
                "slug": {"_type": "slug", "current": slug},
            })
            brand = Brand(id=brand_id, name=normalized, slug=slug)

        log_sync_event("brand_created", {
            "message": f"  New brand: {normalized} (slug: {slug})" + (" [dry run]" if self.dry_run else ""),
            "brand": normalized,
            "brand_id": brand.id,
            "dry_run": self.dry_run,
        })
        brands[normalized] = brand
        return brand
