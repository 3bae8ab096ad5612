"""Shared test fixtures for the sync test suite."""

import copy
from io import BytesIO
from typing import Any, Dict, List, Optional, Sequence, Tuple
from unittest.mock import MagicMock

import pytest
from PIL import Image

from motosync.content_store import BRANDS_QUERY, EXISTING_RECORDS_QUERY
from motosync.maintenance import BRAND_BY_EXACT_NAME_QUERY, RECORDS_QUERY, REFERENCING_RECORDS_QUERY


class FakeContentStore:
    """In-memory stand-in for SanityClient.

    Answers the handful of GROQ queries the package issues and records
    every mutating call in `writes`.
    """

    def __init__(self):
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.writes: List[Tuple[str, Any]] = []
        self._counter = 0

    def _new_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}-{self._counter}"

    # Seeding helpers (not recorded as writes)

    def add_brand(self, name: str) -> str:
        doc_id = self._new_id("brand")
        self.documents[doc_id] = {
            "_id": doc_id,
            "_type": "brand",
            "name": name,
            "slug": {"_type": "slug", "current": name.lower()},
        }
        return doc_id

    def add_motorcycle(self, brand_id: str, model: str, condition: str = "nuova", images: int = 2, **fields) -> str:
        doc_id = self._new_id("moto")
        doc = {
            "_id": doc_id,
            "_type": "motorcycle",
            "model": model,
            "brand": {"_type": "reference", "_ref": brand_id},
            "condition": condition,
            "images": [{"_key": f"k{i}", "_type": "image"} for i in range(images)],
        }
        doc.update(fields)
        self.documents[doc_id] = doc
        return doc_id

    def motorcycles(self) -> List[Dict[str, Any]]:
        return [d for d in self.documents.values() if d["_type"] == "motorcycle"]

    def brands(self) -> List[Dict[str, Any]]:
        return [d for d in self.documents.values() if d["_type"] == "brand"]

    # SanityClient interface

    def query(self, groq: str, params: Optional[Dict[str, Any]] = None) -> Any:
        params = params or {}
        if groq == BRANDS_QUERY:
            return [{"_id": b["_id"], "name": b["name"], "slug": b["slug"]["current"]} for b in self.brands()]
        if groq == BRAND_BY_EXACT_NAME_QUERY:
            return [
                {"_id": b["_id"], "name": b["name"], "slug": b["slug"]["current"]}
                for b in self.brands() if b["name"] == params["name"]
            ]
        if groq == EXISTING_RECORDS_QUERY:
            return [
                {
                    "_id": d["_id"],
                    "model": d.get("model"),
                    "condition": d.get("condition"),
                    "year": d.get("year"),
                    "price": d.get("price"),
                    "kilometers": d.get("kilometers"),
                    "cilindrata": d.get("cilindrata"),
                    "shortDescription": d.get("shortDescription"),
                    "motoItProductId": d.get("motoItProductId"),
                    "brandId": d["brand"]["_ref"],
                    "imageCount": len(d.get("images") or []),
                }
                for d in self.motorcycles() if d.get("condition") == params["condition"]
            ]
        if groq == RECORDS_QUERY:
            rows = [
                {
                    "_id": d["_id"],
                    "model": d.get("model"),
                    "year": d.get("year"),
                    "imageCount": len(d.get("images") or []),
                }
                for d in self.motorcycles()
                if d["brand"]["_ref"] == params["brandId"] and d.get("condition") == params["condition"]
            ]
            return sorted(rows, key=lambda r: r["model"] or "")
        if groq == REFERENCING_RECORDS_QUERY:
            return [
                {"_id": d["_id"], "model": d.get("model"), "year": d.get("year")}
                for d in self.motorcycles() if d["brand"]["_ref"] == params["brandId"]
            ]
        raise AssertionError(f"Unexpected query: {groq}")

    def create(self, document: Dict[str, Any]) -> str:
        self.writes.append(("create", copy.deepcopy(document)))
        doc_id = self._new_id(document["_type"])
        self.documents[doc_id] = dict(copy.deepcopy(document), _id=doc_id)
        return doc_id

    def patch(self, doc_id: str, fields: Dict[str, Any]) -> None:
        self.writes.append(("patch", (doc_id, copy.deepcopy(fields))))
        self.documents[doc_id].update(copy.deepcopy(fields))

    def delete(self, doc_id: str) -> None:
        self.writes.append(("delete", doc_id))
        del self.documents[doc_id]

    def upload_asset(self, data: bytes, content_type: str, filename: str) -> str:
        self.writes.append(("upload", filename))
        return self._new_id("image-asset")

    def writes_of(self, kind: str) -> List[Any]:
        return [payload for k, payload in self.writes if k == kind]


@pytest.fixture
def store():
    """Empty in-memory content store."""
    return FakeContentStore()


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    """Make every delay instant."""
    monkeypatch.setattr("time.sleep", lambda seconds: None)


@pytest.fixture
def image_downloads(monkeypatch):
    """Serve fake image bytes to the uploader; returns the list of downloaded URLs."""
    downloaded: List[str] = []

    def fake_fetch_bytes(url, headers=None, session=None, allowed_domains=None):
        downloaded.append(url)
        return b"\xff\xd8fake-jpeg", "image/jpeg"

    monkeypatch.setattr("motosync.assets.fetch_bytes", fake_fetch_bytes)
    return downloaded


@pytest.fixture
def offline_session():
    """A session mock that fails the test if an adapter reaches the network."""
    session = MagicMock()
    session.get.side_effect = AssertionError("unexpected network access")
    return session


def make_image_bytes(
    color: Tuple[int, int, int],
    size: Tuple[int, int] = (120, 80),
    corners: Optional[Dict[str, Tuple[int, int, int]]] = None,
    fmt: str = "JPEG",
) -> bytes:
    """Solid-colour image, optionally with a differently coloured top corner.

    corners maps "top_left" / "top_right" to a colour painted over a 30px
    square in that corner.
    """
    img = Image.new("RGB", size, color)
    width, _ = size
    for corner, corner_color in (corners or {}).items():
        x0 = 0 if corner == "top_left" else width - 30
        img.paste(corner_color, (x0, 0, x0 + 30, 30))
    buf = BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def ktm_model_page(
    headline: str = "2026 KTM 450 SX-F",
    price: Optional[str] = "€ 13.490",
    displacement: Optional[str] = "449,9 cm³",
    description: str = (
        "La KTM 450 SX-F è la moto da cross a quattro tempi pronta per vincere in ogni gara."
    ),
    stage_images: Sequence[str] = ("PHO_STAGE_450-SX-F_action_01.jpg",),
    detail_images: Sequence[str] = ("PHO_BIKE_DET_450sxf_action_frame.jpg",),
    slider_images: Sequence[str] = ("PHO_BIKE_DET_450sxf_action_slider.jpg",),
    studio_images: Sequence[str] = ("PHO_BIKE_90_RE_450sxf.png", "PHO_BIKE_PERS_450sxf.png"),
) -> str:
    """A KTM model page with the structure the adapter reads."""
    media = "https://azwecdnepstoragewebsiteuploads.azureedge.net"
    parts = ["<html><head><title>KTM</title></head><body>"]
    parts.append(f'<h1 class="priceinfo__headline">{headline}</h1>')
    if price is not None:
        parts.append(f'<div class="priceinfo"><span class="priceinfo__price-value">{price}</span></div>')
    if displacement is not None:
        parts.append(
            '<ul class="c-technical-data__list"><li>'
            '<span class="c-technical-data__list-label">Cilindrata</span>'
            f"<span>{displacement}</span></li></ul>"
        )
    parts.append("<p>* Prezzo consigliato IVA inclusa, franco concessionario.</p>")
    parts.append(f"<p>{description}</p>")
    for name in stage_images:
        parts.append(
            f'<picture><source media="(max-width: 600px)" srcset="{media}/MOBILE_{name} 1x">'
            f'<source srcset="{media}/{name} 1x, {media}/2x_{name} 2x">'
            f'<img src="{media}/{name}"></picture>'
        )
    for name in detail_images:
        parts.append(f'<div class="feature"><img src="{media}/{name}"></div>')
    for name in slider_images:
        parts.append(f'<div class="glide__slide"><img src="{media}/{name}"></div>')
    for name in studio_images:
        parts.append(f'<img src="{media}/{name}">')
    parts.append("</body></html>")
    return "".join(parts)
