"""Data models for catalog items and sync bookkeeping."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

__all__ = [
    "CandidateRef",
    "CatalogItem",
    "Brand",
    "ExistingRecord",
    "ActionKind",
    "Action",
    "SyncStats",
]


@dataclass(frozen=True)
class CandidateRef:
    """A discovered reference to one item's detail page, not yet fetched."""

    url: str
    source_id: Optional[str] = None
    # Facts learned during discovery (e.g. a category derived from a slug)
    hints: Dict[str, str] = field(default_factory=dict, compare=False, hash=False)


@dataclass
class CatalogItem:
    """A normalized record produced by extraction.

    Field names follow Python conventions; the content store document uses
    its own names (see reconcile.item_to_document).
    """

    # Required fields
    source_id: str
    brand_name: str
    model: str
    year: int
    category: str
    condition: str
    url: str

    # Optional fields
    price: Optional[float] = None
    displacement: Optional[int] = None
    kilometers: Optional[int] = None
    short_description: str = ""

    # Source image URLs, hero first, at most MAX_IMAGES
    images: List[str] = field(default_factory=list)


@dataclass
class Brand:
    """A brand document in the content store."""

    id: str
    name: str
    slug: str


@dataclass
class ExistingRecord:
    """The part of a stored motorcycle document the reconciler compares."""

    id: str
    brand_id: Optional[str]
    model: str
    condition: str
    year: Optional[int] = None
    price: Optional[float] = None
    displacement: Optional[int] = None
    kilometers: Optional[int] = None
    short_description: str = ""
    image_count: int = 0
    source_id: Optional[str] = None


class ActionKind(Enum):
    CREATE = "create"
    PATCH = "patch"
    SKIP = "skip"


@dataclass
class Action:
    """The reconciler's decision for one extracted item."""

    kind: ActionKind
    item: CatalogItem
    brand_id: str
    existing: Optional[ExistingRecord] = None
    # Scalar fields to set (PATCH only), keyed by CatalogItem attribute name
    fields: Dict[str, Any] = field(default_factory=dict)
    # Whether the gallery should be re-uploaded (PATCH only)
    replace_images: bool = False

    @property
    def label(self) -> str:
        return f"{self.item.brand_name} {self.item.model}"


@dataclass
class SyncStats:
    """Aggregate counts printed at the end of a run."""

    source: str
    dry_run: bool = False
    discovered: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    rejected: int = 0
    failed: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "dry_run": self.dry_run,
            "discovered": self.discovered,
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "rejected": self.rejected,
            "failed": self.failed,
        }
