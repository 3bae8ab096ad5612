"""Operator-invoked catalog cleanups.

Each operation only builds a MaintenancePlan by reading the store;
execute_plan() carries it out. Nothing here runs as part of a sync.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from motosync.content_store import BrandResolver, SanityClient
from motosync.logging_config import get_logger, log_sync_event
from motosync.models import Brand

__all__ = [
    "MaintenanceError",
    "MaintenancePlan",
    "plan_imageless",
    "plan_stale_year",
    "plan_model_match",
    "plan_brand",
    "plan_merge_brand",
    "execute_plan",
    "OPERATIONS",
]

logger = get_logger("maintenance")

RECORDS_QUERY = """
*[_type == "motorcycle" && brand._ref == $brandId && condition == $condition] {
  _id, model, year, "imageCount": count(images)
} | order(model asc)
"""

BRAND_BY_EXACT_NAME_QUERY = '*[_type == "brand" && name == $name] { _id, name, "slug": slug.current }'

REFERENCING_RECORDS_QUERY = """
*[_type == "motorcycle" && brand._ref == $brandId] { _id, model, year }
"""


class MaintenanceError(Exception):
    """Raised when an operation cannot be planned (e.g. unknown brand)."""
    pass


@dataclass
class MaintenancePlan:
    """The writes an operation would perform."""

    operation: str
    description: str
    # (document id, human label)
    deletions: List[Tuple[str, str]] = field(default_factory=list)
    # (document id, fields to set, human label)
    patches: List[Tuple[str, Dict[str, Any], str]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.deletions and not self.patches

    def lines(self) -> List[str]:
        out = [f"{self.operation}: {self.description}"]
        if self.is_empty:
            out.append("  nothing to do")
        for _, _, label in self.patches:
            out.append(f"  patch  {label}")
        for _, label in self.deletions:
            out.append(f"  delete {label}")
        return out


def _brand(store: SanityClient, name: str) -> Brand:
    brand = BrandResolver(store).find(name)
    if brand is None:
        raise MaintenanceError(f"Brand not found: {name}")
    return brand


def _records(store: SanityClient, brand: Brand, condition: str) -> List[Dict[str, Any]]:
    return store.query(RECORDS_QUERY, {"brandId": brand.id, "condition": condition}) or []


def _label(row: Dict[str, Any]) -> str:
    return f"{row.get('model') or '?'} ({row.get('year') or '?'}) [{row['_id']}]"


def plan_imageless(store: SanityClient, brand_name: str, condition: str) -> MaintenancePlan:
    """Records of a brand and condition with no images."""
    brand = _brand(store, brand_name)
    rows = [r for r in _records(store, brand, condition) if not r.get("imageCount")]
    return MaintenancePlan(
        operation="imageless",
        description=f"{brand.name} '{condition}' records without images",
        deletions=[(r["_id"], _label(r)) for r in rows],
    )


def plan_stale_year(store: SanityClient, brand_name: str, condition: str, min_year: int) -> MaintenancePlan:
    """Records of a brand and condition with a model year below min_year."""
    brand = _brand(store, brand_name)
    rows = [
        r for r in _records(store, brand, condition)
        if r.get("year") is not None and r["year"] < min_year
    ]
    return MaintenancePlan(
        operation="stale-year",
        description=f"{brand.name} '{condition}' records older than {min_year}",
        deletions=[(r["_id"], _label(r)) for r in rows],
    )


def plan_model_match(store: SanityClient, brand_name: str, condition: str, substring: str) -> MaintenancePlan:
    """Records of a brand and condition whose model contains substring (case-insensitive)."""
    if not substring.strip():
        raise MaintenanceError("An empty model substring would match every record")
    brand = _brand(store, brand_name)
    needle = substring.strip().casefold()
    rows = [r for r in _records(store, brand, condition) if needle in (r.get("model") or "").casefold()]
    return MaintenancePlan(
        operation="model-match",
        description=f"{brand.name} '{condition}' records matching {substring!r}",
        deletions=[(r["_id"], _label(r)) for r in rows],
    )


def plan_brand(store: SanityClient, brand_name: str, condition: str) -> MaintenancePlan:
    """Every record of a brand and condition."""
    brand = _brand(store, brand_name)
    rows = _records(store, brand, condition)
    return MaintenancePlan(
        operation="brand",
        description=f"all {brand.name} '{condition}' records",
        deletions=[(r["_id"], _label(r)) for r in rows],
    )


def plan_merge_brand(store: SanityClient, duplicate_name: str, canonical_name: str) -> MaintenancePlan:
    """Re-point records from a duplicate brand to the canonical one, then delete it.

    Names are matched exactly, since the duplicate usually differs from the
    canonical brand only in case ("Husqvarna" vs "HUSQVARNA").
    """
    duplicates = store.query(BRAND_BY_EXACT_NAME_QUERY, {"name": duplicate_name}) or []
    canonicals = store.query(BRAND_BY_EXACT_NAME_QUERY, {"name": canonical_name}) or []
    if not duplicates:
        raise MaintenanceError(f"Brand not found: {duplicate_name}")
    if not canonicals:
        raise MaintenanceError(f"Brand not found: {canonical_name}")

    duplicate_id = duplicates[0]["_id"]
    canonical_id = canonicals[0]["_id"]
    if duplicate_id == canonical_id:
        raise MaintenanceError("Duplicate and canonical brand are the same document")

    rows = store.query(REFERENCING_RECORDS_QUERY, {"brandId": duplicate_id}) or []
    reference = {"brand": {"_type": "reference", "_ref": canonical_id}}
    return MaintenancePlan(
        operation="merge-brand",
        description=f"merge brand {duplicate_name!r} into {canonical_name!r}",
        patches=[(r["_id"], reference, _label(r)) for r in rows],
        deletions=[(duplicate_id, f"brand {duplicate_name} [{duplicate_id}]")],
    )


def execute_plan(plan: MaintenancePlan, store: SanityClient, dry_run: bool = False, confirmed: bool = False) -> int:
    """Print a plan and, when confirmed and not a dry run, carry it out.

    Patches run before deletions so that no record is left referencing a
    deleted brand.

    Returns:
        Number of writes performed
    """
    for line in plan.lines():
        print(line)

    if plan.is_empty:
        return 0
    if dry_run:
        print("Dry run: nothing written")
        return 0
    if not confirmed:
        print("Re-run with --yes to apply")
        return 0

    writes = 0
    for doc_id, fields, label in plan.patches:
        store.patch(doc_id, fields)
        writes += 1
        logger.info(f"Patched {label}")

    for doc_id, label in plan.deletions:
        store.delete(doc_id)
        writes += 1
        log_sync_event("maintenance_delete", {
            "message": f"Deleted {label}",
            "operation": plan.operation,
            "record_id": doc_id,
        })
    return writes


OPERATIONS = ("imageless", "stale-year", "model-match", "brand", "merge-brand")
