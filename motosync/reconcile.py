"""Reconciliation of extracted items against stored records.

decide() is pure: it compares an item with the indexed state and returns
Create, Patch or Skip. apply() carries the decision out (uploads, writes)
and keeps the in-memory index in step, so a later candidate resolving to
the same record in the same run is compared against the fresh state.

Diff policy per field:
    price              patch when extracted and different
    year               patch only forward (stored missing or older)
    displacement       patch only when nothing is stored
    short_description  patch only when nothing is stored
    kilometers         patch when extracted and different (used listings)
    images             re-upload when the image count differs
"""

import dataclasses
from typing import Any, Dict, Iterable, Optional, Tuple

from motosync.assets import upload_images
from motosync.config import CONDITION_USED
from motosync.content_store import (
    EXISTING_RECORDS_QUERY,
    ContentStoreAuthError,
    ContentStoreError,
    SanityClient,
    record_from_document,
)
from motosync.html_utils import slugify
from motosync.logging_config import get_logger, log_sync_event
from motosync.models import Action, ActionKind, CatalogItem, ExistingRecord

__all__ = [
    "ReconcileError",
    "normalize_model",
    "ExistingIndex",
    "load_existing_index",
    "diff_fields",
    "decide",
    "apply",
    "item_to_document",
    "DOCUMENT_FIELDS",
]

logger = get_logger("reconcile")

# CatalogItem attribute -> stored document field
DOCUMENT_FIELDS = {
    "price": "price",
    "year": "year",
    "displacement": "cilindrata",
    "short_description": "shortDescription",
    "kilometers": "kilometers",
}


class ReconcileError(Exception):
    """Raised when applying a decision fails; aborts that item only."""
    pass


def normalize_model(model: str) -> str:
    """Case-folded, whitespace-collapsed model name used for matching."""
    return " ".join(model.split()).casefold()


NaturalKey = Tuple[Optional[str], str, str]


class ExistingIndex:
    """Stored records by natural key (brand, model, condition) and by source id.

    Records that carry a source id belong to exactly one listing. A lookup by
    source id never falls back to such a record through the natural key, so
    two listings of the same model stay two records.
    """

    def __init__(self, records: Iterable[ExistingRecord] = ()):
        self._by_key: Dict[NaturalKey, ExistingRecord] = {}
        self._unlinked_by_key: Dict[NaturalKey, ExistingRecord] = {}
        self._by_source_id: Dict[str, ExistingRecord] = {}
        for record in records:
            self.add(record)

    @staticmethod
    def key(brand_id: Optional[str], model: str, condition: str) -> NaturalKey:
        return (brand_id, normalize_model(model), condition)

    @staticmethod
    def _keep_first(table: Dict[NaturalKey, ExistingRecord], key: NaturalKey, record: ExistingRecord) -> None:
        # First stored duplicate wins for the natural key
        current = table.get(key)
        if current is None or current.id == record.id:
            table[key] = record

    def add(self, record: ExistingRecord) -> None:
        """Insert or replace a record."""
        key = self.key(record.brand_id, record.model, record.condition)
        self._keep_first(self._by_key, key, record)
        if record.source_id:
            self._by_source_id[str(record.source_id)] = record
            current = self._unlinked_by_key.get(key)
            if current is not None and current.id == record.id:
                del self._unlinked_by_key[key]
        else:
            self._keep_first(self._unlinked_by_key, key, record)

    def find(
        self,
        brand_id: Optional[str],
        model: str,
        condition: str,
        source_id: Optional[str] = None,
    ) -> Optional[ExistingRecord]:
        """Look a record up.

        With a source id, the match is the record stored under that id, or
        else a same-key record not yet linked to any listing. Without one,
        the natural key decides.
        """
        key = self.key(brand_id, model, condition)
        if source_id:
            record = self._by_source_id.get(str(source_id))
            if record is not None:
                return record
            return self._unlinked_by_key.get(key)
        return self._by_key.get(key)

    def __len__(self) -> int:
        tables = (self._by_key, self._unlinked_by_key, self._by_source_id)
        return len({r.id for table in tables for r in table.values()})


def load_existing_index(store: SanityClient, condition: str) -> ExistingIndex:
    """Read every stored record of a condition into an index."""
    rows = store.query(EXISTING_RECORDS_QUERY, {"condition": condition}) or []
    index = ExistingIndex(record_from_document(row) for row in rows)
    logger.info(f"Loaded {len(index)} existing '{condition}' records")
    return index


def diff_fields(item: CatalogItem, existing: ExistingRecord) -> Dict[str, Any]:
    """Scalar fields to patch, keyed by CatalogItem attribute name."""
    fields: Dict[str, Any] = {}

    if item.price is not None and item.price != existing.price:
        fields["price"] = item.price

    if existing.year is None or item.year > existing.year:
        fields["year"] = item.year

    if item.displacement and not existing.displacement:
        fields["displacement"] = item.displacement

    if item.short_description and not existing.short_description:
        fields["short_description"] = item.short_description

    if (
        item.condition == CONDITION_USED
        and item.kilometers is not None
        and item.kilometers != existing.kilometers
    ):
        fields["kilometers"] = item.kilometers

    return fields


def decide(
    item: CatalogItem,
    brand_id: str,
    index: ExistingIndex,
    match_source_id: bool = False,
) -> Action:
    """Choose Create, Patch or Skip for an item.

    Args:
        item: Extracted item
        brand_id: Resolved brand document id
        index: Stored state
        match_source_id: Match on the source's own listing id, claiming an unlinked
            record when no stored record carries it
    """
    existing = index.find(
        brand_id,
        item.model,
        item.condition,
        source_id=item.source_id if match_source_id else None,
    )
    if existing is None:
        return Action(ActionKind.CREATE, item, brand_id)

    fields = diff_fields(item, existing)
    if match_source_id and item.source_id and str(existing.source_id or "") != str(item.source_id):
        # Claim an unlinked record for this listing
        fields["source_id"] = item.source_id
    replace_images = len(item.images) != existing.image_count
    if not fields and not replace_images:
        return Action(ActionKind.SKIP, item, brand_id, existing=existing)
    return Action(
        ActionKind.PATCH,
        item,
        brand_id,
        existing=existing,
        fields=fields,
        replace_images=replace_images,
    )


def item_to_document(
    item: CatalogItem,
    brand_id: str,
    images: Iterable[Dict[str, Any]],
    source_id_field: Optional[str] = None,
) -> Dict[str, Any]:
    """Build a motorcycle document for a create mutation."""
    if source_id_field:
        slug = slugify(f"{item.brand_name}-{item.model}-{item.source_id}")
    else:
        slug = slugify(f"{item.brand_name}-{item.model}-{item.year}")

    doc: Dict[str, Any] = {
        "_type": "motorcycle",
        "model": item.model,
        "slug": {"_type": "slug", "current": slug},
        "brand": {"_type": "reference", "_ref": brand_id},
        "year": item.year,
        "type": item.category,
        "condition": item.condition,
        "shortDescription": item.short_description,
        "images": list(images),
    }
    if item.price is not None:
        doc["price"] = item.price
    if item.displacement:
        doc["cilindrata"] = item.displacement
    if item.condition == CONDITION_USED and item.kilometers is not None:
        doc["kilometers"] = item.kilometers
    if source_id_field:
        doc[source_id_field] = item.source_id
    return doc


def _record_from_item(item: CatalogItem, doc_id: str, brand_id: str, image_count: int) -> ExistingRecord:
    return ExistingRecord(
        id=doc_id,
        brand_id=brand_id,
        model=item.model,
        condition=item.condition,
        year=item.year,
        price=item.price,
        displacement=item.displacement,
        kilometers=item.kilometers,
        short_description=item.short_description,
        image_count=image_count,
        source_id=item.source_id,
    )


def _patched_record(existing: ExistingRecord, fields: Dict[str, Any], image_count: Optional[int]) -> ExistingRecord:
    changes = dict(fields)
    if image_count is not None:
        changes["image_count"] = image_count
    return dataclasses.replace(existing, **changes)


def apply(action: Action, store: SanityClient, index: ExistingIndex, adapter, dry_run: bool = False) -> ActionKind:
    """Carry out a decision.

    Args:
        action: The decision from decide()
        store: Content store client
        index: Index updated with the resulting state
        adapter: Source adapter (image headers, source id field, file prefix)
        dry_run: Log the intended action without uploads or writes

    Returns:
        The kind of action actually applied. A patch whose only change was
        an image replacement that uploaded nothing degrades to SKIP.

    Raises:
        ReconcileError: If a write fails or a create has no uploadable image
        ContentStoreAuthError: If the store rejects the credentials
    """
    item = action.item
    suffix = " [dry run]" if dry_run else ""

    if action.kind is ActionKind.SKIP:
        log_sync_event("action_skip", {
            "message": f"    = {action.label}: unchanged",
            "model": item.model,
            "record_id": action.existing.id if action.existing else None,
        })
        return ActionKind.SKIP

    try:
        if action.kind is ActionKind.CREATE:
            return _apply_create(action, store, index, adapter, dry_run, suffix)
        return _apply_patch(action, store, index, adapter, dry_run, suffix)
    except ContentStoreAuthError:
        raise
    except ContentStoreError as e:
        raise ReconcileError(f"{action.kind.value} {action.label} failed: {e}") from e


def _apply_create(action, store, index, adapter, dry_run, suffix) -> ActionKind:
    item = action.item
    if dry_run:
        doc_id = f"dry-run-{slugify(action.label)}"
        image_count = len(item.images)
    else:
        images = upload_images(
            item.images,
            store,
            alt=action.label,
            headers=adapter.asset_headers(),
            filename_prefix=adapter.key,
            session=adapter.session,
        )
        if not images:
            raise ReconcileError(f"create {action.label}: every image upload failed")
        doc_id = store.create(item_to_document(item, action.brand_id, images, adapter.source_id_field))
        image_count = len(images)

    index.add(_record_from_item(item, doc_id, action.brand_id, image_count))
    log_sync_event("action_create", {
        "message": f"    + {action.label} ({item.year}) {image_count} images{suffix}",
        "model": item.model,
        "record_id": doc_id,
        "year": item.year,
        "price": item.price,
        "images": image_count,
        "dry_run": dry_run,
    })
    return ActionKind.CREATE


def _apply_patch(action, store, index, adapter, dry_run, suffix) -> ActionKind:
    item = action.item
    existing = action.existing
    fields = {
        DOCUMENT_FIELDS[name]: value for name, value in action.fields.items() if name in DOCUMENT_FIELDS
    }
    if "source_id" in action.fields and adapter.source_id_field:
        fields[adapter.source_id_field] = action.fields["source_id"]
    image_count: Optional[int] = None

    if action.replace_images:
        if dry_run:
            image_count = len(item.images)
        else:
            images = upload_images(
                item.images,
                store,
                alt=action.label,
                headers=adapter.asset_headers(),
                filename_prefix=adapter.key,
                session=adapter.session,
            )
            if images:
                fields["images"] = images
                image_count = len(images)
            else:
                logger.warning(f"    Keeping stored images of {action.label}: no upload succeeded")

    if not fields and image_count is None:
        log_sync_event("action_skip", {
            "message": f"    = {action.label}: nothing to write",
            "model": item.model,
            "record_id": existing.id,
        })
        return ActionKind.SKIP

    if not dry_run:
        store.patch(existing.id, fields)

    index.add(_patched_record(existing, action.fields, image_count))
    changed = sorted(action.fields) + (["images"] if image_count is not None else [])
    log_sync_event("action_patch", {
        "message": f"    ~ {action.label}: {', '.join(changed)}{suffix}",
        "model": item.model,
        "record_id": existing.id,
        "fields": {k: v for k, v in fields.items() if k != "images"},
        "images": image_count,
        "dry_run": dry_run,
    })
    return ActionKind.PATCH
