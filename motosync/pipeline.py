"""Sync run orchestration: discover, fetch, extract, reconcile, apply.

Candidates are processed one at a time. A failure on one candidate is
logged and counted and the run moves on; only content store auth failures
and unreachable entry points abort the run.
"""

import logging
import time
from typing import Optional

from motosync.content_store import BrandResolver, ContentStoreAuthError, ContentStoreError, SanityClient
from motosync.extraction import extract
from motosync.fetcher import FetchError
from motosync.logging_config import get_logger, log_sync_event
from motosync.models import ActionKind, CandidateRef, SyncStats
from motosync.reconcile import ExistingIndex, ReconcileError, apply, decide, load_existing_index
from motosync.sources.base import SourceAdapter

__all__ = ["run_sync"]

logger = get_logger("pipeline")


def _process_candidate(
    ref: CandidateRef,
    adapter: SourceAdapter,
    store: SanityClient,
    brands: BrandResolver,
    index: ExistingIndex,
    dry_run: bool,
) -> Optional[ActionKind]:
    """Run one candidate through the pipeline.

    Returns:
        The applied action kind, or None when extraction rejected the item
    """
    raw = adapter.fetch_candidate(ref)
    item = extract(adapter, raw, ref)
    if item is None:
        return None

    brand = brands.resolve(item.brand_name)
    action = decide(item, brand.id, index, match_source_id=adapter.source_id_field is not None)
    return apply(action, store, index, adapter, dry_run=dry_run)


def run_sync(adapter: SourceAdapter, store: SanityClient, dry_run: bool = False) -> SyncStats:
    """Sync one source into the content store.

    Args:
        adapter: The source to read
        store: Content store client (only read from in a dry run)
        dry_run: Decide and log every action without writing

    Returns:
        SyncStats for the run

    Raises:
        ContentStoreAuthError: If the store rejects the credentials
        DiscoveryError: If the source's entry point is unreachable
    """
    stats = SyncStats(source=adapter.key, dry_run=dry_run)
    start = time.time()

    log_sync_event("sync_start", {
        "message": f"Starting {adapter.key} sync" + (" (dry run)" if dry_run else ""),
        "source": adapter.key,
        "dry_run": dry_run,
    })

    index = load_existing_index(store, adapter.condition)
    brands = BrandResolver(store, dry_run=dry_run)

    for ref in adapter.discover():
        if stats.discovered > 0:
            time.sleep(adapter.request_delay)
        stats.discovered += 1
        logger.info(f"[{stats.discovered}] {ref.url}")

        try:
            kind = _process_candidate(ref, adapter, store, brands, index, dry_run)
        except ContentStoreAuthError:
            raise
        except Exception as e:
            stats.failed += 1
            # Anything else is a bug in handling this one page
            expected = isinstance(e, (FetchError, ReconcileError, ContentStoreError))
            log_sync_event("candidate_error", {
                "message": f"    Failed: {e}",
                "source": adapter.key,
                "url": ref.url,
                "error": str(e),
                "error_type": type(e).__name__,
            }, level=logging.WARNING if expected else logging.ERROR)
            continue

        if kind is None:
            stats.rejected += 1
        elif kind is ActionKind.CREATE:
            stats.created += 1
        elif kind is ActionKind.PATCH:
            stats.updated += 1
        else:
            stats.skipped += 1

    elapsed = time.time() - start
    log_sync_event("sync_complete", {
        "message": (
            f"Finished {adapter.key} sync in {elapsed:.1f}s: "
            f"{stats.created} created, {stats.updated} updated, {stats.skipped} unchanged, "
            f"{stats.rejected} rejected, {stats.failed} failed"
        ),
        "elapsed_seconds": round(elapsed, 1),
        **stats.as_dict(),
    })
    return stats
