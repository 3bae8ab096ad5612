"""Motorcycle catalog sync package."""

__version__ = "0.1.0"

# Re-export main components for convenient imports
from motosync.config import SanitySettings, load_settings
from motosync.content_store import BrandResolver, SanityClient
from motosync.extraction import extract
from motosync.models import Action, ActionKind, CandidateRef, CatalogItem, SyncStats
from motosync.pipeline import run_sync
from motosync.reconcile import apply, decide
from motosync.sources import SOURCES, get_source

__all__ = [
    # Version
    "__version__",
    # Config
    "SanitySettings",
    "load_settings",
    # Models
    "Action",
    "ActionKind",
    "CandidateRef",
    "CatalogItem",
    "SyncStats",
    # Content store
    "SanityClient",
    "BrandResolver",
    # Core functions
    "extract",
    "decide",
    "apply",
    "run_sync",
    "SOURCES",
    "get_source",
]
