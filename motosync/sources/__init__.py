"""Source adapters, keyed by their command-line name."""

from typing import Dict, Optional, Type

import requests  # type: ignore[import-untyped]

from motosync.sources.base import SourceAdapter
from motosync.sources.husqvarna import HusqvarnaAdapter
from motosync.sources.ktm import KtmAdapter
from motosync.sources.kymco import KymcoAdapter
from motosync.sources.moto_it import MotoItAdapter
from motosync.sources.voge import VogeAdapter

__all__ = [
    "SOURCES",
    "SourceAdapter",
    "get_source",
]

SOURCES: Dict[str, Type[SourceAdapter]] = {
    adapter.key: adapter
    for adapter in (KtmAdapter, HusqvarnaAdapter, KymcoAdapter, VogeAdapter, MotoItAdapter)
}


def get_source(key: str, session: Optional[requests.Session] = None) -> SourceAdapter:
    """Instantiate the adapter registered under key.

    Raises:
        KeyError: If no source has that key
    """
    try:
        adapter_cls = SOURCES[key]
    except KeyError:
        raise KeyError(f"Unknown source {key!r}; choose from {', '.join(sorted(SOURCES))}") from None
    return adapter_cls(session=session)
