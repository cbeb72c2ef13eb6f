"""
Catalog subsystem services: layered operator and channel lookups.

Resolution always prefers pre-fetched catalog data, then the compiled-in
static tables, then a last-resort default. Listing responses are memoized in
a single-flight TTL cache.
"""
import logging
import threading
import time
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from mirror_service.errors import CacheLoadError
from mirror_service.index_store import CatalogIndexStore
from mirror_service.models import CatalogIndex, CatalogKey, ChannelKey, OperatorEntry, normalize_version

from .cache import TTLCache
from .static_data import (
    CATALOG_DESCRIPTIONS,
    DEFAULT_REGISTRY,
    LAST_RESORT_CHANNELS,
    STATIC_CHANNELS,
    STATIC_OPERATORS,
    catalog_description,
    static_catalog_url,
)

logger = logging.getLogger(__name__)

CATALOGS_CACHE_KEY = ("catalogs",)


def parse_catalog_reference(reference: str) -> Tuple[Optional[str], Optional[str]]:
    """Split a catalog reference into ``(catalog_type, ocp_version)``.

    Accepts a bare catalog type (``redhat-operator-index``), a catalog URL
    (``registry.redhat.io/redhat/redhat-operator-index``) or a URL with a tag
    (``...:v4.16``). The version is None when no tag is given.
    """
    reference = (reference or "").strip().rstrip("/")
    if not reference:
        return None, None
    last_segment = reference.rsplit("/", 1)[-1]
    if ":" in last_segment:
        catalog_type, tag = last_segment.split(":", 1)
        return catalog_type or None, normalize_version(tag) or None
    return last_segment, None


def _unique(names: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(names))


class CatalogCacheManager:
    """Serves catalog, operator and channel lookups for the API."""

    def __init__(
        self,
        store: CatalogIndexStore,
        registry: str = DEFAULT_REGISTRY,
        ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.registry = registry
        self.response_cache = TTLCache(ttl_seconds, clock=clock)
        self._index: Optional[CatalogIndex] = None
        self._load_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Index lifecycle
    # ------------------------------------------------------------------

    def _read_index(self) -> CatalogIndex:
        try:
            return self.store.load_index()
        except CacheLoadError as e:
            logger.warning(f"Pre-fetched catalog data unavailable, using static data: {e.message}")
            return CatalogIndex.empty()

    def load_index(self) -> CatalogIndex:
        """Return the memoized index, loading it on first use."""
        index = self._index
        if index is not None:
            return index
        with self._load_lock:
            if self._index is None:
                self._index = self._read_index()
            return self._index

    def refresh(self) -> CatalogIndex:
        """Reload the index from disk, swap it in and clear cached responses."""
        index = self._read_index()
        with self._load_lock:
            self._index = index
        self.response_cache.invalidate()
        logger.info(f"Operator cache refreshed ({index.operator_count()} pre-fetched operators)")
        return index

    # ------------------------------------------------------------------
    # Layered lookups
    # ------------------------------------------------------------------

    def _static_operators(self, catalog_type: str) -> List[OperatorEntry]:
        # Static tables are keyed by the default registry path
        names = STATIC_OPERATORS.get(static_catalog_url(catalog_type), [])
        return [OperatorEntry(name=name, catalog=catalog_type) for name in names]

    def lookup_operators(self, catalog_type: str, ocp_version: Optional[str] = None) -> List[OperatorEntry]:
        """Operators of one catalog: pre-fetched, else static, else empty.

        Without a version, every pre-fetched version of the catalog type is
        merged (first occurrence of each operator wins).
        """
        index = self.load_index()
        if ocp_version:
            entries = index.operators_for(CatalogKey(catalog_type, normalize_version(ocp_version)))
            if entries is not None:
                return list(entries)
        else:
            merged: Dict[str, OperatorEntry] = {}
            for key in index.keys:
                if key.catalog_type == catalog_type:
                    for entry in index.operators_for(key):
                        merged.setdefault(entry.name, entry)
            if merged:
                return list(merged.values())
        return self._static_operators(catalog_type)

    def _channel_source_key(self, index: CatalogIndex, operator: str, catalog_type: Optional[str],
                            ocp_version: Optional[str]) -> Optional[ChannelKey]:
        version = normalize_version(ocp_version) if ocp_version else None
        if catalog_type and version:
            return ChannelKey(operator, catalog_type, version)
        key = index.find_operator(operator, catalog_type, version)
        if key is None:
            return None
        return ChannelKey(operator, key.catalog_type, key.ocp_version)

    def lookup_channels(self, operator: str, catalog_type: Optional[str] = None,
                        ocp_version: Optional[str] = None) -> List[str]:
        """Channels of an operator: pre-fetched, else static, else ``["stable"]``."""
        index = self.load_index()
        channel_key = self._channel_source_key(index, operator, catalog_type, ocp_version)
        if channel_key is not None:
            channels = index.channels_for(channel_key)
            if channels:
                return list(channels)
        static = STATIC_CHANNELS.get(operator)
        if static:
            return list(static)
        return list(LAST_RESORT_CHANNELS)

    # ------------------------------------------------------------------
    # Cached listings
    # ------------------------------------------------------------------

    def _compute_catalogs(self) -> Tuple[dict, ...]:
        index = self.load_index()
        if not index.is_empty():
            return tuple(
                {
                    "name": info.catalog_type,
                    "url": info.catalog_url,
                    "description": catalog_description(info.catalog_type),
                    "ocpVersion": info.ocp_version,
                    "operatorCount": len(index.operators_for(info.key) or ()),
                }
                for info in index.catalogs
            )
        return tuple(
            {
                "name": catalog_type,
                "url": static_catalog_url(catalog_type, self.registry),
                "description": description,
                "ocpVersion": None,
                "operatorCount": len(self._static_operators(catalog_type)),
            }
            for catalog_type, description in CATALOG_DESCRIPTIONS.items()
        )

    def list_catalogs(self) -> List[dict]:
        return [dict(item) for item in self.response_cache.get_or_compute(CATALOGS_CACHE_KEY, self._compute_catalogs)]

    def _compute_operators(self, catalog_type: Optional[str], ocp_version: Optional[str]) -> Tuple[str, ...]:
        if catalog_type:
            return tuple(_unique(entry.name for entry in self.lookup_operators(catalog_type, ocp_version)))

        index = self.load_index()
        if not index.is_empty():
            names = (entry.name for key in index.keys for entry in index.operators_for(key))
        else:
            names = (name for static_type in CATALOG_DESCRIPTIONS
                     for name in STATIC_OPERATORS.get(static_catalog_url(static_type), []))
        return tuple(sorted(set(names)))

    def list_operators(self, catalog_filter: Optional[str] = None) -> List[str]:
        """Operator names, optionally restricted to one catalog reference."""
        catalog_type, ocp_version = parse_catalog_reference(catalog_filter or "")
        if catalog_filter and not catalog_type:
            return []
        # Equivalent spellings of one catalog share a cache entry
        key = ("operators", catalog_type, ocp_version)
        return list(self.response_cache.get_or_compute(
            key, lambda: self._compute_operators(catalog_type, ocp_version)))
