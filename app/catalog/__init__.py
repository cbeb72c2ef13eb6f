"""
Catalog lookup module: pre-fetched operator catalogs with static fallback.
"""

from .cache import TTLCache
from .services import CatalogCacheManager, parse_catalog_reference

__all__ = ["TTLCache", "CatalogCacheManager", "parse_catalog_reference"]
