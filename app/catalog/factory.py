"""
Factory for creating the catalog module.
"""
from pathlib import Path

from mirror_service.index_store import CatalogIndexStore

from .routes import create_catalog_routes
from .services import CatalogCacheManager


def create_catalog_module(catalog_data_dir: Path, registry: str, ttl_seconds: float) -> dict:
    """Create catalog module with services and routes.

    Args:
        catalog_data_dir: Directory written by the catalog fetch service
        registry: Registry prefix used for static catalog URLs
        ttl_seconds: Lifetime of cached catalog and operator listings

    Returns:
        Dictionary containing the service and blueprint
    """
    catalog_manager = CatalogCacheManager(
        CatalogIndexStore(Path(catalog_data_dir)),
        registry=registry,
        ttl_seconds=ttl_seconds,
    )

    blueprint = create_catalog_routes(catalog_manager)

    return {
        "service": catalog_manager,
        "blueprint": blueprint
    }
