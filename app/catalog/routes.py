"""
Catalog subsystem routes: catalog, operator and channel lookups.
"""
import logging

from flask import Blueprint, jsonify, request

from .services import CatalogCacheManager, parse_catalog_reference

logger = logging.getLogger(__name__)


def create_catalog_routes(catalog_manager: CatalogCacheManager) -> Blueprint:
    """Create catalog routes."""
    bp = Blueprint('catalog', __name__)

    @bp.get("/api/catalogs")
    def list_catalogs():
        return jsonify(catalog_manager.list_catalogs())

    @bp.get("/api/operators")
    def list_operators():
        return jsonify(catalog_manager.list_operators(request.args.get("catalog")))

    @bp.get("/api/operator-channels/<operator>")
    def operator_channels(operator):
        catalog_type, version = parse_catalog_reference(request.args.get("catalog", ""))
        version = request.args.get("version") or version
        channels = catalog_manager.lookup_channels(operator, catalog_type, version)
        return jsonify([{"name": channel} for channel in channels])

    @bp.post("/api/operators/refresh-cache")
    def refresh_cache():
        index = catalog_manager.refresh()
        return jsonify({
            "message": "Operator cache refreshed successfully",
            "catalogs": len(index.catalogs),
            "operators": index.operator_count()
        })

    return bp
