import argparse
import atexit
import logging
from pathlib import Path
from typing import Optional

from flask import Flask, jsonify, request
from werkzeug.middleware.proxy_fix import ProxyFix

from config_manager import ConfigManager
from app.errors import register_error_handlers
from app.operations.factory import create_operations_module
from app.catalog.factory import create_catalog_module
from app.system.factory import create_system_module

logger = logging.getLogger(__name__)


def create_app(config_manager: Optional[ConfigManager] = None) -> Flask:
    """Build the Flask application and wire every subsystem."""
    config_manager = config_manager or ConfigManager()
    paths_config = config_manager.get_paths_config()
    mirror_config = config_manager.get_mirror_config()
    fetch_config = config_manager.get_catalog_fetch_config()
    cache_config = config_manager.get_catalog_cache_config()

    app = Flask(__name__)
    app.wsgi_app = ProxyFix(
            app.wsgi_app,
            x_proto = 1,     # trust 1 hop for X-Forwarded-Proto
            x_host  = 1,     # trust 1 hop for X-Forwarded-Host
            x_prefix= 1)     # <-- pay attention to X-Forwarded-Prefix

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    paths_config.ensure_directories()

    # -------------------------------------------------------------------------
    # Subsystems
    # -------------------------------------------------------------------------

    operations_module = create_operations_module(paths_config, mirror_config)
    system_module = create_system_module(operations_module["service"], paths_config, mirror_config, fetch_config)

    catalog_module = create_catalog_module(
        catalog_data_dir=Path(paths_config.catalog_data_dir),
        registry=fetch_config.registry,
        ttl_seconds=cache_config.ttl_seconds
    )

    app.register_blueprint(operations_module["blueprint"])
    app.register_blueprint(catalog_module["blueprint"])
    app.register_blueprint(system_module["blueprint"])
    register_error_handlers(app)

    app.extensions["operations"] = operations_module
    app.extensions["catalog"] = catalog_module
    app.extensions["system"] = system_module

    # -------------------------------------------------------------------------
    # Request logging
    # -------------------------------------------------------------------------

    @app.before_request
    def log_request():
        logger.info(f"{request.method} {request.path}")

    # -------------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------------

    @app.get("/actuator/health")
    def actuator_health():
        """Health check endpoint for monitoring tools and cloud platforms."""
        return jsonify({
            "status": "UP",
            "service": "oc-mirror-web"
        }), 200

    return app


# -----------------------------------------------------------------------------
# Entry point
# -----------------------------------------------------------------------------

if __name__ == "__main__":
    from mirror_service.logging_config import setup_logging, stop_logging

    parser = argparse.ArgumentParser(description="oc-mirror web backend")
    parser.add_argument("--port", type=int, help="Port to run the server on")
    parser.add_argument("--host", type=str, help="Host to bind the server to")
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    args = parser.parse_args()

    config_manager = ConfigManager()
    app_config = config_manager.get_app_config()

    # Override configuration with command line arguments
    if args.port:
        app_config.port = args.port
    if args.host:
        app_config.host = args.host
    if args.debug:
        app_config.debug = args.debug

    setup_logging(app_config.debug)
    atexit.register(stop_logging)

    app = create_app(config_manager)
    atexit.register(app.extensions["operations"]["service"].shutdown)

    paths_config = config_manager.get_paths_config()
    print(f"✅ Storage directory: {Path(paths_config.storage_dir).resolve()}")
    print(f"📋 Configuration loaded:")
    print(f"   - Configs: {paths_config.configs_dir}")
    print(f"   - Cache: {paths_config.cache_dir}")
    print(f"   - Catalog data: {paths_config.catalog_data_dir}")
    print(f"   - Server: {app_config.host}:{app_config.port}")
    app.run(
        host=app_config.host,
        port=app_config.port,
        debug=app_config.debug,
        threaded=True
    )
