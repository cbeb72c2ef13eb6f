#!/usr/bin/env python3
"""
Simple runner script for the Flask application.
"""

import atexit
from pathlib import Path

from app.main import create_app
from config_manager import ConfigManager
from mirror_service.logging_config import setup_logging, stop_logging


def main() -> None:
    config_manager = ConfigManager()
    app_config = config_manager.get_app_config()

    setup_logging(app_config.debug)
    atexit.register(stop_logging)

    app = create_app(config_manager)
    atexit.register(app.extensions["operations"]["service"].shutdown)

    print("🚀 Starting oc-mirror web backend...")
    print(f"📁 Working directory: {Path.cwd()}")

    app.run(
        host=app_config.host,
        port=app_config.port,
        debug=app_config.debug,
        threaded=True
    )


if __name__ == "__main__":
    main()
