"""
JSON error responses for the API blueprints.
"""
import logging

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from mirror_service.errors import MirrorWebError

logger = logging.getLogger(__name__)


def register_error_handlers(app: Flask) -> None:
    """Render every API error as ``{"error": ..., "code": ...}``."""

    @app.errorhandler(MirrorWebError)
    def handle_mirror_error(exc: MirrorWebError):
        if exc.http_status >= 500:
            logger.error(f"{exc.code}: {exc.message}")
        else:
            logger.info(f"{exc.code}: {exc.message}")
        return jsonify(exc.to_dict()), exc.http_status

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        code = (exc.name or "http_error").lower().replace(" ", "_")
        return jsonify({"error": exc.description, "code": code}), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        logger.exception(f"Unhandled error: {exc}")
        return jsonify({"error": "Internal server error", "code": "internal_error"}), 500
