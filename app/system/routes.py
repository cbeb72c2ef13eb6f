"""
System subsystem routes: tool versions, host facts and release channels.
"""
from flask import Blueprint, jsonify

from .services import SystemInspector


def create_system_routes(inspector: SystemInspector) -> Blueprint:
    """Create system routes."""
    bp = Blueprint('system', __name__)

    @bp.get("/api/system/status")
    def system_status():
        return jsonify(inspector.status())

    @bp.get("/api/system/info")
    def system_info():
        return jsonify(inspector.info().to_dict())

    @bp.get("/api/channels")
    def release_channels():
        return jsonify(inspector.release_channels())

    return bp
