"""oc-mirror web backend Flask application."""
