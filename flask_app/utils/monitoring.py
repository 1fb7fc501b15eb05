# flask_app/utils/monitoring.py

from flask import Response, abort
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest


def init_monitoring(app):
    """Expose Prometheus metrics at ``METRICS_ENDPOINT`` when monitoring is enabled."""

    endpoint = app.config.get("METRICS_ENDPOINT", "/metrics")

    @app.get(endpoint, endpoint="metrics")
    def metrics():
        if not app.config.get("MONITORING_ENABLED", False):
            abort(404)
        return Response(generate_latest(), mimetype=CONTENT_TYPE_LATEST)

    app.logger.debug("Metrics endpoint registered at %s", endpoint)
