# -*- coding: utf-8 -*-
"""Main application file for the Audit Service."""

import atexit
import time
from datetime import datetime, timezone

from flask import Flask, Response, g, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from src.audit.pipeline import build_pipeline
from src.audit.recorder import configure_fallback_log
from src.config import Config, get_config
from src.routes.admin import admin_bp
from src.routes.audit import audit_bp
from src.routes.helpers import error_response
from src.services.csrf import CSRFProtection
from src.services.housekeeping import HousekeepingService
from src.services.rate_limit import build_rate_limiter
from src.utils.clock import Clock, utcnow

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Histogram,
    generate_latest,
)


REQUEST_COUNT = Counter(
    "audit_service_requests_total",
    "Total number of HTTP requests processed.",
    labelnames=("method", "endpoint", "status"),
)
REQUEST_LATENCY = Histogram(
    "audit_service_request_duration_seconds",
    "Request latency in seconds.",
    labelnames=("method", "endpoint"),
)


def create_app(config: Config | None = None, *, clock: Clock = utcnow) -> Flask:
    """Create and configure the Flask application.

    Args:
        config: Configuration to use instead of the environment.
        clock: Time source shared by every audit component.

    Returns:
        Flask: The configured Flask application.
    """
    config = config or get_config()
    app = Flask(__name__)
    app.secret_key = config.flask_secret
    app.config["APP_CONFIG"] = config

    CORS(app, origins=config.cors_origins)
    if config.trusted_proxy_count > 0:
        # Only the hops appended by our own proxies are believed.
        app.wsgi_app = ProxyFix(
            app.wsgi_app, x_for=config.trusted_proxy_count
        )

    configure_fallback_log(config.fallback_log_path)
    pipeline = build_pipeline(config, clock=clock)
    rate_limiter = build_rate_limiter(config.redis, clock=clock)
    housekeeping = HousekeepingService(
        pipeline.recorder,
        rate_limiter=rate_limiter,
        retention_days=config.retention_days,
        interval_seconds=config.housekeeping_interval_seconds,
        clock=clock,
    )
    app.extensions["audit_recorder"] = pipeline.recorder
    app.extensions["alert_issuer"] = pipeline.issuer
    app.extensions["audit_query"] = pipeline.query
    app.extensions["rate_limiter"] = rate_limiter
    app.extensions["csrf"] = CSRFProtection(
        config.csrf_secret,
        max_age_seconds=config.csrf_max_age_seconds,
        clock=clock,
    )
    app.extensions["housekeeping"] = housekeeping
    if config.housekeeping_enabled:
        housekeeping.start()
        atexit.register(housekeeping.stop)

    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException):
        """Handle HTTP exceptions by returning JSON."""
        message = err.description or err.name
        return error_response(err.code or 500, message)

    @app.errorhandler(Exception)
    def handle_exception(err: Exception):
        """Handle unexpected exceptions by returning JSON."""
        app.logger.exception("unhandled error on %s", request.path)
        pipeline.recorder.log_error(err, context=request.path)
        return error_response(500, "internal server error")

    @app.route("/health")
    def health():
        """Health check endpoint."""
        return jsonify(
            {
                "status": "ok",
                "service": "audit-service",
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        )

    @app.route("/metrics")
    def metrics() -> Response:
        """Expose Prometheus metrics."""
        return Response(generate_latest(), mimetype=CONTENT_TYPE_LATEST)

    @app.before_request
    def start_timer() -> None:
        g._request_start_time = time.perf_counter()

    @app.after_request
    def log_and_record(response: Response) -> Response:
        endpoint = request.endpoint or "unknown"
        method = request.method
        status = str(response.status_code)
        start = getattr(g, "_request_start_time", None)
        REQUEST_COUNT.labels(
            method=method,
            endpoint=endpoint,
            status=status,
        ).inc()
        if start is not None:
            duration = time.perf_counter() - start
            REQUEST_LATENCY.labels(
                method=method,
                endpoint=endpoint,
            ).observe(duration)
            app.logger.info(
                "request.completed",
                extra={
                    "endpoint": endpoint,
                    "method": method,
                    "status": status,
                    "duration_ms": duration * 1000,
                },
            )
        return response

    app.register_blueprint(audit_bp)
    app.register_blueprint(admin_bp)

    return app


app = create_app()


if __name__ == "__main__":
    from src.db.session import create_schema

    create_schema()
    app.run(debug=True, port=app.config["APP_CONFIG"].app_port)
