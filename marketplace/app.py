import logging
import time

from quart import Quart, jsonify, request
from werkzeug.exceptions import HTTPException

from .common.config import settings
from .common.database import init_db
from .common.errors import MarketplaceError
from .common.redis_client import close_redis
from .accounts.controller import bp as accounts_bp
from .commitments.controller import bp as commitments_bp
from .groups.controller import bp as groups_bp
from .realtime.controller import bp as realtime_bp

# Prometheus metrics
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


log = logging.getLogger(__name__)

REQUEST_COUNT = Counter("http_requests_total", "Total HTTP requests", ["method", "endpoint", "status"])
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0, float("inf"))
)


def _metrics_endpoint() -> str:
    # route templates keep label cardinality bounded
    rule = request.url_rule
    return rule.rule if rule is not None else "<unmatched>"


def create_app() -> Quart:
    app = Quart(__name__)

    # Blueprints
    app.register_blueprint(accounts_bp)
    app.register_blueprint(groups_bp)
    app.register_blueprint(commitments_bp)
    app.register_blueprint(realtime_bp)

    @app.before_request
    async def before_request():
        request._start_time = time.time()
        log.info(f"[Instance {settings.INSTANCE_ID}] {request.method} {request.path}")

    @app.after_request
    async def after_request(response):
        try:
            if hasattr(request, "_start_time"):
                duration = time.time() - request._start_time
                endpoint = _metrics_endpoint()
                REQUEST_LATENCY.labels(endpoint=endpoint).observe(duration)
                REQUEST_COUNT.labels(
                    method=request.method,
                    endpoint=endpoint,
                    status=str(response.status_code)
                ).inc()
            response.headers["X-Instance-ID"] = settings.INSTANCE_ID
        except Exception as e:
            log.error(f"Error recording metrics: {e}")
        return response

    @app.errorhandler(MarketplaceError)
    async def handle_marketplace_error(err: MarketplaceError):
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(404)
    async def handle_route_not_found(_err):
        return jsonify({"ok": False, "error": "route_not_found", "details": "Route not found"}), 404

    @app.errorhandler(HTTPException)
    async def handle_http_error(err: HTTPException):
        code = (err.name or "error").lower().replace(" ", "_")
        return jsonify({"ok": False, "error": code, "details": err.description}), err.code or 500

    @app.errorhandler(Exception)
    async def handle_unexpected_error(err: Exception):
        log.error("Unhandled error on %s %s", request.method, request.path, exc_info=err)
        return jsonify({"ok": False, "error": "internal_error", "details": "Internal server error"}), 500

    @app.get("/metrics")
    async def metrics():
        data = generate_latest()
        return app.response_class(data, mimetype=CONTENT_TYPE_LATEST)

    @app.get("/health")
    @app.get("/api/health")
    async def health():
        return jsonify({"status": "ok"})

    @app.before_serving
    async def startup():
        logging.basicConfig(level=settings.LOG_LEVEL)
        log.info("Initializing database...")
        await init_db()
        log.info("Database ready.")

    @app.after_serving
    async def shutdown():
        await close_redis()
        log.info("Shutdown complete.")

    return app
