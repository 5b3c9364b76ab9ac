import logging
import re
import time

from quart import Quart, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from .common.config import settings
from .common.database import engine, init_db
from .common.errors import AppError
from .common.redis_client import close_redis
from .auth.controller import bp as auth_bp
from .catalog.controller import bp as catalog_bp
from .orders.controller import bp as orders_bp
from .realtime.controller import bp as realtime_bp

# Prometheus metrics
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


log = logging.getLogger(__name__)

# Basic metrics with proper buckets for latency
REQUEST_COUNT = Counter("http_requests_total", "Total HTTP requests", ["method", "endpoint", "status"])
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0, float("inf"))
)

_ID_SEGMENT = re.compile(r"/\d+(?=/|$)")


def metrics_endpoint(path: str) -> str:
    """Collapse numeric path segments so ids don't explode label cardinality."""
    return _ID_SEGMENT.sub("/<id>", path)


def create_app() -> Quart:
    app = Quart(__name__)

    # Blueprints
    app.register_blueprint(auth_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(orders_bp)
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
                endpoint = metrics_endpoint(request.path)
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

    @app.errorhandler(AppError)
    async def handle_app_error(error: AppError):
        return jsonify({"error": error.message}), error.status_code

    @app.errorhandler(HTTPException)
    async def handle_http_error(error: HTTPException):
        return jsonify({"error": error.name}), error.code

    @app.errorhandler(SQLAlchemyError)
    async def handle_db_error(error: SQLAlchemyError):
        log.error("Database error on %s %s | err=%s", request.method, request.path, error)
        return jsonify({"error": "Database error"}), 500

    @app.errorhandler(Exception)
    async def handle_unexpected(error: Exception):
        log.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"error": "Internal server error"}), 500

    @app.get("/metrics")
    async def metrics():
        data = generate_latest()
        return app.response_class(data, mimetype=CONTENT_TYPE_LATEST)

    @app.get("/health")
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
        await engine.dispose()
        log.info("Shutdown complete.")

    return app
