import time
import logging
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from app.config import settings
from app.errors import (
    FeatureServiceError,
    InvalidDefinition,
    SnapshotExpired,
    SnapshotIntegrityError,
    TenantMismatch,
)
from app.routers import health as health_router
from app.routers import auth as auth_router
from app.routers import evaluate as evaluate_router
from app.routers import snapshots as snapshots_router
from app.utils.logging import setup_logging, get_request_context
from app.utils import metrics

# ---------- Logging ----------
setup_logging(settings.log_level)
logger = logging.getLogger("feature-resolution-service")

# ---------- FastAPI App ----------
app = FastAPI(title="Feature Resolution Service", version="0.1.0")

# ---------- Middleware ----------
app.add_middleware(metrics.MetricsMiddleware)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Structured logging for all requests/responses."""
    start_time = time.time()
    try:
        response = await call_next(request)
        duration_ms = (time.time() - start_time) * 1000

        # Only log errors with duration
        if response.status_code >= 400:
            ctx = get_request_context(request, duration_ms=duration_ms)
            ctx["status"] = response.status_code
            logger.info("Request completed with error", extra=ctx)
        return response
    except Exception:
        duration_ms = (time.time() - start_time) * 1000
        ctx = get_request_context(request, duration_ms=duration_ms)
        logger.exception("Unhandled exception during request", extra=ctx)
        raise


# ---------- Domain errors ----------
ERROR_STATUS = {
    TenantMismatch: 403,
    SnapshotIntegrityError: 409,
    SnapshotExpired: 410,
    InvalidDefinition: 422,
}


@app.exception_handler(FeatureServiceError)
async def feature_service_error_handler(request: Request, exc: FeatureServiceError):
    status_code = ERROR_STATUS.get(type(exc), 400)
    ctx = get_request_context(request)
    ctx["error"] = exc.code
    logger.warning(str(exc), extra=ctx)
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.code, "detail": str(exc)},
    )


# ---------- Routers ----------
app.include_router(health_router.router)
app.include_router(auth_router.router)
app.include_router(evaluate_router.router)
app.include_router(snapshots_router.router)


# ---------- Prometheus Metrics Endpoint ----------
@app.get("/metrics")
async def metrics_endpoint():
    """Expose Prometheus metrics."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
