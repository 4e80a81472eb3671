from prometheus_client import Counter
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

# Prometheus HTTP request counter with tenant context; request ids stay in the logs
REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["path", "method", "status", "tenant"],
)

# Evaluation counters, incremented by the routers
FEATURE_EVALUATIONS = Counter(
    "feature_evaluations_total",
    "Feature resolutions by winning tier and mode (online/snapshot)",
    ["source", "mode"],
)

EXPERIMENT_ASSIGNMENTS = Counter(
    "experiment_assignments_total",
    "Experiment assignments, split by whether the experiment was active",
    ["active"],
)

SNAPSHOT_OPERATIONS = Counter(
    "snapshot_operations_total",
    "Snapshot generate/verify/evaluate calls by outcome",
    ["operation", "outcome"],
)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to track HTTP requests and attach tenant labels."""
    async def dispatch(self, request: Request, call_next):
        tenant = request.headers.get("X-Tenant-ID", "unknown")
        response = None
        try:
            response = await call_next(request)
            return response
        finally:
            status = getattr(response, "status_code", 500)
            REQUEST_COUNT.labels(
                path=request.url.path,
                method=request.method,
                status=status,
                tenant=tenant,
            ).inc()
