# app/utils/logging.py
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional, Any, Dict
from fastapi import Request

# ---------- Structured JSON Logging ----------

# Request context attached by the HTTP middleware, then evaluation context
# attached by the core services via `extra=`.
CONTEXT_FIELDS = (
    "path",
    "method",
    "status",
    "tenant",
    "request_id",
    "duration_ms",
    "feature_id",
    "experiment_id",
    "snapshot_id",
    "rule_id",
    "source",
    "bucket",
    "features",
    "experiments",
    "error",
)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }
        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                payload[field] = getattr(record, field)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_logging(level: str = "INFO") -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]


# ---------- Helpers to attach request context ----------
def get_request_context(
    request: Optional[Request] = None, duration_ms: Optional[float] = None
) -> Dict[str, Any]:
    context: Dict[str, Any] = {}
    if request:
        context.update(
            {
                "path": request.url.path,
                "method": request.method,
                "tenant": request.headers.get("X-Tenant-ID", "unknown"),
                "request_id": request.headers.get("X-Request-ID", "none"),
            }
        )
    if duration_ms is not None:
        context["duration_ms"] = float(round(duration_ms, 2))  # ensure type is float
    return context
