from fastapi import APIRouter, HTTPException, status
from fastapi.responses import PlainTextResponse

from app.services.hashing import bucket_of

router = APIRouter()

# Known bucket for ("exp-1", "user-456", "tenant-123", "salt-1"); snapshots
# produced elsewhere are only portable while this holds.
_BUCKET_PROBE = (("exp-1", "user-456", "tenant-123", "salt-1"), 72)


@router.get("/healthz", response_class=PlainTextResponse)
async def healthz():
    """Basic health check"""
    return "ok"


@router.get("/readyz", response_class=PlainTextResponse)
async def readyz():
    """Readiness: the bucketing hash still reproduces its reference value"""
    args, expected = _BUCKET_PROBE
    if bucket_of(*args) != expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Bucketing hash self-check failed",
        )
    return "ready"
