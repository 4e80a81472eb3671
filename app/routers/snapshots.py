# app/routers/snapshots.py
from fastapi import APIRouter, Depends, status

from app.deps import SCOPE_SNAPSHOTS, require_tenant, scoped
from app.errors import FeatureServiceError, TenantMismatch
from app.routers.evaluate import check_context_tenant
from app.schemas import (
    FeatureEvaluationResult,
    FeatureSnapshot,
    SnapshotEvaluateRequest,
    SnapshotGenerateRequest,
    SnapshotVerifyRequest,
    SnapshotVerifyResponse,
)
from app.services.snapshot import evaluate_from_snapshot, generate_snapshot, verify_snapshot
from app.utils import metrics

router = APIRouter(prefix="/v1/snapshots", tags=["snapshots"])


@router.post("", response_model=FeatureSnapshot, status_code=status.HTTP_201_CREATED)
async def create_snapshot(
    body: SnapshotGenerateRequest,
    tenant: str = Depends(require_tenant),
    payload: dict = Depends(scoped(SCOPE_SNAPSHOTS)),
):
    """
    Freeze the posted rules and experiments for one subject.
    Rules and experiments of other tenants are dropped, not rejected.
    """
    check_context_tenant(tenant, body.context)
    snapshot = generate_snapshot(body.context, body.rules, body.experiments, body.options)
    metrics.SNAPSHOT_OPERATIONS.labels(operation="generate", outcome="ok").inc()
    return snapshot


@router.post("/verify", response_model=SnapshotVerifyResponse)
async def verify(
    body: SnapshotVerifyRequest,
    tenant: str = Depends(require_tenant),
    payload: dict = Depends(scoped(SCOPE_SNAPSHOTS)),
):
    try:
        if body.snapshot.tenant_id != tenant:
            raise TenantMismatch(
                f"Snapshot belongs to tenant {body.snapshot.tenant_id}, "
                f"but request is for tenant {tenant}"
            )
        verify_snapshot(body.snapshot)
    except FeatureServiceError as exc:
        metrics.SNAPSHOT_OPERATIONS.labels(operation="verify", outcome=exc.code).inc()
        raise
    metrics.SNAPSHOT_OPERATIONS.labels(operation="verify", outcome="ok").inc()
    return SnapshotVerifyResponse(valid=True, snapshot_id=body.snapshot.id)


@router.post("/evaluate", response_model=FeatureEvaluationResult)
async def evaluate(
    body: SnapshotEvaluateRequest,
    tenant: str = Depends(require_tenant),
    payload: dict = Depends(scoped(SCOPE_SNAPSHOTS)),
):
    """Offline evaluation: the snapshot is the only source of truth."""
    try:
        result = evaluate_from_snapshot(
            body.feature_id, body.snapshot, now=body.now, context_tenant_id=tenant
        )
    except FeatureServiceError as exc:
        metrics.SNAPSHOT_OPERATIONS.labels(operation="evaluate", outcome=exc.code).inc()
        raise
    metrics.SNAPSHOT_OPERATIONS.labels(operation="evaluate", outcome="ok").inc()
    metrics.FEATURE_EVALUATIONS.labels(source=result.source.value, mode="snapshot").inc()
    return result
