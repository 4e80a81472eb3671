from fastapi import APIRouter, Depends, status

from app.deps import SCOPE_EVALUATE, require_tenant, scoped
from app.errors import TenantMismatch
from app.schemas import (
    EvaluationContext,
    ExperimentAssignment,
    ExperimentAssignRequest,
    FeatureEvaluateRequest,
    FeatureEvaluationResult,
)
from app.services.experiment_eval import INACTIVE_BUCKET, assign_experiment
from app.services.feature_eval import resolve_feature
from app.utils import metrics

router = APIRouter(prefix="/v1", tags=["evaluate"])


def check_context_tenant(tenant: str, context: EvaluationContext) -> None:
    """The header tenant and the body's context must agree."""
    if context.tenant_id != tenant:
        raise TenantMismatch(
            f"Context is for tenant {context.tenant_id}, but request is for tenant {tenant}"
        )


@router.post(
    "/features/evaluate",
    response_model=FeatureEvaluationResult,
    status_code=status.HTTP_200_OK,
)
async def evaluate_feature(
    body: FeatureEvaluateRequest,
    tenant: str = Depends(require_tenant),
    payload: dict = Depends(scoped(SCOPE_EVALUATE)),
):
    """
    Resolve one feature online against the rules posted with the request.
    Nothing is stored; the caller owns the rule set.
    """
    check_context_tenant(tenant, body.context)
    result = resolve_feature(body.feature_id, body.context, body.rules)
    metrics.FEATURE_EVALUATIONS.labels(source=result.source.value, mode="online").inc()
    return result


@router.post(
    "/experiments/assign",
    response_model=ExperimentAssignment,
    status_code=status.HTTP_200_OK,
)
async def assign(
    body: ExperimentAssignRequest,
    tenant: str = Depends(require_tenant),
    payload: dict = Depends(scoped(SCOPE_EVALUATE)),
):
    """Deterministic variant assignment for the context's subject."""
    check_context_tenant(tenant, body.context)
    assignment = assign_experiment(body.experiment, body.context)
    active = "false" if assignment.bucket == INACTIVE_BUCKET else "true"
    metrics.EXPERIMENT_ASSIGNMENTS.labels(active=active).inc()
    return assignment
