# experiment_eval.py

import logging
from datetime import datetime
from typing import Sequence

from app.errors import TenantMismatch
from app.schemas import (
    EvaluationContext,
    ExperimentAssignment,
    ExperimentDefinition,
    ExperimentVariant,
)
from app.services.hashing import bucket_of
from app.utils.clock import Clock, resolve_now, utc_now

logger = logging.getLogger(__name__)

INACTIVE_BUCKET = -1
INACTIVE_REASON = "Experiment not active, assigned to default variant"


def is_experiment_active(experiment: ExperimentDefinition, now: datetime) -> bool:
    if not experiment.enabled:
        return False
    return experiment.time_window is None or experiment.time_window.is_active(now)


def variant_for_bucket(bucket: int, variants: Sequence[ExperimentVariant]) -> ExperimentVariant:
    """
    Walk the variants in order; variant i owns [a1 + ... + a(i-1), a1 + ... + ai).
    Falls back to the last variant if the allocations leave the bucket uncovered.
    """
    cumulative = 0
    for variant in variants:
        cumulative += variant.traffic_allocation
        if bucket < cumulative:
            return variant
    return variants[-1]


def assign_experiment(
    experiment: ExperimentDefinition,
    context: EvaluationContext,
    clock: Clock = utc_now,
) -> ExperimentAssignment:
    """
    Deterministically assign the context's subject to a variant.

    The bucket depends only on experiment id, subject, tenant and salt;
    time only decides whether the experiment is active at all.
    """
    if experiment.tenant_id != context.tenant_id:
        raise TenantMismatch(
            f"Experiment {experiment.id} belongs to tenant {experiment.tenant_id}, "
            f"but context is for tenant {context.tenant_id}"
        )

    now = resolve_now(context.now, clock)

    if not is_experiment_active(experiment, now):
        default = experiment.variants[0]
        logger.debug(
            "Experiment inactive",
            extra={"tenant": context.tenant_id, "experiment_id": experiment.id},
        )
        return ExperimentAssignment(
            experiment_id=experiment.id,
            variant_id=default.id,
            variant_name=default.name,
            bucket=INACTIVE_BUCKET,
            tenant_id=context.tenant_id,
            subject_id=context.subject_id,
            assigned_at=now,
            reason=INACTIVE_REASON,
        )

    bucket = bucket_of(experiment.id, context.subject_id, context.tenant_id, experiment.salt)
    variant = variant_for_bucket(bucket, experiment.variants)
    logger.debug(
        "Experiment assigned",
        extra={
            "tenant": context.tenant_id,
            "experiment_id": experiment.id,
            "bucket": bucket,
        },
    )
    return ExperimentAssignment(
        experiment_id=experiment.id,
        variant_id=variant.id,
        variant_name=variant.name,
        bucket=bucket,
        tenant_id=context.tenant_id,
        subject_id=context.subject_id,
        assigned_at=now,
        reason=f"Assigned via deterministic bucketing (bucket {bucket})",
    )
