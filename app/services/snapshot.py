# snapshot.py

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional

from app.config import settings
from app.errors import (
    SnapshotExpired,
    SnapshotIntegrityError,
    TenantMismatch,
)
from app.schemas import (
    EvaluationContext,
    ExperimentAssignment,
    ExperimentDefinition,
    ExperimentSnapshotEntry,
    FeatureEvaluationResult,
    FeatureRule,
    FeatureSnapshot,
    FeatureSnapshotEntry,
    RuleSource,
    SnapshotOptions,
)
from app.services.experiment_eval import assign_experiment
from app.services.feature_eval import resolve_feature
from app.services.hashing import canonical_checksum, tenant_fingerprint
from app.utils.clock import Clock, ensure_utc, resolve_now, to_iso, truncate_to_millis, utc_now

logger = logging.getLogger(__name__)

NOT_IN_SNAPSHOT_REASON = "Feature not found in snapshot, defaulting to disabled"
SNAPSHOT_REASON_SUFFIX = " (from verified snapshot)"


def unique_feature_ids(rules: Iterable[FeatureRule]) -> List[str]:
    """Distinct feature ids in order of first appearance."""
    return list(dict.fromkeys(r.feature_id for r in rules))


def snapshot_body(
    tenant_id: str,
    subject_id: str,
    features: Mapping[str, FeatureSnapshotEntry],
    experiments: Mapping[str, ExperimentSnapshotEntry],
    generated_at: datetime,
    expires_at: datetime,
) -> Dict[str, Any]:
    """
    The checksummed part of a snapshot. Key names, the omission of absent
    optional fields and the ISO instant format are part of the wire format.
    """
    return {
        "tenantId": tenant_id,
        "subjectId": subject_id,
        "features": {
            key: entry.model_dump(mode="json", by_alias=True, exclude_none=True)
            for key, entry in features.items()
        },
        "experiments": {
            key: entry.model_dump(mode="json", by_alias=True, exclude_none=True)
            for key, entry in experiments.items()
        },
        "generatedAt": to_iso(generated_at),
        "expiresAt": to_iso(expires_at),
    }


def generate_snapshot(
    context: EvaluationContext,
    rules: Iterable[FeatureRule],
    experiments: Iterable[ExperimentDefinition],
    options: Optional[SnapshotOptions] = None,
    clock: Clock = utc_now,
) -> FeatureSnapshot:
    """
    Freeze the resolved features and experiment assignments of one subject.

    Rules and experiments of other tenants are dropped rather than rejected.
    """
    generated_at = truncate_to_millis(resolve_now(context.now, clock))
    expires_in_ms = settings.snapshot_expires_in_ms
    if options is not None and options.expires_in_ms is not None:
        expires_in_ms = options.expires_in_ms
    expires_at = generated_at + timedelta(milliseconds=expires_in_ms)

    # evaluate everything at the snapshot's own instant
    context = context.model_copy(update={"now": generated_at})

    tenant_rules = [r for r in rules if r.tenant_id == context.tenant_id]
    tenant_experiments = [e for e in experiments if e.tenant_id == context.tenant_id]

    features: Dict[str, FeatureSnapshotEntry] = {}
    for feature_id in unique_feature_ids(tenant_rules):
        result = resolve_feature(feature_id, context, tenant_rules)
        features[feature_id] = FeatureSnapshotEntry(
            feature_id=result.feature_id,
            enabled=result.enabled,
            source=result.source,
            rule_id=result.rule_id,
            reason=result.reason,
        )

    experiment_entries: Dict[str, ExperimentSnapshotEntry] = {}
    for experiment in tenant_experiments:
        assignment = assign_experiment(experiment, context)
        experiment_entries[experiment.id] = ExperimentSnapshotEntry(
            experiment_id=assignment.experiment_id,
            variant_id=assignment.variant_id,
            variant_name=assignment.variant_name,
            bucket=assignment.bucket,
        )

    body = snapshot_body(
        context.tenant_id,
        context.subject_id,
        features,
        experiment_entries,
        generated_at,
        expires_at,
    )
    snapshot = FeatureSnapshot(
        id=uuid.uuid4().hex,
        tenant_id=context.tenant_id,
        tenant_hash=tenant_fingerprint(context.tenant_id),
        subject_id=context.subject_id,
        features=features,
        experiments=experiment_entries,
        generated_at=generated_at,
        expires_at=expires_at,
        checksum=canonical_checksum(body),
    )
    logger.info(
        "Snapshot generated",
        extra={
            "tenant": snapshot.tenant_id,
            "snapshot_id": snapshot.id,
            "features": len(features),
            "experiments": len(experiment_entries),
        },
    )
    return snapshot


def verify_snapshot(snapshot: FeatureSnapshot) -> bool:
    """Return True, or raise SnapshotIntegrityError if the snapshot was altered."""
    body = snapshot_body(
        snapshot.tenant_id,
        snapshot.subject_id,
        snapshot.features,
        snapshot.experiments,
        snapshot.generated_at,
        snapshot.expires_at,
    )
    if canonical_checksum(body) != snapshot.checksum:
        logger.warning(
            "Snapshot checksum mismatch",
            extra={"tenant": snapshot.tenant_id, "snapshot_id": snapshot.id},
        )
        raise SnapshotIntegrityError(
            "Snapshot checksum mismatch - data may have been tampered with"
        )
    if tenant_fingerprint(snapshot.tenant_id) != snapshot.tenant_hash:
        logger.warning(
            "Snapshot tenant hash mismatch",
            extra={"tenant": snapshot.tenant_id, "snapshot_id": snapshot.id},
        )
        raise SnapshotIntegrityError(
            "Snapshot tenant hash mismatch - tenant isolation violated"
        )
    return True


def open_snapshot(
    snapshot: FeatureSnapshot,
    now: Optional[datetime] = None,
    context_tenant_id: Optional[str] = None,
    clock: Clock = utc_now,
) -> datetime:
    """
    Run the gates shared by every read from a snapshot, in order: tenant,
    integrity, expiry. Returns the evaluation instant.
    """
    if context_tenant_id is not None and context_tenant_id != snapshot.tenant_id:
        raise TenantMismatch(
            f"Cannot evaluate snapshot for tenant {snapshot.tenant_id} "
            f"with context tenant {context_tenant_id}"
        )

    verify_snapshot(snapshot)

    now = resolve_now(now, clock)
    # the checksum only covers whole milliseconds
    expires_at = truncate_to_millis(ensure_utc(snapshot.expires_at))
    if now > expires_at:
        logger.warning(
            "Snapshot expired",
            extra={"tenant": snapshot.tenant_id, "snapshot_id": snapshot.id},
        )
        raise SnapshotExpired(
            f"Snapshot expired at {to_iso(expires_at)}, current time is {to_iso(now)}"
        )
    return now


def evaluate_from_snapshot(
    feature_id: str,
    snapshot: FeatureSnapshot,
    now: Optional[datetime] = None,
    context_tenant_id: Optional[str] = None,
    clock: Clock = utc_now,
) -> FeatureEvaluationResult:
    """Evaluate a feature offline from a verified, unexpired snapshot."""
    now = open_snapshot(snapshot, now, context_tenant_id, clock)

    entry = snapshot.features.get(feature_id)
    if entry is None:
        return FeatureEvaluationResult(
            feature_id=feature_id,
            enabled=False,
            source=RuleSource.SYSTEM,
            reason=NOT_IN_SNAPSHOT_REASON,
            evaluated_at=now,
        )

    return FeatureEvaluationResult(
        feature_id=entry.feature_id,
        enabled=entry.enabled,
        source=entry.source,
        rule_id=entry.rule_id,
        reason=f"{entry.reason}{SNAPSHOT_REASON_SUFFIX}",
        evaluated_at=now,
    )


def assignment_from_snapshot(
    experiment_id: str,
    snapshot: FeatureSnapshot,
    now: Optional[datetime] = None,
    context_tenant_id: Optional[str] = None,
    clock: Clock = utc_now,
) -> Optional[ExperimentAssignment]:
    """Restore a frozen experiment assignment; None if the snapshot has none."""
    now = open_snapshot(snapshot, now, context_tenant_id, clock)

    entry = snapshot.experiments.get(experiment_id)
    if entry is None:
        return None

    return ExperimentAssignment(
        experiment_id=entry.experiment_id,
        variant_id=entry.variant_id,
        variant_name=entry.variant_name,
        bucket=entry.bucket,
        tenant_id=snapshot.tenant_id,
        subject_id=snapshot.subject_id,
        assigned_at=now,
        reason=f"Assignment restored from verified snapshot (bucket {entry.bucket})",
    )
