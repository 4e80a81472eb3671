# tests/test_schemas.py
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from app.errors import InvalidDefinition
from app.schemas import (
    MAX_SNAPSHOT_EXPIRES_IN_MS,
    PRECEDENCE_ORDER,
    EvaluationContext,
    ExperimentDefinition,
    FeatureRule,
    FeatureSnapshot,
    RuleSource,
    SnapshotOptions,
    TimeWindow,
    load,
)


def variants(*allocations):
    return [
        {"id": f"v{i}", "name": f"V{i}", "trafficAllocation": a}
        for i, a in enumerate(allocations)
    ]


def test_precedence_order():
    assert [s.value for s in PRECEDENCE_ORDER] == [
        "individual", "group", "tenant", "partner", "plan", "system"
    ]


def test_time_window_accepts_open_bounds():
    assert load(TimeWindow, {}).starts_at is None
    assert load(TimeWindow, {"startsAt": "2025-01-01T00:00:00Z"}).ends_at is None
    assert load(TimeWindow, {"endsAt": "2025-12-31T00:00:00Z"}).starts_at is None


@pytest.mark.parametrize(
    "window",
    [
        {"startsAt": "2025-12-31T00:00:00Z", "endsAt": "2025-01-01T00:00:00Z"},
        {"startsAt": "2025-01-01T00:00:00Z", "endsAt": "2025-01-01T00:00:00Z"},
    ],
)
def test_time_window_requires_start_before_end(window):
    with pytest.raises(InvalidDefinition):
        load(TimeWindow, window)


def test_naive_datetimes_are_taken_as_utc():
    window = TimeWindow(starts_at=datetime(2025, 1, 1))
    assert window.starts_at == datetime(2025, 1, 1, tzinfo=timezone.utc)


def test_rule_defaults_and_aliases():
    rule = load(FeatureRule, {
        "id": "rule-1",
        "featureId": "feature-1",
        "tenantId": "tenant-1",
        "source": "system",
        "enabled": True,
    })
    assert rule.priority == 0
    assert rule.source == RuleSource.SYSTEM
    assert rule.model_dump(by_alias=True)["featureId"] == "feature-1"


@pytest.mark.parametrize(
    "override",
    [
        {"tenantId": None},
        {"tenantId": ""},
        {"source": "global"},
        {"priority": -1},
    ],
)
def test_rule_rejects_invalid_shapes(override):
    data = {"id": "rule-1", "featureId": "feature-1", "tenantId": "tenant-1",
            "source": "system", "enabled": True, **override}
    with pytest.raises(InvalidDefinition):
        load(FeatureRule, data)


def test_rules_are_immutable():
    rule = FeatureRule(id="r", feature_id="f", tenant_id="t", source=RuleSource.TENANT, enabled=True)
    with pytest.raises(ValidationError):
        rule.enabled = False


def test_experiment_accepts_allocations_summing_to_100():
    exp = load(ExperimentDefinition, {"id": "exp-1", "tenantId": "t", "salt": "s",
                                      "variants": variants(50, 50)})
    assert exp.enabled is True
    assert [v.traffic_allocation for v in exp.variants] == [50, 50]


@pytest.mark.parametrize(
    "data",
    [
        {"variants": variants(30, 30)},
        {"variants": variants(60, 50)},
        {"variants": []},
        {"variants": variants(101)},
        {"variants": variants(50, 50), "salt": ""},
    ],
)
def test_experiment_rejects_invalid_definitions(data):
    base = {"id": "exp-1", "tenantId": "t", "salt": "s"}
    with pytest.raises(InvalidDefinition):
        load(ExperimentDefinition, {**base, **data})


def test_context_requires_tenant_and_subject():
    with pytest.raises(InvalidDefinition):
        load(EvaluationContext, {})
    with pytest.raises(InvalidDefinition):
        load(EvaluationContext, {"tenantId": "t", "subjectId": ""})


def test_context_full_shape():
    ctx = load(EvaluationContext, {
        "tenantId": "tenant-1",
        "subjectId": "user-1",
        "groupIds": ["admin", "beta", "admin"],
        "partnerId": "partner-1",
        "planId": "plan-pro",
        "attributes": {"role": "admin"},
        "now": "2025-01-01T00:00:00Z",
    })
    assert ctx.group_ids == frozenset({"admin", "beta"})
    assert ctx.now == datetime(2025, 1, 1, tzinfo=timezone.utc)


def test_snapshot_requires_generated_before_expires():
    with pytest.raises(InvalidDefinition):
        load(FeatureSnapshot, {
            "id": "snap-1",
            "tenantId": "tenant-1",
            "tenantHash": "hash",
            "subjectId": "user-1",
            "features": {},
            "experiments": {},
            "generatedAt": "2025-12-31T00:00:00Z",
            "expiresAt": "2025-01-01T00:00:00Z",
            "checksum": "checksum",
        })


def test_snapshot_options_require_positive_expiry():
    with pytest.raises(InvalidDefinition):
        load(SnapshotOptions, {"expiresInMs": 0})
    assert load(SnapshotOptions, {}).expires_in_ms is None


def test_snapshot_options_bound_lifetime():
    with pytest.raises(InvalidDefinition):
        load(SnapshotOptions, {"expiresInMs": 10**15})
    assert load(SnapshotOptions, {"expiresInMs": MAX_SNAPSHOT_EXPIRES_IN_MS}).expires_in_ms == (
        MAX_SNAPSHOT_EXPIRES_IN_MS
    )
