# feature_eval.py

import logging
from datetime import datetime
from typing import Iterable, List

from app.errors import TenantMismatch
from app.schemas import (
    PRECEDENCE_ORDER,
    EvaluationContext,
    FeatureEvaluationResult,
    FeatureRule,
    RuleSource,
)
from app.utils.clock import Clock, resolve_now, utc_now

logger = logging.getLogger(__name__)

NO_MATCH_REASON = "No matching rules found, defaulting to disabled"


def is_rule_active(rule: FeatureRule, now: datetime) -> bool:
    return rule.time_window is None or rule.time_window.is_active(now)


def matches_context(rule: FeatureRule, context: EvaluationContext) -> bool:
    """Selector check for the rule's own tier."""
    if rule.source == RuleSource.INDIVIDUAL:
        return rule.subject_id == context.subject_id
    if rule.source == RuleSource.GROUP:
        return rule.group_id is not None and rule.group_id in context.group_ids
    if rule.source == RuleSource.PARTNER:
        return rule.partner_id == context.partner_id
    if rule.source == RuleSource.PLAN:
        return rule.plan_id == context.plan_id
    # tenant and system rules carry no selector
    return True


def reason_for(rule: FeatureRule) -> str:
    if rule.source == RuleSource.INDIVIDUAL:
        return f"Individual override for subject {rule.subject_id}"
    if rule.source == RuleSource.GROUP:
        return f"Group override for group {rule.group_id}"
    if rule.source == RuleSource.TENANT:
        return f"Tenant-level rule for tenant {rule.tenant_id}"
    if rule.source == RuleSource.PARTNER:
        return f"Partner-level rule for partner {rule.partner_id}"
    if rule.source == RuleSource.PLAN:
        return f"Plan-level rule for plan {rule.plan_id}"
    return "System default rule"


def rules_for_feature(
    feature_id: str, context: EvaluationContext, rules: Iterable[FeatureRule]
) -> List[FeatureRule]:
    """
    Keep the rules of one feature, failing on the first one that belongs to
    another tenant. Rules of other features are not tenant-checked.
    """
    relevant: List[FeatureRule] = []
    for rule in rules:
        if rule.feature_id != feature_id:
            continue
        if rule.tenant_id != context.tenant_id:
            raise TenantMismatch(
                f"Rule {rule.id} belongs to tenant {rule.tenant_id}, "
                f"but context is for tenant {context.tenant_id}"
            )
        relevant.append(rule)
    return relevant


def resolve_feature(
    feature_id: str,
    context: EvaluationContext,
    rules: Iterable[FeatureRule],
    clock: Clock = utc_now,
) -> FeatureEvaluationResult:
    """
    Resolve the effective state of a feature for the context's subject.

    Tiers are tried from individual down to system; inside the first tier
    with a time-active, matching rule the highest priority wins and equal
    priorities keep input order. Without any match the feature is disabled.
    """
    now = resolve_now(context.now, clock)
    relevant = rules_for_feature(feature_id, context, rules)

    for source in PRECEDENCE_ORDER:
        candidates = [
            r for r in relevant
            if r.source == source and is_rule_active(r, now) and matches_context(r, context)
        ]
        if not candidates:
            continue

        # max() returns the first of equal maxima
        rule = max(candidates, key=lambda r: r.priority)
        logger.debug(
            "Feature resolved",
            extra={
                "tenant": context.tenant_id,
                "feature_id": feature_id,
                "source": rule.source.value,
                "rule_id": rule.id,
            },
        )
        return FeatureEvaluationResult(
            feature_id=feature_id,
            enabled=rule.enabled,
            source=rule.source,
            rule_id=rule.id,
            reason=reason_for(rule),
            evaluated_at=now,
        )

    logger.debug(
        "No matching rule, defaulting to disabled",
        extra={"tenant": context.tenant_id, "feature_id": feature_id},
    )
    return FeatureEvaluationResult(
        feature_id=feature_id,
        enabled=False,
        source=RuleSource.SYSTEM,
        reason=NO_MATCH_REASON,
        evaluated_at=now,
    )
