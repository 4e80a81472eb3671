from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, FrozenSet, List, Mapping, Optional, Type, TypeVar

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    model_validator,
)
from pydantic.alias_generators import to_camel

from app.errors import InvalidDefinition
from app.utils.clock import ensure_utc

UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]
NonEmptyStr = Annotated[str, Field(min_length=1)]


class Record(BaseModel):
    """Immutable value record; camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )


class RuleSource(str, Enum):
    INDIVIDUAL = "individual"
    GROUP = "group"
    TENANT = "tenant"
    PARTNER = "partner"
    PLAN = "plan"
    SYSTEM = "system"


# Highest precedence first
PRECEDENCE_ORDER: List[RuleSource] = [
    RuleSource.INDIVIDUAL,
    RuleSource.GROUP,
    RuleSource.TENANT,
    RuleSource.PARTNER,
    RuleSource.PLAN,
    RuleSource.SYSTEM,
]


class TimeWindow(Record):
    starts_at: Optional[UtcDatetime] = None
    ends_at: Optional[UtcDatetime] = None

    @model_validator(mode="after")
    def _check_order(self) -> "TimeWindow":
        if self.starts_at and self.ends_at and self.starts_at >= self.ends_at:
            raise ValueError("startsAt must be before endsAt")
        return self

    def is_active(self, now: datetime) -> bool:
        """Both bounds are inclusive; a missing bound is unbounded."""
        if self.starts_at is not None and now < self.starts_at:
            return False
        if self.ends_at is not None and now > self.ends_at:
            return False
        return True


class EvaluationContext(Record):
    tenant_id: NonEmptyStr
    subject_id: NonEmptyStr
    group_ids: FrozenSet[str] = frozenset()
    partner_id: Optional[str] = None
    plan_id: Optional[str] = None
    attributes: Dict[str, Any] = {}
    now: Optional[UtcDatetime] = None


class FeatureRule(Record):
    id: NonEmptyStr
    feature_id: NonEmptyStr
    tenant_id: NonEmptyStr
    source: RuleSource
    enabled: bool
    subject_id: Optional[str] = None
    group_id: Optional[str] = None
    partner_id: Optional[str] = None
    plan_id: Optional[str] = None
    time_window: Optional[TimeWindow] = None
    priority: int = Field(default=0, ge=0)


class ExperimentVariant(Record):
    id: NonEmptyStr
    name: NonEmptyStr
    traffic_allocation: int = Field(ge=0, le=100)


class ExperimentDefinition(Record):
    id: NonEmptyStr
    tenant_id: NonEmptyStr
    salt: NonEmptyStr
    variants: List[ExperimentVariant] = Field(min_length=1)
    enabled: bool = True
    time_window: Optional[TimeWindow] = None
    name: Optional[str] = None
    description: Optional[str] = None

    @model_validator(mode="after")
    def _check_allocations(self) -> "ExperimentDefinition":
        total = sum(v.traffic_allocation for v in self.variants)
        if total != 100:
            raise ValueError(f"Variant traffic allocations must sum to 100, got {total}")
        return self


class FeatureEvaluationResult(Record):
    feature_id: str
    enabled: bool
    source: RuleSource
    rule_id: Optional[str] = None
    reason: str
    evaluated_at: UtcDatetime


class ExperimentAssignment(Record):
    experiment_id: str
    variant_id: str
    variant_name: str
    bucket: int = Field(ge=-1, le=99)
    tenant_id: str
    subject_id: str
    assigned_at: UtcDatetime
    reason: str


# --- Snapshot schema ---
class FeatureSnapshotEntry(Record):
    feature_id: str
    enabled: bool
    source: RuleSource
    rule_id: Optional[str] = None
    reason: str


class ExperimentSnapshotEntry(Record):
    experiment_id: str
    variant_id: str
    variant_name: str
    bucket: int


# Upper bound on snapshot lifetime: 100 years
MAX_SNAPSHOT_EXPIRES_IN_MS = 100 * 365 * 24 * 60 * 60 * 1000


class SnapshotOptions(Record):
    expires_in_ms: Optional[int] = Field(default=None, gt=0, le=MAX_SNAPSHOT_EXPIRES_IN_MS)


class FeatureSnapshot(Record):
    id: NonEmptyStr
    tenant_id: NonEmptyStr
    tenant_hash: NonEmptyStr
    subject_id: NonEmptyStr
    features: Dict[str, FeatureSnapshotEntry] = {}
    experiments: Dict[str, ExperimentSnapshotEntry] = {}
    generated_at: UtcDatetime
    expires_at: UtcDatetime
    checksum: NonEmptyStr

    @model_validator(mode="after")
    def _check_lifetime(self) -> "FeatureSnapshot":
        if self.generated_at >= self.expires_at:
            raise ValueError("generatedAt must be before expiresAt")
        return self


RecordT = TypeVar("RecordT", bound=Record)


def load(model: Type[RecordT], data: Mapping[str, Any]) -> RecordT:
    """
    Validate a raw mapping into an immutable record.

    This is the boundary check; evaluation functions trust what it returns.
    Raises InvalidDefinition on any shape or invariant violation.
    """
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise InvalidDefinition(
            f"Invalid {model.__name__}: {exc.error_count()} validation error(s)"
        ) from exc


# --- API request/response schemas ---
class FeatureEvaluateRequest(Record):
    feature_id: NonEmptyStr
    context: EvaluationContext
    rules: List[FeatureRule] = []


class ExperimentAssignRequest(Record):
    experiment: ExperimentDefinition
    context: EvaluationContext


class SnapshotGenerateRequest(Record):
    context: EvaluationContext
    rules: List[FeatureRule] = []
    experiments: List[ExperimentDefinition] = []
    options: SnapshotOptions = SnapshotOptions()


class SnapshotVerifyRequest(Record):
    snapshot: FeatureSnapshot


class SnapshotVerifyResponse(Record):
    valid: bool
    snapshot_id: str


class SnapshotEvaluateRequest(Record):
    feature_id: NonEmptyStr
    snapshot: FeatureSnapshot
    now: Optional[UtcDatetime] = None
