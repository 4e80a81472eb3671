# app/errors.py


class FeatureServiceError(Exception):
    """Base class for every error raised by the evaluation core."""

    code = "feature_service_error"


class TenantMismatch(FeatureServiceError):
    """A rule, experiment or snapshot belongs to a different tenant than the caller."""

    code = "tenant_mismatch"


class SnapshotIntegrityError(FeatureServiceError):
    """Checksum or tenant fingerprint of a snapshot does not match its content."""

    code = "snapshot_integrity"


class SnapshotExpired(FeatureServiceError):
    code = "snapshot_expired"


class InvalidDefinition(FeatureServiceError):
    """Raised at construction time when a raw record fails validation."""

    code = "invalid_definition"
