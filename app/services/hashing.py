# hashing.py

import hashlib
import json
from typing import Any, Mapping


def digest(text: str) -> str:
    """SHA-256 of the UTF-8 encoded text as 64 lowercase hex characters."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def canonicalize(value: Any) -> Any:
    """
    Rebuild `value` with the keys of every mapping, at every depth,
    inserted in ascending order. Sequences keep their order and scalars
    are returned untouched.
    """
    if isinstance(value, Mapping):
        return {key: canonicalize(value[key]) for key in sorted(value)}
    if isinstance(value, (list, tuple)):
        return [canonicalize(item) for item in value]
    return value


def canonical_json(value: Any) -> str:
    return json.dumps(canonicalize(value), separators=(",", ":"), ensure_ascii=False)


def canonical_checksum(value: Any) -> str:
    """Digest of the canonical JSON form; independent of key insertion order."""
    return digest(canonical_json(value))


def bucket_of(experiment_id: str, subject_id: str, tenant_id: str, salt: str) -> int:
    """
    Stable bucket in [0, 99].

    The hash input is the plain concatenation experiment_id + subject_id +
    tenant_id + salt, and only the first 8 hex characters of the digest are
    used. Previously generated snapshots depend on both.
    """
    h = digest(f"{experiment_id}{subject_id}{tenant_id}{salt}")
    return int(h[:8], 16) % 100


def tenant_fingerprint(tenant_id: str) -> str:
    return digest(tenant_id)
