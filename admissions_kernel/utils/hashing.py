"""
Deterministic hashing utilities.

All hashing in the admissions kernel is deterministic and reproducible.
This module provides the canonical hashing functions used by the audit
chain and by workflow definition fingerprints.
"""

import hashlib
import json
from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    """
    Custom JSON serializer for types not natively supported.

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    if isinstance(obj, tuple):
        return list(obj)

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: dict | list | Any) -> str:
    """
    Convert data to a canonical JSON string.

    Keys are sorted, whitespace is removed and UUID / datetime / Enum values
    are rendered consistently.
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def to_json_safe(data: Any) -> Any:
    """Round-trip data through the canonical encoder into plain JSON types."""
    return json.loads(canonicalize_json(data))


def hash_payload(payload: dict) -> str:
    """Compute the hex SHA-256 of a payload's canonical JSON."""
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def hash_audit_event(
    entity_type: str,
    entity_id: str,
    action: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """
    Compute hash for an audit event.

    The hash includes all key fields plus the previous event's hash,
    creating a tamper-evident chain.
    """
    components = [
        entity_type,
        str(entity_id),
        action,
        payload_hash,
        prev_hash or "GENESIS",
    ]
    data = "|".join(components)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def hash_workflow_definition(stages: list[dict], transitions: list[dict]) -> str:
    """
    Fingerprint a workflow definition independent of row ids.

    Stages are identified by name and transitions by their endpoint names,
    so a duplicated workflow hashes equal to its source.

    Args:
        stages: dicts with name, sequence, required_documents,
            required_actions, assigned_role.
        transitions: dicts with name, source, target (stage names),
            conditions, required_permissions, is_automatic.
    """
    body = {
        "stages": sorted(stages, key=lambda s: (s["sequence"], s["name"])),
        "transitions": sorted(
            transitions, key=lambda t: (t["source"], t["target"], t["name"])
        ),
    }
    return hash_payload(body)
