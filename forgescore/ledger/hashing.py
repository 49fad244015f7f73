"""Canonical hashing for evidence deduplication.

The ledger dedupes on (builder_id, hash), so the hash must depend only on
the logical content of the evidence, never on key order or formatting:

    canonical = json.dumps(value, sort_keys=True, separators=(",", ":"))
    hash      = sha256(canonical.encode("utf-8")).hexdigest()

Dict keys are sorted at every depth. Datetimes serialize as ISO-8601,
Decimals and enums as their string value.
"""

from __future__ import annotations

import hashlib
import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional


def _serialize_value(val: Any) -> Any:
    """Serialize a value for deterministic hashing."""
    if val is None:
        return None
    elif isinstance(val, Enum):
        return _serialize_value(val.value)
    elif isinstance(val, Decimal):
        return str(val)
    elif isinstance(val, datetime):
        return val.isoformat()
    elif isinstance(val, Mapping):
        return {str(k): _serialize_value(v) for k, v in sorted(val.items(), key=lambda kv: str(kv[0]))}
    elif isinstance(val, (list, tuple)):
        return [_serialize_value(v) for v in val]
    elif isinstance(val, (set, frozenset)):
        return sorted(_serialize_value(v) for v in val)
    elif isinstance(val, (int, float, str, bool)):
        return val
    else:
        return str(val)


def canonical_json(data: Mapping[str, Any]) -> str:
    """Canonical JSON text: sorted keys, compact separators, UTF-8 kept as-is."""
    return json.dumps(_serialize_value(data), sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def hash_payload(data: Mapping[str, Any]) -> str:
    """Compute deterministic SHA256 hash of a dictionary.

    Args:
        data: Dictionary to hash

    Returns:
        Hex-encoded SHA256 hash (64 characters)
    """
    return hashlib.sha256(canonical_json(data).encode("utf-8")).hexdigest()


def evidence_hash(
    builder_id: str,
    evidence_type: Any,
    payload: Mapping[str, Any],
    *,
    delivery_id: Optional[str] = None,
    project_id: Optional[str] = None,
) -> str:
    """Dedupe key for one piece of evidence.

    Identity fields are merged with the payload, so the same payload about a
    different delivery or project is distinct evidence. Payload fields win
    on a name clash.
    """
    merged: Dict[str, Any] = {
        "builder_id": builder_id,
        "type": evidence_type,
        "delivery_id": delivery_id,
        "project_id": project_id,
    }
    merged.update(payload)
    return hash_payload(merged)


__all__ = ["canonical_json", "hash_payload", "evidence_hash"]
