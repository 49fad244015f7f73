"""Evidence ledger: canonical hashing and idempotent storage."""

from .evidence import EvidenceLedger, row_to_evidence
from .hashing import canonical_json, evidence_hash, hash_payload

__all__ = [
    "EvidenceLedger",
    "row_to_evidence",
    "canonical_json",
    "evidence_hash",
    "hash_payload",
]
