import hashlib
import json
from typing import Any


def canonical_bytes(obj: Any) -> bytes:
    """Deterministic UTF-8 encoding used for hashing and signing."""
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True).encode(
        "utf-8"
    )


def stable_json_hash(obj: Any) -> str:
    """Compute deterministic SHA-256 hash of JSON-serializable object."""
    return hashlib.sha256(canonical_bytes(obj)).hexdigest()
