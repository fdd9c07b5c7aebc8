from .timestamps import now_iso, utc_now, epoch_ms, monotonic_ms
from .json import canonical_bytes, stable_json_hash
from .id_gen import generate_short_id, generate_record_id
from .logging import configure_logging

__all__ = [
    "now_iso",
    "utc_now",
    "epoch_ms",
    "monotonic_ms",
    "canonical_bytes",
    "stable_json_hash",
    "generate_short_id",
    "generate_record_id",
    "configure_logging",
]
