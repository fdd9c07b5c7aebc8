"""
Record storage backends.

- InMemoryRecordStore: per-record CAS, process-local
- WALRecordStore: same semantics, durable via a hash-chained write-ahead log
"""

from .base import (
    Mutation,
    RecordStore,
    check_mutation,
    claim_for_verification,
    commit_clear_value,
    replace_public_attributes,
)
from .memory import InMemoryRecordStore
from .wal import RecordWAL, WALEntryType, WALRecordStore

__all__ = [
    "Mutation",
    "RecordStore",
    "check_mutation",
    "claim_for_verification",
    "commit_clear_value",
    "replace_public_attributes",
    "InMemoryRecordStore",
    "RecordWAL",
    "WALEntryType",
    "WALRecordStore",
]
