from .core.runtime import SupplyProvRuntime
from .core.lifecycle import RecordLifecycleAPI
from .core.coordinator import VerificationCoordinator
from .store.base import RecordStore
from .store.memory import InMemoryRecordStore
from .store.wal import WALRecordStore
from .compute.base import ConfidentialComputeProvider
from .compute.local import LocalConfidentialComputeProvider
from .protocol import (
    LifecycleTag,
    PublicAttributes,
    Record,
    RecordFilter,
    RecordStats,
    RecordStatus,
    VerificationOutcome,
    VerificationOutcomeKind,
)

__version__ = "0.1.0"

__all__ = [
    "SupplyProvRuntime",
    "RecordLifecycleAPI",
    "VerificationCoordinator",
    "RecordStore",
    "InMemoryRecordStore",
    "WALRecordStore",
    "ConfidentialComputeProvider",
    "LocalConfidentialComputeProvider",
    "LifecycleTag",
    "PublicAttributes",
    "Record",
    "RecordFilter",
    "RecordStats",
    "RecordStatus",
    "VerificationOutcome",
    "VerificationOutcomeKind",
]
