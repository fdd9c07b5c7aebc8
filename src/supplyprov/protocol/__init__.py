from .enums import ErrorCode, LifecycleTag, RecordStatus, VerificationOutcomeKind
from .models import (
    PublicAttributes,
    Record,
    RecordFilter,
    RecordStats,
    VerificationOutcome,
)
from .errors import (
    SupplyProvError,
    ValidationError,
    EncryptionError,
    DecryptionError,
    VerificationTimeoutError,
    ProofVerificationError,
    IntegrityAnomalyError,
    ConflictError,
    RecordNotFoundError,
    NotOwnerError,
    StoreError,
    ContentionError,
    CasError,
    VersionConflict,
    InvalidTransitionError,
)

__all__ = [
    "ErrorCode",
    "LifecycleTag",
    "RecordStatus",
    "VerificationOutcomeKind",
    "PublicAttributes",
    "Record",
    "RecordFilter",
    "RecordStats",
    "VerificationOutcome",
    "SupplyProvError",
    "ValidationError",
    "EncryptionError",
    "DecryptionError",
    "VerificationTimeoutError",
    "ProofVerificationError",
    "IntegrityAnomalyError",
    "ConflictError",
    "RecordNotFoundError",
    "NotOwnerError",
    "StoreError",
    "ContentionError",
    "CasError",
    "VersionConflict",
    "InvalidTransitionError",
]
