from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from .enums import ErrorCode

if TYPE_CHECKING:
    from .models import Record


class SupplyProvError(Exception):
    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    retryable: bool = False

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        *,
        retryable: Optional[bool] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if retryable is not None:
            self.retryable = retryable
        self.details: Dict[str, Any] = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }


class ValidationError(SupplyProvError):
    """Bad caller input. `field_errors` maps field name -> reason."""

    code = ErrorCode.VALIDATION_ERROR

    def __init__(self, message: str, field_errors: Optional[Dict[str, str]] = None):
        self.field_errors: Dict[str, str] = dict(field_errors or {})
        super().__init__(message, details={"fields": self.field_errors})


class EncryptionError(SupplyProvError):
    """Raised by the compute provider when a value cannot be encrypted."""

    code = ErrorCode.ENCRYPTION_ERROR
    retryable = True


class DecryptionError(SupplyProvError):
    """Unknown handle, unauthorized context, or provider unavailable."""

    code = ErrorCode.DECRYPTION_ERROR
    retryable = True


class VerificationTimeoutError(SupplyProvError):
    """The caller abandoned the decryption round trip; the record stays pending."""

    code = ErrorCode.VERIFICATION_TIMEOUT
    retryable = True


class ProofVerificationError(SupplyProvError):
    """Decryption proof did not check out. Retry only with a fresh decryption round."""

    code = ErrorCode.PROOF_VERIFICATION_ERROR


class IntegrityAnomalyError(SupplyProvError):
    """A locally decrypted value disagrees with the committed clear value."""

    code = ErrorCode.INTEGRITY_ANOMALY


class ConflictError(SupplyProvError):
    """Record id already exists."""

    code = ErrorCode.CONFLICT


class RecordNotFoundError(SupplyProvError):
    code = ErrorCode.NOT_FOUND


class NotOwnerError(SupplyProvError):
    code = ErrorCode.FORBIDDEN


class StoreError(SupplyProvError):
    """Backend I/O failure. Fatal; no partial state change is ever left behind."""

    code = ErrorCode.STORE_ERROR


class ContentionError(SupplyProvError):
    """Compare-and-set retries ran out under concurrent writers. Nothing was applied."""

    code = ErrorCode.CONTENTION
    retryable = True


class CasError(SupplyProvError):
    """Base for compare-and-set rejections. Internal signal, resolved by callers."""

    code = ErrorCode.CAS_CONFLICT


class VersionConflict(CasError):
    """Stored version differs from the expected one. Carries the current record."""

    def __init__(self, record_id: str, expected_version: int, current: "Record"):
        super().__init__(
            f"Version conflict on {record_id}: expected {expected_version}, "
            f"found {current.version}",
            details={"expected_version": expected_version, "current_version": current.version},
        )
        self.record_id = record_id
        self.expected_version = expected_version
        self.current = current


class InvalidTransitionError(CasError):
    """Mutation would break a record invariant. The stored record is unchanged."""

    code = ErrorCode.INVALID_TRANSITION
