from enum import Enum


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "validation_error"
    ENCRYPTION_ERROR = "encryption_error"
    DECRYPTION_ERROR = "decryption_error"
    VERIFICATION_TIMEOUT = "verification_timeout"
    PROOF_VERIFICATION_ERROR = "proof_verification_error"
    INTEGRITY_ANOMALY = "integrity_anomaly"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    CAS_CONFLICT = "cas_conflict"
    INVALID_TRANSITION = "invalid_transition"
    STORE_ERROR = "store_error"
    CONTENTION = "contention"
    INTERNAL_ERROR = "internal_error"


class RecordStatus(str, Enum):
    """
    Verification lifecycle of a record.

    Legal transitions (one step at a time, never backward):
    - CREATED -> VERIFICATION_PENDING
    - VERIFICATION_PENDING -> VERIFIED

    Terminal state: VERIFIED
    """

    CREATED = "created"
    VERIFICATION_PENDING = "verification_pending"
    VERIFIED = "verified"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)

    @classmethod
    def is_terminal(cls, status: "RecordStatus") -> bool:
        return status is cls.VERIFIED

    @classmethod
    def validate_transition(cls, from_status: "RecordStatus", to_status: "RecordStatus") -> bool:
        """
        Staying in place is legal (attribute-only mutations); otherwise only
        the next status in order is accepted.
        """
        return to_status.rank - from_status.rank in (0, 1)


_STATUS_ORDER = (
    RecordStatus.CREATED,
    RecordStatus.VERIFICATION_PENDING,
    RecordStatus.VERIFIED,
)


class LifecycleTag(str, Enum):
    """Public supply-chain stage of an item. Never affects verification."""

    MANUFACTURED = "manufactured"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"

    @property
    def code(self) -> int:
        return _LIFECYCLE_CODES[self]

    @property
    def label(self) -> str:
        return _LIFECYCLE_LABELS[self]

    @classmethod
    def from_code(cls, code: int) -> "LifecycleTag":
        for tag, value in _LIFECYCLE_CODES.items():
            if value == code:
                return tag
        raise ValueError(f"Unknown lifecycle code: {code}")

    @classmethod
    def parse(cls, value) -> "LifecycleTag":
        """Accept a tag, its string value, its numeric code, or its label."""
        if isinstance(value, cls):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return cls.from_code(value)
        if isinstance(value, str):
            normalized = value.strip().lower().replace(" ", "_").replace("-", "_")
            if normalized.isdigit():
                return cls.from_code(int(normalized))
            return cls(normalized)
        raise ValueError(f"Unsupported lifecycle value: {value!r}")


_LIFECYCLE_CODES = {
    LifecycleTag.MANUFACTURED: 1,
    LifecycleTag.IN_TRANSIT: 2,
    LifecycleTag.DELIVERED: 3,
}

_LIFECYCLE_LABELS = {
    LifecycleTag.MANUFACTURED: "Manufactured",
    LifecycleTag.IN_TRANSIT: "In Transit",
    LifecycleTag.DELIVERED: "Delivered",
}


class VerificationOutcomeKind(str, Enum):
    """How a successful verification request was resolved."""

    ALREADY_VERIFIED = "already_verified"  # short-circuit, no crypto work
    COMMITTED = "committed"  # this caller's CAS made the record VERIFIED
    CONCEDED = "conceded"  # another caller committed first; its value wins
