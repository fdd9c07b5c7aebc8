from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional

from .enums import LifecycleTag, RecordStatus, VerificationOutcomeKind


# -------------------------
# RECORDS
# -------------------------

@dataclass(frozen=True)
class PublicAttributes:
    """Non-sensitive, owner-editable fields of a record."""

    name: str
    description: str = ""
    lifecycle: LifecycleTag = LifecycleTag.MANUFACTURED
    location: str = ""
    public_value: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "lifecycle": self.lifecycle.value,
            "location": self.location,
            "public_value": self.public_value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PublicAttributes:
        return cls(
            name=data["name"],
            description=data.get("description", ""),
            lifecycle=LifecycleTag(data.get("lifecycle", LifecycleTag.MANUFACTURED.value)),
            location=data.get("location", ""),
            public_value=int(data.get("public_value", 0)),
        )


@dataclass(frozen=True)
class Record:
    """
    Immutable snapshot of a confidential record.

    The store replaces snapshots wholesale on every accepted mutation, so a
    reference obtained from get() never changes under the reader.
    """

    record_id: str
    owner_id: str
    public_attributes: PublicAttributes
    ciphertext_handle: str
    inclusion_proof: str
    created_at: str
    status: RecordStatus = RecordStatus.CREATED
    clear_value: Optional[int] = None
    version: int = 0
    updated_at: Optional[str] = None

    @property
    def is_verified(self) -> bool:
        return self.status is RecordStatus.VERIFIED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "owner_id": self.owner_id,
            "public_attributes": self.public_attributes.to_dict(),
            "ciphertext_handle": self.ciphertext_handle,
            "inclusion_proof": self.inclusion_proof,
            "created_at": self.created_at,
            "status": self.status.value,
            "clear_value": self.clear_value,
            "version": self.version,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Record:
        clear_value = data.get("clear_value")
        return cls(
            record_id=data["record_id"],
            owner_id=data["owner_id"],
            public_attributes=PublicAttributes.from_dict(data["public_attributes"]),
            ciphertext_handle=data["ciphertext_handle"],
            inclusion_proof=data.get("inclusion_proof", ""),
            created_at=data["created_at"],
            status=RecordStatus(data.get("status", RecordStatus.CREATED.value)),
            clear_value=int(clear_value) if clear_value is not None else None,
            version=int(data.get("version", 0)),
            updated_at=data.get("updated_at"),
        )


# -------------------------
# QUERIES
# -------------------------

@dataclass
class RecordFilter:
    """
    Read-only projection filter for list().

    search: case-insensitive substring over name and description.
    verified: True -> only VERIFIED, False -> everything else, None -> all.
    """

    search: Optional[str] = None
    verified: Optional[bool] = None
    lifecycle: Optional[LifecycleTag] = None
    owner_id: Optional[str] = None

    def matches(self, record: Record) -> bool:
        attrs = record.public_attributes
        if self.search:
            needle = self.search.lower()
            if needle not in attrs.name.lower() and needle not in attrs.description.lower():
                return False
        if self.verified is not None and record.is_verified != self.verified:
            return False
        if self.lifecycle is not None and attrs.lifecycle is not self.lifecycle:
            return False
        if self.owner_id is not None and record.owner_id != self.owner_id:
            return False
        return True


@dataclass
class RecordStats:
    total: int = 0
    verified: int = 0
    manufactured: int = 0
    in_transit: int = 0
    delivered: int = 0

    @classmethod
    def from_records(cls, records: Iterable[Record]) -> RecordStats:
        stats = cls()
        for record in records:
            stats.total += 1
            if record.is_verified:
                stats.verified += 1
            lifecycle = record.public_attributes.lifecycle
            if lifecycle is LifecycleTag.MANUFACTURED:
                stats.manufactured += 1
            elif lifecycle is LifecycleTag.IN_TRANSIT:
                stats.in_transit += 1
            elif lifecycle is LifecycleTag.DELIVERED:
                stats.delivered += 1
        return stats

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "verified": self.verified,
            "manufactured": self.manufactured,
            "in_transit": self.in_transit,
            "delivered": self.delivered,
        }


# -------------------------
# VERIFICATION
# -------------------------

@dataclass(frozen=True)
class VerificationOutcome:
    record_id: str
    clear_value: int
    kind: VerificationOutcomeKind
    version: int
    attempts: int = field(default=1, compare=False)

    @property
    def already_verified(self) -> bool:
        return self.kind is not VerificationOutcomeKind.COMMITTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "clear_value": self.clear_value,
            "outcome": self.kind.value,
            "version": self.version,
        }
