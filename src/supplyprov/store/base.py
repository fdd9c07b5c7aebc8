"""
RecordStore contract.

The store is the single source of truth for status transitions and the only
shared mutable resource. Every write goes through insert() or
compare_and_set(); there is no other write path.

Invariants enforced on every accepted mutation:
- record_id, owner_id, ciphertext_handle, inclusion_proof, created_at never change
- status moves forward one step at a time (or stays put)
- clear_value is None unless VERIFIED, and never changes once set
- version increases by exactly 1
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Callable, List, Optional

from supplyprov.protocol.enums import RecordStatus
from supplyprov.protocol.errors import InvalidTransitionError
from supplyprov.protocol.models import PublicAttributes, Record

Mutation = Callable[[Record], Record]

_IMMUTABLE_FIELDS = (
    "record_id",
    "owner_id",
    "ciphertext_handle",
    "inclusion_proof",
    "created_at",
)


class RecordStore(ABC):
    """
    Versioned record table with per-record compare-and-set.

    Implementations MUST:
    - make compare_and_set atomic per record (linearizable per record)
    - let different records proceed in parallel (no global CAS lock)
    - never block readers on writers
    - leave the stored record untouched when a write is rejected or fails
    """

    @abstractmethod
    def insert(self, record: Record) -> str:
        """Store a new record at version 0 / CREATED. Raises ConflictError on id collision."""

    @abstractmethod
    def get(self, record_id: str) -> Optional[Record]:
        """Snapshot of the record, or None."""

    @abstractmethod
    def compare_and_set(self, record_id: str, expected_version: int, mutation: Mutation) -> Record:
        """
        Apply `mutation` if the stored version equals `expected_version`.

        Raises:
            RecordNotFoundError: unknown id
            VersionConflict: stale version (carries the current record)
            InvalidTransitionError: mutation breaks an invariant
            StoreError: backend failure (nothing was applied)
        """

    @abstractmethod
    def records(self) -> List[Record]:
        """Snapshot of all records ordered by (created_at, record_id)."""

    def is_healthy(self) -> bool:
        return True

    def close(self) -> None:
        pass


def check_mutation(current: Record, proposed: Record) -> None:
    """
    Validate a proposed successor snapshot against `current`.

    Raises InvalidTransitionError without side effects.
    """
    if not isinstance(proposed, Record):
        raise InvalidTransitionError(
            f"Mutation for {current.record_id} must return a Record, got {type(proposed).__name__}"
        )

    for name in _IMMUTABLE_FIELDS:
        if getattr(proposed, name) != getattr(current, name):
            raise InvalidTransitionError(
                f"Field '{name}' of {current.record_id} is immutable",
                details={"field": name},
            )

    if not RecordStatus.validate_transition(current.status, proposed.status):
        raise InvalidTransitionError(
            f"Illegal status transition for {current.record_id}: "
            f"{current.status.value} -> {proposed.status.value}",
            details={"from": current.status.value, "to": proposed.status.value},
        )

    if proposed.status is not RecordStatus.VERIFIED:
        if proposed.clear_value is not None:
            raise InvalidTransitionError(
                f"clear_value of {current.record_id} may only be set when VERIFIED"
            )
        return

    value = proposed.clear_value
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidTransitionError(f"VERIFIED record {current.record_id} needs an integer clear_value")
    if current.status is RecordStatus.VERIFIED and value != current.clear_value:
        raise InvalidTransitionError(f"clear_value of {current.record_id} is already set")


# -------------------------
# Mutations
# -------------------------

def claim_for_verification(record: Record) -> Record:
    """CREATED -> VERIFICATION_PENDING."""
    return replace(record, status=RecordStatus.VERIFICATION_PENDING)


def commit_clear_value(clear_value: int) -> Mutation:
    """VERIFICATION_PENDING -> VERIFIED with the decrypted value."""

    def _mutation(record: Record) -> Record:
        return replace(record, status=RecordStatus.VERIFIED, clear_value=clear_value)

    return _mutation


def replace_public_attributes(attributes: PublicAttributes) -> Mutation:
    def _mutation(record: Record) -> Record:
        return replace(record, public_attributes=attributes)

    return _mutation
