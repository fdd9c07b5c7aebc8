from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from supplyprov.compute.base import ConfidentialComputeProvider
from supplyprov.compute.local import DEFAULT_MAX_VALUE
from supplyprov.protocol.errors import (
    ConflictError,
    ContentionError,
    EncryptionError,
    NotOwnerError,
    RecordNotFoundError,
    SupplyProvError,
    ValidationError,
    VersionConflict,
)
from supplyprov.protocol.models import (
    PublicAttributes,
    Record,
    RecordFilter,
    RecordStats,
    VerificationOutcome,
)
from supplyprov.protocol.validators import (
    validate_owner_id,
    validate_public_attributes,
    validate_record_id,
    validate_secret_value,
)
from supplyprov.store.base import RecordStore, replace_public_attributes
from supplyprov.utils.id_gen import generate_record_id
from supplyprov.utils.timestamps import now_iso

from .coordinator import VerificationCoordinator

logger = logging.getLogger(__name__)


class RecordLifecycleAPI:
    """
    Facade used by stakeholder tooling (HTTP API, CLI, dashboards).

    Stateless: creation goes encrypt -> insert, verification is delegated
    to the VerificationCoordinator, reads are projections of the store.
    """

    def __init__(
        self,
        store: RecordStore,
        provider: ConfidentialComputeProvider,
        coordinator: VerificationCoordinator,
        *,
        max_value: int = DEFAULT_MAX_VALUE,
        max_update_attempts: int = 8,
    ) -> None:
        self._store = store
        self._provider = provider
        self._coordinator = coordinator
        self._max_value = max_value
        self._max_update_attempts = max_update_attempts

    @property
    def context(self) -> str:
        return self._coordinator.context

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------
    def create(
        self,
        owner_id: str,
        public_attributes: Mapping[str, Any],
        secret_value: int,
        *,
        record_id: Optional[str] = None,
    ) -> str:
        """
        Encrypt `secret_value` and store a new CREATED record.

        Raises:
            ValidationError: with one entry per offending field
            EncryptionError: provider failure
            ConflictError: `record_id` already exists
        """
        field_errors: Dict[str, str] = {}
        attributes: Optional[PublicAttributes] = None

        for check in (
            lambda: validate_owner_id(owner_id),
            lambda: validate_secret_value(secret_value, self._max_value),
            lambda: record_id is None or validate_record_id(record_id),
        ):
            try:
                check()
            except ValidationError as e:
                field_errors.update(e.field_errors)
        try:
            attributes = validate_public_attributes(public_attributes)
        except ValidationError as e:
            field_errors.update(e.field_errors)

        if field_errors:
            raise ValidationError("Invalid record", field_errors)

        record_id = record_id or generate_record_id()
        if self._store.get(record_id) is not None:
            # insert() re-checks atomically; this only avoids a wasted encryption.
            raise ConflictError(f"Record {record_id} already exists", details={"record_id": record_id})

        try:
            encrypted = self._provider.encrypt(secret_value, self.context)
        except SupplyProvError:
            raise
        except Exception as e:
            raise EncryptionError(f"Encryption failed: {e}") from e

        record = Record(
            record_id=record_id,
            owner_id=owner_id,
            public_attributes=attributes,
            ciphertext_handle=encrypted.handle,
            inclusion_proof=encrypted.inclusion_proof,
            created_at=now_iso(),
        )
        self._store.insert(record)
        logger.info("Created record %s for owner %s", record_id, owner_id)
        return record_id

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------
    def request_verification(self, record_id: str, *, timeout: Optional[float] = None) -> int:
        return self._coordinator.request_verification(record_id, timeout=timeout)

    def verify(self, record_id: str, *, timeout: Optional[float] = None) -> VerificationOutcome:
        return self._coordinator.verify(record_id, timeout=timeout)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get(self, record_id: str) -> Record:
        record = self._store.get(record_id)
        if record is None:
            raise RecordNotFoundError(f"Record {record_id} not found", details={"record_id": record_id})
        return record

    def list(self, record_filter: Optional[RecordFilter] = None) -> List[Record]:
        records = self._store.records()
        if record_filter is None:
            return records
        return [r for r in records if record_filter.matches(r)]

    def stats(self) -> RecordStats:
        return RecordStats.from_records(self._store.records())

    def is_available(self) -> bool:
        """Health check: provider reachable and store intact."""
        try:
            return bool(self._provider.is_available()) and self._store.is_healthy()
        except Exception:
            logger.exception("Availability check failed")
            return False

    # ------------------------------------------------------------------
    # Owner edits
    # ------------------------------------------------------------------
    def update_public_attributes(
        self, record_id: str, actor_id: str, changes: Mapping[str, Any]
    ) -> Record:
        """
        Apply a partial update of the public attributes.

        Only the owner may edit; verification fields are never touched.
        Concurrent writers are resolved by retrying the CAS on the fresh
        snapshot.
        """
        record = self.get(record_id)
        for _ in range(self._max_update_attempts):
            if record.owner_id != actor_id:
                raise NotOwnerError(
                    f"Only the owner may edit {record_id}",
                    details={"record_id": record_id},
                )
            attributes = validate_public_attributes(changes, base=record.public_attributes)
            try:
                updated = self._store.compare_and_set(
                    record_id, record.version, replace_public_attributes(attributes)
                )
            except VersionConflict as conflict:
                record = conflict.current
                continue
            logger.info("Updated public attributes of %s (v%d)", record_id, updated.version)
            return updated

        raise ContentionError(
            f"Could not update {record_id} after {self._max_update_attempts} attempts",
            details={"record_id": record_id},
        )
