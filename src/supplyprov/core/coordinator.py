"""
Decrypt-then-verify protocol for a single record.

Per verify(record_id) call:

    1. read            VERIFIED -> return stored clear value (no crypto work)
    2. claim           CAS CREATED -> VERIFICATION_PENDING (losers join as participants)
    3. decrypt         provider.request_clear_value({handle})   <- suspension point
    4. check proof     provider.verify_proof(...); invalid -> no mutation
    5. commit          CAS VERIFICATION_PENDING -> VERIFIED
                       conflict with a VERIFIED record -> first committer wins

The coordinator keeps no per-record state of its own; every decision is
taken from store snapshots, and every write is a compare_and_set.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Optional

from supplyprov.compute.base import ConfidentialComputeProvider, DecryptionResult
from supplyprov.protocol.enums import RecordStatus, VerificationOutcomeKind
from supplyprov.protocol.errors import (
    ContentionError,
    DecryptionError,
    IntegrityAnomalyError,
    ProofVerificationError,
    RecordNotFoundError,
    SupplyProvError,
    VerificationTimeoutError,
    VersionConflict,
)
from supplyprov.protocol.models import Record, VerificationOutcome
from supplyprov.store.base import RecordStore, claim_for_verification, commit_clear_value
from supplyprov.utils.timestamps import monotonic_ms

from .tracing import InMemoryTraceSink, TraceSink

logger = logging.getLogger(__name__)


class VerificationCoordinator:
    """
    Drives a record from CREATED / VERIFICATION_PENDING to VERIFIED exactly
    once, no matter how many callers request it concurrently.

    Concurrent callers on the same record may each perform a decryption
    round trip; only one CAS to VERIFIED can succeed and everyone else
    returns the committed value.
    """

    def __init__(
        self,
        store: RecordStore,
        provider: ConfidentialComputeProvider,
        *,
        context: str,
        trace_sink: Optional[TraceSink] = None,
        max_commit_attempts: int = 8,
        max_worker_threads: int = 8,
        default_timeout: Optional[float] = None,
    ) -> None:
        if max_commit_attempts < 1:
            raise ValueError("max_commit_attempts must be >= 1")
        self._store = store
        self._provider = provider
        self._context = context
        self.trace_sink: TraceSink = trace_sink or InMemoryTraceSink()
        self._max_commit_attempts = max_commit_attempts
        self._max_worker_threads = max_worker_threads
        self._default_timeout = default_timeout

        # Only used for timed round trips; created on first use.
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()

    @property
    def context(self) -> str:
        return self._context

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def request_verification(self, record_id: str, *, timeout: Optional[float] = None) -> int:
        """Return the authoritative clear value of `record_id`."""
        return self.verify(record_id, timeout=timeout).clear_value

    def verify(self, record_id: str, *, timeout: Optional[float] = None) -> VerificationOutcome:
        """
        Run the protocol and report how it was resolved.

        Raises:
            RecordNotFoundError: unknown id
            DecryptionError: provider failure (retryable)
            VerificationTimeoutError: caller gave up waiting (retryable)
            ProofVerificationError: proof rejected; record left VERIFICATION_PENDING
            IntegrityAnomalyError: local and committed clear values disagree
            ContentionError: CAS retries exhausted under concurrent writers (retryable)
            StoreError: backend failure
        """
        if timeout is None:
            timeout = self._default_timeout

        # Step 1: idempotent short-circuit
        record = self._read(record_id)
        if record.is_verified:
            return self._already_verified(record)

        # Step 2: claim (or join) the verification
        record = self._claim(record)
        if record.is_verified:
            return self._already_verified(record)

        # Step 3: decryption round trip
        started = monotonic_ms()
        result = self._request_clear_value(record, timeout)
        elapsed_ms = round(monotonic_ms() - started, 3)

        # Step 4: local proof check
        clear_value = self._checked_clear_value(record, result, elapsed_ms)

        # Step 5: commit, first committer wins
        return self._commit(record, clear_value)

    def close(self) -> None:
        with self._executor_lock:
            if self._executor is not None:
                self._executor.shutdown(wait=False)
                self._executor = None

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------
    def _read(self, record_id: str) -> Record:
        record = self._store.get(record_id)
        if record is None:
            raise RecordNotFoundError(f"Record {record_id} not found", details={"record_id": record_id})
        return record

    def _already_verified(self, record: Record) -> VerificationOutcome:
        self.trace_sink.record(
            record.record_id, "verification.short_circuit", version=record.version
        )
        return VerificationOutcome(
            record_id=record.record_id,
            clear_value=record.clear_value,
            kind=VerificationOutcomeKind.ALREADY_VERIFIED,
            version=record.version,
        )

    def _claim(self, record: Record) -> Record:
        """
        Move CREATED -> VERIFICATION_PENDING.

        Returns the freshest snapshot seen, which is either
        VERIFICATION_PENDING (proceed as participant) or VERIFIED.
        """
        attempts = 0
        while record.status is RecordStatus.CREATED:
            attempts += 1
            if attempts > self._max_commit_attempts:
                raise ContentionError(
                    f"Could not claim {record.record_id} after {attempts - 1} attempts",
                    details={"record_id": record.record_id},
                )
            try:
                record = self._store.compare_and_set(
                    record.record_id, record.version, claim_for_verification
                )
            except VersionConflict as conflict:
                # Lost the race (or an attribute edit landed); branch on what won.
                record = conflict.current
                continue

            self.trace_sink.record(record.record_id, "verification.claimed", version=record.version)
            logger.info("Verification of %s claimed (v%d)", record.record_id, record.version)

        return record

    def _request_clear_value(self, record: Record, timeout: Optional[float]) -> DecryptionResult:
        handles = {record.ciphertext_handle}
        try:
            if timeout is None:
                return self._provider.request_clear_value(handles, self._context)

            future = self._pool().submit(self._provider.request_clear_value, handles, self._context)
            try:
                return future.result(timeout=timeout)
            except FutureTimeoutError:
                future.cancel()
                self.trace_sink.record(
                    record.record_id, "verification.timeout", version=record.version, timeout=timeout
                )
                logger.warning(
                    "Decryption of %s abandoned after %.2fs; record stays %s",
                    record.record_id,
                    timeout,
                    RecordStatus.VERIFICATION_PENDING.value,
                )
                raise VerificationTimeoutError(
                    f"Decryption of {record.record_id} timed out after {timeout}s",
                    details={"record_id": record.record_id, "timeout": timeout},
                )
        except SupplyProvError:
            raise
        except Exception as e:
            raise DecryptionError(
                f"Decryption round trip for {record.record_id} failed: {e}",
                details={"record_id": record.record_id},
            ) from e

    def _checked_clear_value(self, record: Record, result: DecryptionResult, elapsed_ms: float) -> int:
        handle = record.ciphertext_handle
        values = dict(result.clear_values)

        if handle in values and self._provider.verify_proof(result.proof, values, self._context):
            self.trace_sink.record(
                record.record_id, "verification.decrypted", version=record.version, elapsed_ms=elapsed_ms
            )
            return values[handle]

        self.trace_sink.record(record.record_id, "verification.proof_rejected", version=record.version)
        logger.warning(
            "Decryption proof for %s rejected; record left %s",
            record.record_id,
            RecordStatus.VERIFICATION_PENDING.value,
        )
        raise ProofVerificationError(
            f"Decryption proof for {record.record_id} is invalid",
            details={"record_id": record.record_id},
        )

    def _commit(self, record: Record, clear_value: int) -> VerificationOutcome:
        for attempt in range(1, self._max_commit_attempts + 1):
            try:
                committed = self._store.compare_and_set(
                    record.record_id, record.version, commit_clear_value(clear_value)
                )
            except VersionConflict as conflict:
                current = conflict.current
            else:
                self.trace_sink.record(
                    committed.record_id, "verification.committed", version=committed.version
                )
                logger.info("Record %s verified (v%d)", committed.record_id, committed.version)
                return VerificationOutcome(
                    record_id=committed.record_id,
                    clear_value=committed.clear_value,
                    kind=VerificationOutcomeKind.COMMITTED,
                    version=committed.version,
                    attempts=attempt,
                )

            if current.is_verified:
                return self._concede(current, clear_value, attempt)

            # Still pending: an unrelated mutation bumped the version. Retry on it.
            record = current

        raise ContentionError(
            f"Could not commit verification of {record.record_id} "
            f"after {self._max_commit_attempts} attempts",
            details={"record_id": record.record_id},
        )

    def _concede(self, current: Record, clear_value: int, attempt: int) -> VerificationOutcome:
        if current.clear_value != clear_value:
            self.trace_sink.record(
                current.record_id,
                "verification.anomaly",
                version=current.version,
            )
            logger.error(
                "Integrity anomaly on %s: decrypted value differs from committed value (v%d)",
                current.record_id,
                current.version,
            )
            raise IntegrityAnomalyError(
                f"Decrypted value for {current.record_id} disagrees with the committed clear value",
                details={"record_id": current.record_id, "version": current.version},
            )

        self.trace_sink.record(current.record_id, "verification.conceded", version=current.version)
        logger.debug("Record %s already committed by another caller", current.record_id)
        return VerificationOutcome(
            record_id=current.record_id,
            clear_value=current.clear_value,
            kind=VerificationOutcomeKind.CONCEDED,
            version=current.version,
            attempts=attempt,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _pool(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_worker_threads,
                    thread_name_prefix="supplyprov-decrypt",
                )
            return self._executor
