"""
Tests for the decrypt-then-verify protocol.

Test coverage:
1. Happy path and idempotent short-circuit
2. Concurrent verification (first committer wins)
3. Failures that must leave the record VERIFICATION_PENDING
4. Races resolved at commit time (concede, anomaly, attribute edits)
5. Giving up under sustained contention
"""

import threading

import pytest

from conftest import CONTEXT, make_record
from supplyprov.compute.base import DecryptionResult
from supplyprov.core.coordinator import VerificationCoordinator
from supplyprov.protocol.enums import LifecycleTag, RecordStatus, VerificationOutcomeKind
from supplyprov.protocol.errors import (
    ContentionError,
    DecryptionError,
    IntegrityAnomalyError,
    ProofVerificationError,
    RecordNotFoundError,
    VerificationTimeoutError,
    VersionConflict,
)
from supplyprov.protocol.models import PublicAttributes
from supplyprov.store.base import commit_clear_value, replace_public_attributes
from supplyprov.store.memory import InMemoryRecordStore


class ScriptedProvider:
    """Wraps a real provider so a test can interfere with the decryption round trip."""

    def __init__(self, inner):
        self.inner = inner
        self.calls = 0
        self.before_decrypt = None
        self.fail_with = None
        self.transform = None
        self._lock = threading.Lock()

    def encrypt(self, value, context):
        return self.inner.encrypt(value, context)

    def request_clear_value(self, handles, context):
        with self._lock:
            self.calls += 1
            hook, self.before_decrypt = self.before_decrypt, None
        if hook is not None:
            hook()
        if self.fail_with is not None:
            raise self.fail_with
        result = self.inner.request_clear_value(handles, context)
        if self.transform is not None:
            result = self.transform(result)
        return result

    def verify_proof(self, proof, clear_values, context):
        return self.inner.verify_proof(proof, clear_values, context)

    def is_available(self):
        return self.inner.is_available()


@pytest.fixture
def scripted(provider):
    return ScriptedProvider(provider)


@pytest.fixture
def coordinator(store, scripted, trace_sink):
    c = VerificationCoordinator(store, scripted, context=CONTEXT, trace_sink=trace_sink)
    yield c
    c.close()


def _commit_behind_the_back(store, record_id, value):
    def hook():
        current = store.get(record_id)
        store.compare_and_set(record_id, current.version, commit_clear_value(value))

    return hook


# ===========================================================================
# 1. Happy path
# ===========================================================================


class TestVerify:
    def test_round_trip(self, store, coordinator, seed, trace_sink):
        record_id = seed(42)

        outcome = coordinator.verify(record_id)

        assert outcome.clear_value == 42
        assert outcome.kind is VerificationOutcomeKind.COMMITTED
        record = store.get(record_id)
        assert record.status is RecordStatus.VERIFIED
        assert record.clear_value == 42
        assert record.version == 2
        assert [s.name for s in trace_sink.get_trace(record_id)] == [
            "verification.claimed",
            "verification.decrypted",
            "verification.committed",
        ]

    def test_request_verification_returns_value(self, coordinator, seed):
        assert coordinator.request_verification(seed(1234)) == 1234

    def test_repeat_requests_short_circuit(self, store, coordinator, seed, scripted):
        record_id = seed(42)
        coordinator.verify(record_id)
        version = store.get(record_id).version

        for _ in range(3):
            outcome = coordinator.verify(record_id)
            assert outcome.clear_value == 42
            assert outcome.kind is VerificationOutcomeKind.ALREADY_VERIFIED
            assert outcome.already_verified

        assert store.get(record_id).version == version
        assert scripted.calls == 1

    def test_unknown_record(self, coordinator):
        with pytest.raises(RecordNotFoundError):
            coordinator.verify("missing")

    def test_zero_commit_attempts_is_rejected(self, store, scripted):
        with pytest.raises(ValueError):
            VerificationCoordinator(store, scripted, context=CONTEXT, max_commit_attempts=0)


# ===========================================================================
# 2. Concurrency
# ===========================================================================


class TestConcurrentVerify:
    def test_many_callers_commit_exactly_once(self, store, coordinator, seed, trace_sink):
        record_id = seed(42)
        callers = 12
        barrier = threading.Barrier(callers)
        results, errors = [], []

        def caller():
            barrier.wait()
            try:
                results.append(coordinator.verify(record_id))
            except Exception as e:  # surfaced by the assertions below
                errors.append(e)

        threads = [threading.Thread(target=caller) for _ in range(callers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(results) == callers
        assert {r.clear_value for r in results} == {42}
        assert sum(r.kind is VerificationOutcomeKind.COMMITTED for r in results) == 1
        assert trace_sink.count("verification.committed", record_id) == 1
        assert trace_sink.count("verification.claimed", record_id) == 1

        record = store.get(record_id)
        assert record.status is RecordStatus.VERIFIED
        assert record.version == 2

    def test_independent_records_verify_in_parallel(self, store, coordinator, seed):
        ids = [seed(i, record_id=f"item-{i}") for i in range(6)]
        threads = [threading.Thread(target=coordinator.verify, args=(rid,)) for rid in ids]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert [store.get(rid).clear_value for rid in ids] == list(range(6))


# ===========================================================================
# 3. Failures leave the record pending
# ===========================================================================


class TestFailures:
    def test_invalid_proof_is_never_committed(self, store, coordinator, seed, scripted, trace_sink):
        record_id = seed(42)
        scripted.transform = lambda r: DecryptionResult(clear_values=r.clear_values, proof="AAAA")

        with pytest.raises(ProofVerificationError):
            coordinator.verify(record_id)

        record = store.get(record_id)
        assert record.status is RecordStatus.VERIFICATION_PENDING
        assert record.clear_value is None
        assert trace_sink.count("verification.proof_rejected", record_id) == 1

        scripted.transform = None
        assert coordinator.verify(record_id).kind is VerificationOutcomeKind.COMMITTED

    def test_forged_value_is_never_committed(self, store, coordinator, seed, scripted):
        record_id = seed(42)
        handle = store.get(record_id).ciphertext_handle
        scripted.transform = lambda r: DecryptionResult(clear_values={handle: 99}, proof=r.proof)

        with pytest.raises(ProofVerificationError):
            coordinator.verify(record_id)
        assert store.get(record_id).clear_value is None

    def test_missing_handle_in_result(self, store, coordinator, seed, scripted):
        record_id = seed(42)
        scripted.transform = lambda r: DecryptionResult(clear_values={}, proof=r.proof)

        with pytest.raises(ProofVerificationError):
            coordinator.verify(record_id)
        assert store.get(record_id).status is RecordStatus.VERIFICATION_PENDING

    def test_provider_outage_is_retryable(self, store, coordinator, seed, scripted):
        record_id = seed(42)
        scripted.fail_with = ConnectionError("oracle unreachable")

        with pytest.raises(DecryptionError) as exc_info:
            coordinator.verify(record_id)

        assert exc_info.value.retryable
        assert store.get(record_id).status is RecordStatus.VERIFICATION_PENDING

        scripted.fail_with = None
        assert coordinator.request_verification(record_id) == 42

    def test_provider_error_passes_through(self, store, coordinator, seed, scripted):
        record_id = seed(42)
        scripted.fail_with = DecryptionError("unknown handle", retryable=False)

        with pytest.raises(DecryptionError) as exc_info:
            coordinator.verify(record_id)
        assert exc_info.value.retryable is False

    def test_timeout_leaves_record_pending(self, store, coordinator, seed, scripted, trace_sink):
        record_id = seed(42)
        release = threading.Event()
        scripted.before_decrypt = lambda: release.wait(5)

        try:
            with pytest.raises(VerificationTimeoutError):
                coordinator.verify(record_id, timeout=0.05)
            assert store.get(record_id).status is RecordStatus.VERIFICATION_PENDING
            assert trace_sink.count("verification.timeout", record_id) == 1
        finally:
            release.set()

        assert coordinator.request_verification(record_id, timeout=5) == 42

    def test_default_timeout_applies(self, store, scripted, seed):
        record_id = seed(42)
        release = threading.Event()
        scripted.before_decrypt = lambda: release.wait(5)
        coordinator = VerificationCoordinator(
            store, scripted, context=CONTEXT, default_timeout=0.05
        )
        try:
            with pytest.raises(VerificationTimeoutError):
                coordinator.verify(record_id)
        finally:
            release.set()
            coordinator.close()


# ===========================================================================
# 4. Commit-time races
# ===========================================================================


class TestCommitRaces:
    def test_concede_to_earlier_committer(self, store, coordinator, seed, scripted, trace_sink):
        record_id = seed(42)
        scripted.before_decrypt = _commit_behind_the_back(store, record_id, 42)

        outcome = coordinator.verify(record_id)

        assert outcome.kind is VerificationOutcomeKind.CONCEDED
        assert outcome.clear_value == 42
        assert trace_sink.count("verification.conceded", record_id) == 1
        assert trace_sink.count("verification.committed", record_id) == 0

    def test_disagreeing_value_is_an_anomaly(self, store, coordinator, seed, scripted, trace_sink):
        record_id = seed(42)
        scripted.before_decrypt = _commit_behind_the_back(store, record_id, 41)

        with pytest.raises(IntegrityAnomalyError):
            coordinator.verify(record_id)

        record = store.get(record_id)
        assert record.clear_value == 41
        assert record.version == 2
        assert trace_sink.count("verification.anomaly", record_id) == 1

    def test_attribute_edit_during_decryption_is_retried(self, store, coordinator, seed, scripted):
        record_id = seed(42)
        attrs = PublicAttributes(name="Pallet", lifecycle=LifecycleTag.IN_TRANSIT)

        def edit():
            current = store.get(record_id)
            store.compare_and_set(record_id, current.version, replace_public_attributes(attrs))

        scripted.before_decrypt = edit

        outcome = coordinator.verify(record_id)

        assert outcome.kind is VerificationOutcomeKind.COMMITTED
        assert outcome.attempts == 2
        record = store.get(record_id)
        assert record.version == 3
        assert record.clear_value == 42
        assert record.public_attributes.lifecycle is LifecycleTag.IN_TRANSIT

    def test_attribute_edit_before_claim_is_retried(self, store, coordinator, seed):
        record_id = seed(42)
        store.compare_and_set(
            record_id, 0, replace_public_attributes(PublicAttributes(name="Renamed"))
        )

        outcome = coordinator.verify(record_id)

        assert outcome.clear_value == 42
        assert store.get(record_id).public_attributes.name == "Renamed"


# ===========================================================================
# 5. Contention
# ===========================================================================


class ContendedStore(InMemoryRecordStore):
    """Every compare_and_set loses to another writer that left the record as it was."""

    def compare_and_set(self, record_id, expected_version, mutation):
        raise VersionConflict(record_id, expected_version, self.get(record_id))


class TestContention:
    def test_claim_gives_up_with_a_retryable_error(self, provider):
        store = ContendedStore()
        encrypted = provider.encrypt(42, CONTEXT)
        store.insert(make_record(handle=encrypted.handle, inclusion_proof=encrypted.inclusion_proof))
        coordinator = VerificationCoordinator(store, provider, context=CONTEXT, max_commit_attempts=3)

        with pytest.raises(ContentionError) as exc_info:
            coordinator.verify("item-1")

        assert exc_info.value.retryable
        assert store.get("item-1").status is RecordStatus.CREATED
        coordinator.close()

    def test_commit_gives_up_while_edits_keep_landing(self, store, scripted, seed):
        record_id = seed(42)
        coordinator = VerificationCoordinator(store, scripted, context=CONTEXT, max_commit_attempts=1)

        def edit():
            current = store.get(record_id)
            store.compare_and_set(
                record_id, current.version, replace_public_attributes(PublicAttributes(name="Moved"))
            )

        scripted.before_decrypt = edit

        with pytest.raises(ContentionError):
            coordinator.verify(record_id)

        record = store.get(record_id)
        assert record.status is RecordStatus.VERIFICATION_PENDING
        assert record.clear_value is None
        coordinator.close()
