import os
import shutil
import tempfile

import pytest

from supplyprov.compute.local import LocalConfidentialComputeProvider
from supplyprov.core.coordinator import VerificationCoordinator
from supplyprov.core.lifecycle import RecordLifecycleAPI
from supplyprov.core.runtime import SupplyProvRuntime
from supplyprov.core.settings import SupplyProvSettings, get_settings
from supplyprov.core.tracing import InMemoryTraceSink
from supplyprov.protocol.models import PublicAttributes, Record
from supplyprov.store.memory import InMemoryRecordStore

CONTEXT = "test-ledger"


def make_record(record_id: str = "item-1", *, owner_id: str = "acme", handle: str = "ct1:handle", **kwargs) -> Record:
    return Record(
        record_id=record_id,
        owner_id=owner_id,
        public_attributes=kwargs.pop("public_attributes", PublicAttributes(name="Pallet")),
        ciphertext_handle=handle,
        inclusion_proof=kwargs.pop("inclusion_proof", "proof"),
        created_at=kwargs.pop("created_at", "2026-01-01T00:00:00Z"),
        **kwargs,
    )


@pytest.fixture
def tmp_dir():
    """Create a temporary directory for test data."""
    d = tempfile.mkdtemp(prefix="supplyprov_test_")
    yield d
    shutil.rmtree(d, ignore_errors=True)


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    for name in list(os.environ):
        if name.startswith("SUPPLYPROV_"):
            monkeypatch.delenv(name)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def key():
    return LocalConfidentialComputeProvider.generate_key()


@pytest.fixture
def provider(key):
    return LocalConfidentialComputeProvider(key)


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def trace_sink():
    return InMemoryTraceSink()


@pytest.fixture
def coordinator(store, provider, trace_sink):
    c = VerificationCoordinator(store, provider, context=CONTEXT, trace_sink=trace_sink)
    yield c
    c.close()


@pytest.fixture
def api(store, provider, coordinator):
    return RecordLifecycleAPI(store, provider, coordinator, max_value=provider.max_value)


@pytest.fixture
def runtime(store, provider, trace_sink):
    settings = SupplyProvSettings()
    settings.compute.context = CONTEXT
    rt = SupplyProvRuntime(settings=settings, store=store, provider=provider, trace_sink=trace_sink)
    yield rt
    rt.close()


@pytest.fixture
def seed(store, provider):
    """Encrypt `value` and insert a CREATED record for it directly into the store."""

    def _seed(value: int = 42, record_id: str = "item-1", **kwargs) -> str:
        encrypted = provider.encrypt(value, CONTEXT)
        store.insert(
            make_record(
                record_id,
                handle=encrypted.handle,
                inclusion_proof=encrypted.inclusion_proof,
                **kwargs,
            )
        )
        return record_id

    return _seed
