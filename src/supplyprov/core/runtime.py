from __future__ import annotations

from typing import Optional

from supplyprov.compute.base import ConfidentialComputeProvider, create_compute_provider
from supplyprov.store.base import RecordStore
from supplyprov.store.memory import InMemoryRecordStore
from supplyprov.store.wal import WALRecordStore

from .coordinator import VerificationCoordinator
from .lifecycle import RecordLifecycleAPI
from .settings import StoreSettings, SupplyProvSettings, get_settings
from .tracing import InMemoryTraceSink, TraceSink


def create_record_store(settings: StoreSettings) -> RecordStore:
    if settings.backend == "wal":
        return WALRecordStore(settings.wal_dir, sync=settings.wal_sync)
    return InMemoryRecordStore()


class SupplyProvRuntime:
    """
    High-level runtime that wires together:

    - RecordStore:                 versioned record table (memory or WAL)
    - ConfidentialComputeProvider: encryption + proof-carrying decryption
    - VerificationCoordinator:     decrypt-then-verify protocol
    - RecordLifecycleAPI:          facade used by the HTTP API and CLI
    - TraceSink:                   where protocol events are recorded

    Every collaborator can be injected; anything missing is built from
    settings.
    """

    def __init__(
        self,
        *,
        settings: Optional[SupplyProvSettings] = None,
        store: Optional[RecordStore] = None,
        provider: Optional[ConfidentialComputeProvider] = None,
        trace_sink: Optional[TraceSink] = None,
    ) -> None:
        self.settings: SupplyProvSettings = settings or get_settings()
        self.store: RecordStore = store or create_record_store(self.settings.store)
        self.provider: ConfidentialComputeProvider = provider or create_compute_provider(
            self.settings.compute
        )
        self.trace_sink: TraceSink = trace_sink or InMemoryTraceSink()

        coordinator_settings = self.settings.coordinator
        self.coordinator = VerificationCoordinator(
            self.store,
            self.provider,
            context=self.settings.compute.context,
            trace_sink=self.trace_sink,
            max_commit_attempts=coordinator_settings.max_commit_attempts,
            max_worker_threads=coordinator_settings.max_worker_threads,
            default_timeout=coordinator_settings.verification_timeout_s,
        )
        self.api = RecordLifecycleAPI(
            self.store,
            self.provider,
            self.coordinator,
            max_value=self.settings.compute.max_value,
            max_update_attempts=coordinator_settings.max_commit_attempts,
        )

    def close(self) -> None:
        self.coordinator.close()
        self.store.close()

    def __enter__(self) -> SupplyProvRuntime:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
