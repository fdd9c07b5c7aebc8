"""
In-process RecordStore.

Concurrency:
- one lock per record serializes that record's CAS sequence
- a registry lock only guards creation of new keys (insert)
- get() never takes a lock: snapshots are immutable and the dict lookup is atomic
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Dict, List, Optional

from supplyprov.protocol.enums import RecordStatus
from supplyprov.protocol.errors import ConflictError, RecordNotFoundError, VersionConflict
from supplyprov.protocol.models import Record
from supplyprov.utils.timestamps import now_iso

from .base import Mutation, RecordStore, check_mutation

logger = logging.getLogger(__name__)


class InMemoryRecordStore(RecordStore):
    def __init__(self) -> None:
        self._records: Dict[str, Record] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Durability hooks (no-op in memory; WALRecordStore overrides)
    # ------------------------------------------------------------------
    def _persist_insert(self, record: Record) -> None:
        pass

    def _persist_update(self, previous: Record, record: Record) -> None:
        pass

    # ------------------------------------------------------------------
    # RecordStore
    # ------------------------------------------------------------------
    def insert(self, record: Record) -> str:
        stored = replace(
            record,
            status=RecordStatus.CREATED,
            clear_value=None,
            version=0,
            updated_at=record.created_at,
        )
        with self._registry_lock:
            if stored.record_id in self._records:
                raise ConflictError(
                    f"Record {stored.record_id} already exists",
                    details={"record_id": stored.record_id},
                )
            # Persist first: a failed write must leave no trace in memory.
            self._persist_insert(stored)
            self._locks[stored.record_id] = threading.Lock()
            self._records[stored.record_id] = stored

        logger.debug("Inserted record %s", stored.record_id)
        return stored.record_id

    def get(self, record_id: str) -> Optional[Record]:
        return self._records.get(record_id)

    def compare_and_set(self, record_id: str, expected_version: int, mutation: Mutation) -> Record:
        lock = self._locks.get(record_id)
        if lock is None:
            raise RecordNotFoundError(f"Record {record_id} not found", details={"record_id": record_id})

        with lock:
            current = self._records[record_id]
            if current.version != expected_version:
                raise VersionConflict(record_id, expected_version, current)

            proposed = mutation(current)
            check_mutation(current, proposed)

            updated = replace(proposed, version=current.version + 1, updated_at=now_iso())
            self._persist_update(current, updated)
            self._records[record_id] = updated

        logger.debug(
            "CAS %s v%d -> v%d (%s)",
            record_id,
            expected_version,
            updated.version,
            updated.status.value,
        )
        return updated

    def records(self) -> List[Record]:
        snapshot = list(self._records.values())
        snapshot.sort(key=lambda r: (r.created_at, r.record_id))
        return snapshot

    def __len__(self) -> int:
        return len(self._records)

    # ------------------------------------------------------------------
    # Replay support
    # ------------------------------------------------------------------
    def _load(self, record: Record) -> None:
        """Install a snapshot without persisting it (used when replaying a log)."""
        self._records[record.record_id] = record
        self._locks.setdefault(record.record_id, threading.Lock())
