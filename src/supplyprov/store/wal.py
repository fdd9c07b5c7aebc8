"""
Durable RecordStore backed by a write-ahead log.

The WAL is:
- Append-only (JSONL format)
- Written BEFORE a mutation becomes visible to readers
- Integrity-verified (hash chaining)
- Replayed on start-up to rebuild the record table
- Owned by one store at a time (flock on records.wal.lock)

Commit boundary: an entry is committed once its line is written and
(optionally) fsynced. If the write fails, the partial line is truncated
away, StoreError is raised and the in-memory table is left untouched.

Recovery: a final line without its newline is an append that never
committed; replay truncates it before the log is appended to again.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import IO, Any, Dict, List, Optional, Tuple

from supplyprov.protocol.enums import RecordStatus
from supplyprov.protocol.errors import InvalidTransitionError, StoreError
from supplyprov.protocol.models import Record
from supplyprov.utils.json import stable_json_hash
from supplyprov.utils.timestamps import epoch_ms, now_iso

from .base import check_mutation
from .memory import InMemoryRecordStore

logger = logging.getLogger(__name__)

WAL_VERSION = "1.0"


class WALEntryType(str, Enum):
    RECORD_INSERTED = "record.inserted"
    RECORD_UPDATED = "record.updated"


def _entry_hash(entry: Dict[str, Any]) -> str:
    return stable_json_hash({k: v for k, v in entry.items() if k != "entry_hash"})


@dataclass
class WALLine:
    """One line of the log with its byte range. `entry` is None when it does not parse."""

    start: int
    end: int
    entry: Optional[Dict[str, Any]]
    complete: bool


class RecordWAL:
    """
    Hash-chained JSONL log of record snapshots.

    Thread-safe: appends are serialized by an internal lock so that seq and
    prev_hash stay consistent with the order of lines in the file.

    Process-exclusive: an exclusive flock on `<filename>.lock` is held from
    construction until close(). A second owner fails fast with StoreError.
    """

    def __init__(self, wal_dir: str, *, sync: bool = True, filename: str = "records.wal") -> None:
        self._wal_dir = Path(wal_dir)
        self._wal_dir.mkdir(parents=True, exist_ok=True)
        self._wal_path = self._wal_dir / filename
        self._lock = threading.Lock()
        self._sync = sync
        self._seq = 0
        self._last_hash: Optional[str] = None
        self._lock_file: Optional[IO[str]] = self._acquire_lock()

    @property
    def path(self) -> Path:
        return self._wal_path

    @property
    def lock_path(self) -> Path:
        return self._wal_path.with_name(self._wal_path.name + ".lock")

    @property
    def entry_count(self) -> int:
        return self._seq

    @property
    def closed(self) -> bool:
        return self._lock_file is None

    # ------------------------------------------------------------------
    # Ownership
    # ------------------------------------------------------------------
    def _acquire_lock(self) -> IO[str]:
        lock_file = open(self.lock_path, "w")
        try:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as e:
            lock_file.close()
            raise StoreError(
                f"WAL {self._wal_path} is in use by another store: {e}",
                details={"wal_path": str(self._wal_path)},
            ) from e
        return lock_file

    def close(self) -> None:
        with self._lock:
            if self._lock_file is None:
                return
            try:
                fcntl.flock(self._lock_file.fileno(), fcntl.LOCK_UN)
            except OSError:
                logger.warning("Could not release WAL lock %s", self.lock_path)
            self._lock_file.close()
            self._lock_file = None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def resume(self, seq: int, last_hash: Optional[str]) -> None:
        self._seq = seq
        self._last_hash = last_hash

    def append(self, entry_type: WALEntryType, record: Record) -> Dict[str, Any]:
        with self._lock:
            if self._lock_file is None:
                raise StoreError(
                    f"WAL {self._wal_path} is closed",
                    details={"record_id": record.record_id},
                )
            entry = {
                "seq": self._seq + 1,
                "entry_type": entry_type.value,
                "timestamp_iso": now_iso(),
                "record_id": record.record_id,
                "record_version": record.version,
                "payload": record.to_dict(),
                "prev_hash": self._last_hash,
                "version": WAL_VERSION,
            }
            entry["entry_hash"] = _entry_hash(entry)
            line = json.dumps(entry, ensure_ascii=False, sort_keys=True) + "\n"

            offset = self._wal_path.stat().st_size if self._wal_path.exists() else 0
            try:
                with open(self._wal_path, "a", encoding="utf-8") as f:
                    f.write(line)
                    f.flush()
                    if self._sync:
                        os.fsync(f.fileno())
            except OSError as e:
                self._rollback(offset)
                raise StoreError(
                    f"WAL append failed for {record.record_id}: {e}",
                    details={"record_id": record.record_id, "seq": entry["seq"]},
                ) from e

            # Chain advances only after the line is durable.
            self._seq = entry["seq"]
            self._last_hash = entry["entry_hash"]
            return entry

    def _rollback(self, offset: int) -> None:
        try:
            if self._wal_path.exists():
                with open(self._wal_path, "r+b") as f:
                    f.truncate(offset)
        except OSError:
            logger.exception("Could not truncate partial WAL entry at offset %d", offset)

    def truncate(self, offset: int) -> Optional[Path]:
        """
        Cut the log back to `offset` (end of the last intact entry).

        The discarded bytes are kept next to the log in
        `<filename>.discarded-<epoch-ms>` and that path is returned.
        """
        if not self._wal_path.exists() or self._wal_path.stat().st_size <= offset:
            return None
        discarded = self._wal_path.with_name(f"{self._wal_path.name}.discarded-{epoch_ms()}")
        try:
            with open(self._wal_path, "r+b") as f:
                f.seek(offset)
                tail = f.read()
                with open(discarded, "wb") as out:
                    out.write(tail)
                    out.flush()
                    os.fsync(out.fileno())
                f.truncate(offset)
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise StoreError(
                f"Could not truncate WAL {self._wal_path} to offset {offset}: {e}",
                details={"offset": offset},
            ) from e
        logger.warning(
            "Truncated WAL %s at offset %d; discarded bytes saved to %s",
            self._wal_path,
            offset,
            discarded,
        )
        return discarded

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def scan(self) -> List[WALLine]:
        """Every non-blank line with its byte range, parseable or not."""
        lines: List[WALLine] = []
        if not self._wal_path.exists():
            return lines
        position = 0
        with open(self._wal_path, "rb") as f:
            for raw in f:
                start = position
                position += len(raw)
                text = raw.strip()
                if not text:
                    continue
                try:
                    entry = json.loads(text.decode("utf-8"))
                except (UnicodeDecodeError, json.JSONDecodeError):
                    entry = None
                if entry is not None and not isinstance(entry, dict):
                    entry = None
                lines.append(WALLine(start, position, entry, raw.endswith(b"\n")))
        return lines

    def read_all(self) -> List[Dict[str, Any]]:
        """Read all parseable entries; stops at the first corrupted line."""
        entries: List[Dict[str, Any]] = []
        for line in self.scan():
            if line.entry is None:
                logger.warning("Corrupted WAL line at offset %d in %s", line.start, self._wal_path)
                break
            entries.append(line.entry)
        return entries

    def verify_integrity(self) -> Tuple[bool, Optional[str]]:
        """
        Verify WAL hash chain integrity.

        Returns (True, None) if valid, (False, reason) if corrupt.
        """
        prev_hash = None
        for line in self.scan():
            entry = line.entry
            if entry is None or not line.complete:
                return False, f"Unreadable entry at offset {line.start}"
            if entry.get("prev_hash") != prev_hash:
                return False, f"Hash chain broken at seq={entry.get('seq')}"
            if entry.get("entry_hash") != _entry_hash(entry):
                return False, f"Entry hash mismatch at seq={entry.get('seq')}"
            prev_hash = entry.get("entry_hash")
        return True, None


class WALRecordStore(InMemoryRecordStore):
    """
    InMemoryRecordStore whose accepted writes are logged before they apply.

    On construction the WAL is locked, verified and replayed:
    - a torn final line (no newline) is truncated away in any mode
    - any other bad entry raises StoreError unless strict=False, in which
      case the log is truncated back to the last intact entry so later
      appends stay replayable
    """

    def __init__(self, wal_dir: str, *, sync: bool = True, strict: bool = True) -> None:
        super().__init__()
        self._wal = RecordWAL(wal_dir, sync=sync)
        try:
            self._replay(strict=strict)
        except Exception:
            self._wal.close()
            raise

    @property
    def wal(self) -> RecordWAL:
        return self._wal

    def verify_integrity(self) -> Tuple[bool, Optional[str]]:
        return self._wal.verify_integrity()

    def _persist_insert(self, record: Record) -> None:
        self._wal.append(WALEntryType.RECORD_INSERTED, record)

    def _persist_update(self, previous: Record, record: Record) -> None:
        self._wal.append(WALEntryType.RECORD_UPDATED, record)

    def is_healthy(self) -> bool:
        if self._wal.closed:
            return False
        ok, _ = self._wal.verify_integrity()
        return ok

    def close(self) -> None:
        self._wal.close()

    def _replay(self, *, strict: bool) -> None:
        seq = 0
        prev_hash: Optional[str] = None
        valid_end = 0

        lines = self._wal.scan()
        for index, line in enumerate(lines):
            is_last = index == len(lines) - 1
            if not line.complete:
                problem = f"torn final entry at offset {line.start}"
            elif line.entry is None:
                problem = f"unreadable entry at offset {line.start}"
            else:
                problem = self._check_entry(line.entry, prev_hash)

            if problem is None:
                self._load(Record.from_dict(line.entry["payload"]))
                seq = line.entry["seq"]
                prev_hash = line.entry["entry_hash"]
                valid_end = line.end
                continue

            if not line.complete and is_last:
                logger.warning("Discarding uncommitted WAL append: %s", problem)
            elif strict:
                raise StoreError(f"WAL replay failed: {problem}", details={"offset": line.start})
            else:
                logger.warning("Stopping WAL replay: %s", problem)
            self._wal.truncate(valid_end)
            break

        self._wal.resume(seq, prev_hash)
        if seq:
            logger.info("Replayed %d WAL entries (%d records)", seq, len(self))

    def _check_entry(self, entry: Dict[str, Any], prev_hash: Optional[str]) -> Optional[str]:
        seq = entry.get("seq")
        if entry.get("prev_hash") != prev_hash:
            return f"hash chain broken at seq={seq}"
        if entry.get("entry_hash") != _entry_hash(entry):
            return f"entry hash mismatch at seq={seq}"

        try:
            record = Record.from_dict(entry["payload"])
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            return f"malformed payload at seq={seq}: {e}"

        record_id = entry.get("record_id")
        version = entry.get("record_version")
        if record.record_id != record_id or record.version != version:
            return f"payload does not match entry header at seq={seq}"

        existing = self.get(record_id)
        if entry.get("entry_type") == WALEntryType.RECORD_INSERTED.value:
            if existing is not None:
                return f"duplicate insert of {record_id} at seq={seq}"
            fresh = (
                record.version == 0
                and record.status is RecordStatus.CREATED
                and record.clear_value is None
            )
            if not fresh:
                return f"insert of {record_id} is not a fresh record at seq={seq}"
        elif entry.get("entry_type") == WALEntryType.RECORD_UPDATED.value:
            if existing is None:
                return f"update of unknown record {record_id} at seq={seq}"
            if version != existing.version + 1:
                return f"version gap for {record_id} at seq={seq}"
            try:
                check_mutation(existing, record)
            except InvalidTransitionError as e:
                return f"illegal update of {record_id} at seq={seq}: {e}"
        else:
            return f"unknown entry type {entry.get('entry_type')!r} at seq={seq}"
        return None
