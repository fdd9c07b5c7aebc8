from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from supplyprov.utils.timestamps import now_iso


# ----------------------------------------------------------------------
# TRACE SPAN DATA MODEL
# ----------------------------------------------------------------------
@dataclass
class TraceSpan:
    """
    One recorded protocol event for a record
    (e.g. verification.claimed, verification.committed).
    """

    id: str
    record_id: str
    name: str
    timestamp: str
    attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def version(self) -> Optional[int]:
        return self.attributes.get("version")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "record_id": self.record_id,
            "name": self.name,
            "timestamp": self.timestamp,
            "attributes": dict(self.attributes),
        }


# ----------------------------------------------------------------------
# GENERIC TRACE SINK INTERFACE
# ----------------------------------------------------------------------
class TraceSink:
    def record(self, record_id: str, name: str, **attributes: Any) -> None:
        raise NotImplementedError

    def get_spans(self) -> List[TraceSpan]:
        raise NotImplementedError

    def get_trace(self, record_id: str) -> List[TraceSpan]:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError


class InMemoryTraceSink(TraceSink):
    """
    Thread-safe in-memory sink. Spans are kept in arrival order and can be
    queried per record.
    """

    def __init__(self, max_spans: int = 10_000):
        self._spans: List[TraceSpan] = []
        self._lock = threading.Lock()
        self._max_spans = max_spans

    def record(self, record_id: str, name: str, **attributes: Any) -> None:
        span = TraceSpan(
            id=str(uuid.uuid4()),
            record_id=record_id,
            name=name,
            timestamp=now_iso(),
            attributes=attributes,
        )
        with self._lock:
            self._spans.append(span)
            if len(self._spans) > self._max_spans:
                del self._spans[: len(self._spans) - self._max_spans]

    def get_spans(self) -> List[TraceSpan]:
        with self._lock:
            return list(self._spans)

    def get_trace(self, record_id: str) -> List[TraceSpan]:
        with self._lock:
            return [s for s in self._spans if s.record_id == record_id]

    def count(self, name: str, record_id: Optional[str] = None) -> int:
        spans = self.get_trace(record_id) if record_id is not None else self.get_spans()
        return sum(1 for s in spans if s.name == name)

    def clear(self) -> None:
        with self._lock:
            self._spans.clear()
