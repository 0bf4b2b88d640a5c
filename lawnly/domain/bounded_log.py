"""Fixed-capacity append-only history used for contractor quality logs."""

from __future__ import annotations

from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Deque, Dict, Iterable, Iterator, List, Optional


@dataclass(frozen=True)
class QualityLogEntry:
    type: str
    reason: str
    triggered_at: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def create(cls, entry_type: str, reason: str, at: datetime) -> "QualityLogEntry":
        return cls(type=entry_type, reason=reason, triggered_at=at.isoformat())


class BoundedLog:
    """
    Append-only sequence that keeps the newest ``capacity`` entries.

    Appending past capacity evicts the oldest entry. Entries round-trip
    through plain dicts so the log can live in a JSON column.
    """

    def __init__(self, capacity: int, entries: Optional[Iterable[Dict[str, Any]]] = None):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._entries: Deque[Dict[str, Any]] = deque(entries or (), maxlen=capacity)

    def append(self, entry: QualityLogEntry | Dict[str, Any]) -> None:
        if isinstance(entry, QualityLogEntry):
            entry = entry.to_dict()
        self._entries.append(dict(entry))

    def to_list(self) -> List[Dict[str, Any]]:
        return list(self._entries)

    @property
    def latest(self) -> Optional[Dict[str, Any]]:
        return self._entries[-1] if self._entries else None

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        return iter(self._entries)
