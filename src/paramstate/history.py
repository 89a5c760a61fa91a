"""
Linear undo/redo journal of committed parameter values.

Design:
- Immutable entries (frozen dataclass), one per successful commit
- Linear history: pushing while not at the end drops the entries after the
  cursor (no branches)
- Entries are plain data so they can travel through host navigation state
  (to_dict/from_dict)
"""
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from paramstate.errors import HistoryError

logger = logging.getLogger(__name__)

Snapshot = Dict[str, Dict[str, Any]]  # namespace -> parameter id -> value


@dataclass(frozen=True)
class HistoryEntry:
    """Committed values of one or more namespaces at a point in time."""
    snapshot: Snapshot
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def create(cls, snapshot: Mapping[str, Mapping[str, Any]],
               not_before: Optional[float] = None) -> 'HistoryEntry':
        """Create an entry with a copy of snapshot and the current time.

        Args:
            snapshot: namespace -> parameter id -> value.
            not_before: Timestamp of the previous entry; the new timestamp is
                strictly greater, so timestamps identify entries.
        """
        timestamp = time.time()
        if not_before is not None and timestamp <= not_before:
            timestamp = not_before + 1e-6
        return cls(snapshot={ns: dict(values) for ns, values in snapshot.items()}, timestamp=timestamp)

    def to_dict(self) -> Dict[str, Any]:
        """Export to JSON-serializable dict (navigation state)."""
        return {
            'timestamp': self.timestamp,
            'snapshot': {ns: dict(values) for ns, values in self.snapshot.items()},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'HistoryEntry':
        """Import from dict (navigation state)."""
        try:
            return cls(
                snapshot={ns: dict(values) for ns, values in data['snapshot'].items()},
                timestamp=float(data['timestamp']),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise HistoryError(f"Invalid history entry: {data!r}") from e


class RestoreTier(Enum):
    """How restore_history_state_from_entry() found the entry."""
    EXACT_MATCH = 'exact_match'            # timestamp found in the journal
    STRUCTURAL_MATCH = 'structural_match'  # equal snapshot found in the journal
    FALLBACK = 'fallback'                  # replayed without touching the journal


@dataclass(frozen=True)
class RestoreResult:
    tier: RestoreTier
    index: Optional[int] = None  # journal index for the matching tiers


class HistoryJournal:
    """Ordered history entries and a cursor (-1 when empty)."""

    def __init__(self, max_size: Optional[int] = None):
        self.max_size = max_size
        self._entries: List[HistoryEntry] = []
        self._index = -1
        self._on_changed_callbacks: List[Callable[[], None]] = []

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> List[HistoryEntry]:
        return list(self._entries)

    @property
    def index(self) -> int:
        return self._index

    @property
    def current(self) -> Optional[HistoryEntry]:
        if self._index < 0:
            return None
        return self._entries[self._index]

    def can_go_back(self) -> bool:
        return self._index > 0

    def can_go_forward(self) -> bool:
        return 0 <= self._index < len(self._entries) - 1

    def add_changed_callback(self, callback: Callable[[], None]) -> None:
        if callback not in self._on_changed_callbacks:
            self._on_changed_callbacks.append(callback)

    def remove_changed_callback(self, callback: Callable[[], None]) -> None:
        if callback in self._on_changed_callbacks:
            self._on_changed_callbacks.remove(callback)

    def _fire_changed_callbacks(self) -> None:
        for callback in list(self._on_changed_callbacks):
            try:
                callback()
            except Exception as e:
                logger.warning(f"Error in history_changed callback: {e}")

    def push(self, entry: HistoryEntry) -> None:
        """Append an entry, dropping any entries after the cursor."""
        del self._entries[self._index + 1:]
        self._entries.append(entry)
        if self.max_size is not None and len(self._entries) > self.max_size:
            del self._entries[:len(self._entries) - self.max_size]
        self._index = len(self._entries) - 1
        logger.debug(f"History push: {len(self._entries)} entries, index {self._index}")
        self._fire_changed_callbacks()

    def get(self, index: int) -> HistoryEntry:
        """Entry at index.

        Raises:
            HistoryError: If the index is out of range.
        """
        if index < 0 or index >= len(self._entries):
            raise HistoryError(
                f"History index {index} out of range [0, {len(self._entries) - 1}]",
                details={'index': index, 'length': len(self._entries)},
            )
        return self._entries[index]

    def move_to(self, index: int) -> HistoryEntry:
        """Move the cursor.

        Raises:
            HistoryError: If the index is out of range.
        """
        entry = self.get(index)
        if index != self._index:
            self._index = index
            self._fire_changed_callbacks()
        return entry

    def find_by_timestamp(self, timestamp: float) -> int:
        """Index of the entry with the timestamp, -1 if none."""
        for i, entry in enumerate(self._entries):
            if entry.timestamp == timestamp:
                return i
        return -1

    def find_by_snapshot(self, snapshot: Mapping[str, Mapping[str, Any]]) -> int:
        """Index of the first entry with an equal snapshot, -1 if none."""
        for i, entry in enumerate(self._entries):
            if entry.snapshot == snapshot:
                return i
        return -1

    def reset(self) -> None:
        """Drop all entries."""
        if not self._entries and self._index == -1:
            return
        self._entries = []
        self._index = -1
        self._fire_changed_callbacks()
