"""
Per-connection Packet History

Double-buffered, capped store of PacketRecords.

- append() writes to the pending (accumulation) side only
- flush() moves pending records onto the visible side, keeping the newest
  `capacity` records per connection in arrival order
- The visible map is replaced on change, never mutated in place, and each
  history is a tuple; snapshot() hands out a read-only mapping proxy, so a
  reader holding an earlier snapshot keeps a consistent view and cannot
  alter visible state

Pending queues are themselves capped at `capacity`: anything older would be
truncated by the next flush anyway.
"""

from collections import deque
from types import MappingProxyType
from typing import Deque, Dict, List, Mapping, Set, Tuple

from .contract import MAX_RECORDS_PER_CONNECTION
from .events import PacketRecord


class BufferStore:
    """Capped, ordered packet history per connection."""

    def __init__(self, capacity: int = MAX_RECORDS_PER_CONNECTION):
        if capacity < 1:
            raise ValueError(f"Buffer capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._pending: Dict[str, Deque[PacketRecord]] = {}
        self._visible: Dict[str, Tuple[PacketRecord, ...]] = {}
        self.evicted = 0

    def append(self, connectionId: str, record: PacketRecord) -> None:
        queue = self._pending.get(connectionId)
        if queue is None:
            queue = self._pending[connectionId] = deque(maxlen=self.capacity)
        elif len(queue) == self.capacity:
            self.evicted += 1
        queue.append(record)

    def flush(self) -> Set[str]:
        """
        Materialise pending records into visible history.

        Returns:
            Connection ids whose visible history changed
        """
        if not self._pending:
            return set()

        visible = dict(self._visible)
        for connectionId, queue in self._pending.items():
            combined = visible.get(connectionId, ()) + tuple(queue)
            overflow = len(combined) - self.capacity
            if overflow > 0:
                self.evicted += overflow
                combined = combined[overflow:]
            visible[connectionId] = combined

        flushed = set(self._pending.keys())
        self._pending = {}
        self._visible = visible
        return flushed

    def readAll(self, connectionId: str) -> List[PacketRecord]:
        """Visible history for one connection, oldest first."""
        return list(self._visible.get(connectionId, ()))

    def snapshot(self) -> Mapping[str, Tuple[PacketRecord, ...]]:
        """Current visible map, read-only."""
        return MappingProxyType(self._visible)

    def clear(self, connectionId: str) -> None:
        """Empty one connection's history; the key stays if the connection was known."""
        hadPending = self._pending.pop(connectionId, None) is not None
        if hadPending or connectionId in self._visible:
            visible = dict(self._visible)
            visible[connectionId] = ()
            self._visible = visible

    def removeConnection(self, connectionId: str) -> None:
        self._pending.pop(connectionId, None)
        if connectionId in self._visible:
            visible = dict(self._visible)
            del visible[connectionId]
            self._visible = visible

    def clearAll(self) -> None:
        self._pending = {}
        self._visible = {}

    @property
    def pendingCount(self) -> int:
        return sum(len(q) for q in self._pending.values())

    @property
    def connectionIds(self) -> List[str]:
        return list(self._visible.keys())
