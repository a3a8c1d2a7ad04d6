"""
Packet Count Aggregation

Cumulative per-connection counters and per-type counters, maintained
incrementally on the accumulation side and copied out as snapshots.

Invariants:
- Counters only grow, except through resetOne/resetAll/removeConnection
- totalCount is monotonically non-decreasing between resets
- Snapshots returned to callers are copies; later increments never show through
"""

from dataclasses import dataclass, replace, asdict
from typing import Dict, Any

from .contract import PacketType


@dataclass(frozen=True)
class CountSnapshot:
    """Per-connection counters since the last clear."""
    count: int
    lastReset: int
    headerCount: int
    payloadCount: int
    totalCount: int

    @classmethod
    def zero(cls, now: int) -> 'CountSnapshot':
        return cls(count=0, lastReset=now, headerCount=0, payloadCount=0, totalCount=0)

    def bumped(self, packetType: PacketType) -> 'CountSnapshot':
        return replace(
            self,
            count=self.count + 1,
            totalCount=self.totalCount + 1,
            headerCount=self.headerCount + (1 if packetType == PacketType.HEADER else 0),
            payloadCount=self.payloadCount + (1 if packetType == PacketType.PAYLOAD else 0),
        )

    def toDict(self) -> Dict[str, Any]:
        return asdict(self)


TypeCounts = Dict[str, int]


class CountAggregator:
    """Sole writer of the accumulation-side counters."""

    def __init__(self):
        self._counts: Dict[str, CountSnapshot] = {}
        self._globalTypeCounts: TypeCounts = {}
        self._connectionTypeCounts: Dict[str, TypeCounts] = {}
        self._dirty = False

    def increment(self, connectionId: str, packetType: PacketType, now: int) -> CountSnapshot:
        current = self._counts.get(connectionId) or CountSnapshot.zero(now)
        updated = current.bumped(packetType)
        self._counts[connectionId] = updated

        tag = PacketType(packetType).value
        self._globalTypeCounts[tag] = self._globalTypeCounts.get(tag, 0) + 1
        perConnection = self._connectionTypeCounts.setdefault(connectionId, {})
        perConnection[tag] = perConnection.get(tag, 0) + 1

        self._dirty = True
        return updated

    def resetOne(self, connectionId: str, now: int) -> None:
        """Zero one connection's counters. Type counts for it become {}; global type counts are kept."""
        if connectionId in self._counts:
            self._counts[connectionId] = CountSnapshot.zero(now)
        self._connectionTypeCounts[connectionId] = {}
        self._dirty = True

    def resetAll(self) -> None:
        self._counts = {}
        self._globalTypeCounts = {}
        self._connectionTypeCounts = {}
        self._dirty = True

    def removeConnection(self, connectionId: str) -> None:
        self._counts.pop(connectionId, None)
        self._connectionTypeCounts.pop(connectionId, None)
        self._dirty = True

    @property
    def dirty(self) -> bool:
        """True when something changed since the last takeSnapshot()."""
        return self._dirty

    def snapshotCounts(self) -> Dict[str, CountSnapshot]:
        return dict(self._counts)

    def snapshotTypeCounts(self) -> 'tuple[TypeCounts, Dict[str, TypeCounts]]':
        return (dict(self._globalTypeCounts),
                {cid: dict(counts) for cid, counts in self._connectionTypeCounts.items()})

    def takeSnapshot(self):
        """(counts, globalTypeCounts, connectionTypeCounts) copies; clears the dirty flag."""
        self._dirty = False
        globalTypeCounts, connectionTypeCounts = self.snapshotTypeCounts()
        return self.snapshotCounts(), globalTypeCounts, connectionTypeCounts
