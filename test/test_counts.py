"""
Count Aggregator Tests
"""

import pytest
from pathlib import Path

# Add parent to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from pulse.core.contract import PacketType
from pulse.core.counts import CountAggregator, CountSnapshot


@pytest.fixture
def counts():
    return CountAggregator()


class TestIncrement:

    def test_lazy_creation(self, counts):
        snapshot = counts.increment('c1', PacketType.HEADER, now=500)
        assert snapshot == CountSnapshot(count=1, lastReset=500, headerCount=1, payloadCount=0, totalCount=1)

    def test_dedicated_scalars(self, counts):
        for packetType in (PacketType.HEADER, PacketType.PAYLOAD, PacketType.PAYLOAD, PacketType.STATE):
            counts.increment('c1', packetType, now=1)

        snapshot = counts.snapshotCounts()['c1']
        assert snapshot.headerCount == 1
        assert snapshot.payloadCount == 2
        assert snapshot.totalCount == 4
        assert snapshot.count == 4

    def test_type_counts(self, counts):
        counts.increment('c1', PacketType.HEADER, now=1)
        counts.increment('c1', PacketType.TARGET_PACKET, now=1)
        counts.increment('c2', PacketType.HEADER, now=1)

        globalTypes, perConnection = counts.snapshotTypeCounts()
        assert globalTypes == {'header': 2, 'TargetPacket': 1}
        assert perConnection == {'c1': {'header': 1, 'TargetPacket': 1}, 'c2': {'header': 1}}

    def test_snapshots_are_copies(self, counts):
        counts.increment('c1', PacketType.HEADER, now=1)
        before = counts.snapshotCounts()
        globalTypes, perConnection = counts.snapshotTypeCounts()

        counts.increment('c1', PacketType.HEADER, now=2)

        assert before['c1'].totalCount == 1
        assert globalTypes == {'header': 1}
        assert perConnection == {'c1': {'header': 1}}

    def test_total_monotonic(self, counts):
        last = 0
        for i in range(50):
            total = counts.increment('c1', list(PacketType)[i % 7], now=i).totalCount
            assert total > last
            last = total


class TestReset:

    def test_reset_one(self, counts):
        counts.increment('c1', PacketType.HEADER, now=1)
        counts.increment('c2', PacketType.HEADER, now=1)
        counts.resetOne('c1', now=99)

        assert counts.snapshotCounts()['c1'] == CountSnapshot.zero(99)
        assert counts.snapshotCounts()['c2'].totalCount == 1
        globalTypes, perConnection = counts.snapshotTypeCounts()
        assert perConnection['c1'] == {}
        assert globalTypes == {'header': 2}

    def test_reset_one_unknown(self, counts):
        counts.resetOne('c9', now=5)
        assert 'c9' not in counts.snapshotCounts()
        assert counts.snapshotTypeCounts()[1] == {'c9': {}}

    def test_reset_all(self, counts):
        counts.increment('c1', PacketType.HEADER, now=1)
        counts.resetAll()
        assert counts.snapshotCounts() == {}
        assert counts.snapshotTypeCounts() == ({}, {})

    def test_remove_connection(self, counts):
        counts.increment('c1', PacketType.HEADER, now=1)
        counts.removeConnection('c1')
        counts.removeConnection('c1')
        assert counts.snapshotCounts() == {}
        assert counts.snapshotTypeCounts()[1] == {}


class TestDirtyTracking:

    def test_take_snapshot_clears_dirty(self, counts):
        assert not counts.dirty
        counts.increment('c1', PacketType.HEADER, now=1)
        assert counts.dirty

        packetCounts, globalTypes, perConnection = counts.takeSnapshot()
        assert not counts.dirty
        assert packetCounts['c1'].totalCount == 1
        assert globalTypes == {'header': 1}
        assert perConnection == {'c1': {'header': 1}}

    def test_to_dict(self):
        assert CountSnapshot.zero(7).toDict() == {
            'count': 0, 'lastReset': 7, 'headerCount': 0, 'payloadCount': 0, 'totalCount': 0
        }
