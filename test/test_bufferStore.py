"""
Buffer Store Tests

- Appends are invisible until flush()
- Visible history is capped, oldest evicted, arrival order kept
- Visible snapshots taken earlier are never mutated
"""

import pytest
from pathlib import Path

# Add parent to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from pulse.core.bufferStore import BufferStore
from pulse.core.contract import PacketType
from pulse.core.events import PacketRecord


def record(n, connectionId='c1'):
    return PacketRecord.create(connectionId, {'kind': {'Header': {'id': n}}}, PacketType.HEADER,
                               receivedAtMillis=1000 + n, recordId=f'{connectionId}-{n}')


def ids(records):
    return [r.recordId for r in records]


@pytest.fixture
def store():
    return BufferStore(capacity=5)


class TestFlush:

    def test_pending_not_visible(self, store):
        store.append('c1', record(1))
        assert store.readAll('c1') == []
        assert store.pendingCount == 1

    def test_flush_materialises_in_order(self, store):
        for n in range(3):
            store.append('c1', record(n))
        assert store.flush() == {'c1'}
        assert ids(store.readAll('c1')) == ['c1-0', 'c1-1', 'c1-2']
        assert store.pendingCount == 0

    def test_empty_flush(self, store):
        assert store.flush() == set()

    def test_cap_across_flushes(self, store):
        for n in range(4):
            store.append('c1', record(n))
        store.flush()
        for n in range(4, 8):
            store.append('c1', record(n))
        store.flush()

        assert ids(store.readAll('c1')) == [f'c1-{n}' for n in range(3, 8)]
        assert store.evicted == 3

    def test_cap_within_one_tick(self, store):
        for n in range(12):
            store.append('c1', record(n))
        store.flush()
        assert ids(store.readAll('c1')) == [f'c1-{n}' for n in range(7, 12)]

    def test_connections_independent(self, store):
        store.append('c1', record(1, 'c1'))
        store.append('c2', record(1, 'c2'))
        assert store.flush() == {'c1', 'c2'}
        assert store.connectionIds == ['c1', 'c2']

    def test_snapshot_is_not_mutated(self, store):
        store.append('c1', record(1))
        store.flush()
        before = store.snapshot()
        beforeList = before['c1']

        store.append('c1', record(2))
        store.flush()

        assert ids(beforeList) == ['c1-1']
        assert ids(store.snapshot()['c1']) == ['c1-1', 'c1-2']
        assert before is not store.snapshot()

    def test_read_all_returns_copy(self, store):
        store.append('c1', record(1))
        store.flush()
        store.readAll('c1').clear()
        assert len(store.readAll('c1')) == 1

    def test_snapshot_is_read_only(self, store):
        store.append('c1', record(1))
        store.flush()
        snapshot = store.snapshot()

        with pytest.raises(TypeError):
            snapshot['c2'] = ()
        with pytest.raises(AttributeError):
            snapshot['c1'].append(record(2))
        assert ids(store.readAll('c1')) == ['c1-1']


class TestClearAndRemove:

    def test_clear_keeps_key(self, store):
        store.append('c1', record(1))
        store.flush()
        store.append('c1', record(2))
        store.clear('c1')

        assert store.snapshot() == {'c1': ()}
        assert store.pendingCount == 0
        store.flush()
        assert store.readAll('c1') == []

    def test_clear_pending_only_connection(self, store):
        store.append('c1', record(1))
        store.clear('c1')
        assert store.snapshot() == {'c1': ()}
        assert store.pendingCount == 0

    def test_clear_unknown_connection(self, store):
        store.clear('nope')
        assert store.snapshot() == {}

    def test_remove_connection(self, store):
        store.append('c1', record(1))
        store.flush()
        store.removeConnection('c1')
        store.removeConnection('c1')
        assert 'c1' not in store.snapshot()

    def test_clear_all(self, store):
        store.append('c1', record(1))
        store.flush()
        store.append('c2', record(1, 'c2'))
        store.clearAll()
        assert store.snapshot() == {}
        assert store.flush() == set()

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            BufferStore(capacity=0)
