"""
Dedup Guard Tests

- Fingerprint = connection + identity field; absent identity means no dedup
- Default identity is `sequence`; a Header's sensor id never suppresses readings
- Check-and-record: a duplicate does not mutate membership
- Membership never exceeds capacity (clear policy and fifo policy)
"""

import pytest
from pathlib import Path

# Add parent to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from pulse.core.contract import DedupPolicy
from pulse.core.dedup import DedupGuard


def header(sequence, sensorId=7):
    return {'kind': {'Header': {'id': sensorId, 'sequence': sequence, 'length': 42}}}


def sensorHeader(sensorId, reading):
    """Header as the sensors send it: sensor id plus changing readings, no sequence."""
    return {'kind': {'Header': {'id': sensorId, 'length': 100 + reading, 'checksum': 2000 + reading,
                                'version': 1, 'flags': 0}}}


@pytest.fixture
def guard():
    return DedupGuard(capacity=100)


class TestFingerprint:

    def test_identity_from_variant_body(self, guard):
        assert guard.computeFingerprint('c1', header(1)) == 'c1|Header.sequence=1'

    def test_packet_level_field_wins(self, guard):
        fingerprint = guard.computeFingerprint('c1', {'sequence': 5, 'kind': {'Header': {'sequence': 1}}})
        assert fingerprint == 'c1|packet.sequence=5'

    def test_identity_field_order(self):
        guard = DedupGuard(capacity=10, identityFields=['sequence', 'id'])
        body = {'kind': {'Payload': {'id': 2, 'sequence': 9}}}
        assert guard.computeFingerprint('c1', body) == 'c1|Payload.sequence=9'
        assert guard.computeFingerprint('c1', {'kind': {'Payload': {'id': 2}}}) == 'c1|Payload.id=2'

    def test_types_do_not_collide(self, guard):
        assert guard.computeFingerprint('c1', {'sequence': 7}) != guard.computeFingerprint('c1', {'sequence': '7'})

    def test_variants_do_not_collide(self, guard):
        assert not guard.isDuplicate('c1', header(1))
        assert not guard.isDuplicate('c1', {'kind': {'Payload': {'sequence': 1}}})

    @pytest.mark.parametrize('payload', [
        None, 'text', [1], {}, {'kind': 'Header'}, {'kind': {'Header': {'length': 1}}},
        {'kind': {'Header': {'id': 7, 'length': 1}}}, {'id': 3},
    ])
    def test_no_identity(self, guard, payload):
        assert guard.computeFingerprint('c1', payload) is None

    def test_custom_identity_fields(self):
        custom = DedupGuard(capacity=10, identityFields=['msgId'])
        assert custom.computeFingerprint('c1', {'msgId': 'a'}) == 'c1|packet.msgId="a"'
        assert custom.computeFingerprint('c1', header(1)) is None


class TestSensorStreams:

    def test_constant_sensor_id_never_suppressed(self, guard):
        admitted = [not guard.isDuplicate('udp-1', sensorHeader(7, i)) for i in range(50)]
        assert all(admitted)
        assert guard.size == 0

    def test_random_sensor_ids_never_suppressed(self, guard):
        # Serial producers draw the header id from 1..999; repeats are new readings
        for i in range(3000):
            assert not guard.isDuplicate('serial-1', sensorHeader(1 + i % 999, i))

    def test_id_identity_when_configured(self):
        byId = DedupGuard(capacity=10, identityFields=['id'])
        assert not byId.isDuplicate('c1', sensorHeader(7, 1))
        assert byId.isDuplicate('c1', sensorHeader(7, 2))


class TestIsDuplicate:

    def test_second_delivery_is_duplicate(self, guard):
        assert guard.isDuplicate('c1', header(1)) is False
        assert guard.isDuplicate('c1', header(1)) is True
        assert guard.size == 1
        assert guard.stats['duplicates'] == 1

    def test_connections_are_independent(self, guard):
        assert not guard.isDuplicate('c1', header(1))
        assert not guard.isDuplicate('c2', header(1))

    def test_no_identity_always_processed(self, guard):
        payload = {'kind': {'State': {'state': 'idle'}}}
        assert not guard.isDuplicate('c1', payload)
        assert not guard.isDuplicate('c1', payload)
        assert guard.size == 0

    def test_forget_connection(self, guard):
        guard.isDuplicate('c1', header(1))
        guard.isDuplicate('c1', header(2))
        guard.isDuplicate('c2', header(1))

        assert guard.forgetConnection('c1') == 2
        assert guard.size == 1
        assert not guard.isDuplicate('c1', header(1))
        assert guard.isDuplicate('c2', header(1))

    def test_clear(self, guard):
        guard.isDuplicate('c1', header(1))
        guard.clear()
        assert guard.size == 0
        assert not guard.isDuplicate('c1', header(1))


class TestCapacity:

    def test_clear_policy_clears_in_full(self):
        guard = DedupGuard(capacity=3, policy=DedupPolicy.CLEAR)
        for i in range(3):
            guard.isDuplicate('c1', header(i))
        assert guard.size == 3

        guard.isDuplicate('c1', header(99))
        assert guard.size == 1
        assert guard.stats['clears'] == 1
        # Seen just before the clear, so admitted again
        assert not guard.isDuplicate('c1', header(0))

    def test_fifo_policy_evicts_oldest(self):
        guard = DedupGuard(capacity=3, policy=DedupPolicy.FIFO)
        for i in range(4):
            guard.isDuplicate('c1', header(i))

        assert guard.size == 3
        assert guard.stats['evictions'] == 1
        assert guard.isDuplicate('c1', header(3))
        assert guard.isDuplicate('c1', header(1))
        assert not guard.isDuplicate('c1', header(0))

    @pytest.mark.parametrize('policy', list(DedupPolicy))
    def test_size_bounded(self, policy):
        guard = DedupGuard(capacity=50, policy=policy)
        for i in range(1000):
            guard.isDuplicate(f'c{i % 3}', header(i))
            assert guard.size <= 50

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            DedupGuard(capacity=0)

    def test_policy_from_string(self):
        assert DedupGuard(capacity=1, policy='fifo').policy == DedupPolicy.FIFO
