"""
Classifier Tests

Classification is total: every payload maps to exactly one PacketType and
unrecognised input falls back to "other" without raising.
"""

import pytest
from pathlib import Path

# Add parent to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from pulse.core.classifier import (
    classifyPacket, findVariant, isTargetPacket, isTargetPacketList,
    extractTargetData, extractTargetList
)
from pulse.core.contract import PacketType


def packet(variant, **body):
    return {'kind': {variant: body or {'id': 1}}}


class TestClassifyPacket:

    @pytest.mark.parametrize('variant,expected', [
        ('Header', PacketType.HEADER),
        ('Payload', PacketType.PAYLOAD),
        ('Command', PacketType.COMMAND),
        ('State', PacketType.STATE),
        ('TargetPacket', PacketType.TARGET_PACKET),
        ('TargetPacketList', PacketType.TARGET_PACKET_LIST),
    ])
    def test_known_variants(self, variant, expected):
        assert classifyPacket(packet(variant)) == expected

    def test_tag_values(self):
        """Lowercase tags, except the two Target variants which keep their case"""
        assert classifyPacket(packet('Header')).value == 'header'
        assert classifyPacket(packet('TargetPacket')).value == 'TargetPacket'
        assert classifyPacket(packet('TargetPacketList')).value == 'TargetPacketList'

    def test_bare_variant_name(self):
        assert classifyPacket({'kind': 'State'}) == PacketType.STATE

    @pytest.mark.parametrize('payload', [
        None, 42, 'Header', [1, 2, 3], {}, {'kind': None}, {'kind': {}},
        {'kind': {'Unknown': {}}}, {'kind': 'Unknown'}, {'other': {'Header': {}}},
        {'kind': {'Header': None}},
    ])
    def test_unrecognised_is_other(self, payload):
        assert classifyPacket(payload) == PacketType.OTHER

    def test_precedence_when_several_variants(self):
        assert classifyPacket({'kind': {'Payload': {'id': 1}, 'Header': {'id': 2}}}) == PacketType.HEADER

    def test_find_variant_returns_body(self):
        assert findVariant(packet('Header', id=7)) == ('Header', {'id': 7})
        assert findVariant({'kind': 'Command'}) == ('Command', None)
        assert findVariant({'kind': 5}) is None


class TestTargetHelpers:

    def test_target_packet(self):
        target = packet('TargetPacket', id=3, lat=1.0, lon=2.0)
        assert isTargetPacket(target)
        assert not isTargetPacketList(target)
        assert extractTargetData(target) == {'id': 3, 'lat': 1.0, 'lon': 2.0}
        assert extractTargetList(target) is None

    def test_target_packet_list(self):
        targets = [{'id': 1}, {'id': 2}]
        listPacket = packet('TargetPacketList', id=9, packets=targets)
        assert isTargetPacketList(listPacket)
        assert extractTargetList(listPacket) == targets
        assert extractTargetData(listPacket) is None

    def test_target_list_without_packets(self):
        assert extractTargetList(packet('TargetPacketList', id=1)) is None

    def test_non_target(self):
        assert extractTargetData(packet('Header')) is None
        assert extractTargetData('garbage') is None
