"""
Packet List Analysis

Helpers over PacketRecord lists as returned by PacketDataService.data.
Sizes are the byte length of the compact JSON encoding.
"""

from typing import Any, Dict, List, Sequence, Union

import orjson

from .classifier import classifyPacket
from .contract import PacketType
from .events import PacketRecord


def estimatePacketSize(packet: Any) -> int:
    """Compact JSON size in bytes; 0 when the packet is not JSON-encodable."""
    try:
        return len(orjson.dumps(packet))
    except (TypeError, orjson.JSONEncodeError):
        return 0


def isValidPacket(packet: Any) -> bool:
    return isinstance(packet, dict) and len(packet) > 0


def formatPacketForDisplay(packet: Any) -> str:
    try:
        return orjson.dumps(packet, option=orjson.OPT_INDENT_2).decode('utf-8')
    except (TypeError, orjson.JSONEncodeError):
        return "Invalid packet data"


def extractPacketMetadata(packet: Any) -> Dict[str, Any]:
    return {
        'type': classifyPacket(packet).value,
        'size': estimatePacketSize(packet),
        'fieldCount': len(packet) if isinstance(packet, dict) else 0,
        'hasKind': isinstance(packet, dict) and bool(packet.get('kind')),
        'isValid': isValidPacket(packet),
    }


def filterPacketsByType(records: Sequence[PacketRecord], packetType: Union[PacketType, str]) -> List[PacketRecord]:
    wanted = PacketType(packetType)
    return [r for r in records if r.packetType == wanted]


def groupPacketsByType(records: Sequence[PacketRecord]) -> Dict[str, List[PacketRecord]]:
    """Records keyed by type tag, each group in arrival order."""
    grouped: Dict[str, List[PacketRecord]] = {}
    for record in records:
        grouped.setdefault(record.packetType.value, []).append(record)
    return grouped


def calculatePacketStats(records: Sequence[PacketRecord]) -> Dict[str, Any]:
    """
    Summary of a record list.

    Returns:
        {total, byType, timeRange: {start, end, duration}, totalSize, averageSize}
        Times are receivedAtMillis values; an empty list yields zeros.
    """
    stats = {
        'total': len(records),
        'byType': {},
        'timeRange': {'start': 0, 'end': 0, 'duration': 0},
        'totalSize': 0,
        'averageSize': 0.0,
    }
    if not records:
        return stats

    stats['byType'] = {tag: len(group) for tag, group in groupPacketsByType(records).items()}

    timestamps = [r.receivedAtMillis for r in records]
    start, end = min(timestamps), max(timestamps)
    stats['timeRange'] = {'start': start, 'end': end, 'duration': end - start}

    totalSize = sum(estimatePacketSize(r.payload) for r in records)
    stats['totalSize'] = totalSize
    stats['averageSize'] = totalSize / len(records)
    return stats
