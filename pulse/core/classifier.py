"""
Packet Classifier

Maps a packet payload to its PacketType tag by inspecting the discriminant
field ("kind"). Classification is total: anything that is not a recognised
variant, including non-object payloads, is PacketType.OTHER.

Accepted discriminant shapes:
    {"kind": {"Header": {...}}}     externally tagged variant (producer default)
    {"kind": "Header"}              bare variant name
"""

from typing import Any, Dict, List, Optional, Tuple

from .contract import PacketType, VARIANT_TAGS, DISCRIMINANT_FIELD


def findVariant(packet: Any) -> Optional[Tuple[str, Any]]:
    """
    Locate the variant carried by a packet.

    Returns:
        (variantName, variantBody) or None. variantBody is None for bare names.
    """
    if not isinstance(packet, dict):
        return None

    kind = packet.get(DISCRIMINANT_FIELD)
    if isinstance(kind, str):
        return (kind, None) if kind in VARIANT_TAGS else None
    if not isinstance(kind, dict):
        return None

    for variant in VARIANT_TAGS:
        if kind.get(variant) is not None:
            return variant, kind[variant]
    return None


def classifyPacket(packet: Any) -> PacketType:
    found = findVariant(packet)
    if found is None:
        return PacketType.OTHER
    return VARIANT_TAGS[found[0]]


def isTargetPacket(packet: Any) -> bool:
    return classifyPacket(packet) == PacketType.TARGET_PACKET


def isTargetPacketList(packet: Any) -> bool:
    return classifyPacket(packet) == PacketType.TARGET_PACKET_LIST


def extractTargetData(packet: Any) -> Optional[Dict[str, Any]]:
    """Body of a TargetPacket, or None for any other packet."""
    if not isTargetPacket(packet):
        return None
    _, body = findVariant(packet)
    return body if isinstance(body, dict) else None


def extractTargetList(packet: Any) -> Optional[List[Any]]:
    """Targets of a TargetPacketList ({"packets": [...]}), or None."""
    if not isTargetPacketList(packet):
        return None
    _, body = findVariant(packet)
    if isinstance(body, dict) and isinstance(body.get('packets'), list):
        return body['packets']
    return None
