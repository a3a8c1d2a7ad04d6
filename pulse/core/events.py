"""
Pulse Event Envelopes

RawEvent: one delivery from the packet subscription, { connectionId, packet }.
PacketRecord: the classified, durable form kept in per-connection history.

Wire format (orjson):
    {"connectionId": "c1", "packet": {"kind": {"Header": {...}}}}
"id" is accepted in place of "connectionId" (producer event shape).

Invariants:
- RawEvent and PacketRecord are immutable once built
- recordId is unique per record and unrelated to the dedup fingerprint
"""

import time, uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

import orjson

from .contract import PacketType


class EnvelopeError(Exception):
    """Subscription message could not be decoded into a RawEvent"""
    pass


@dataclass(frozen=True)
class RawEvent:
    """Connection-tagged packet as delivered by the transport."""
    connectionId: str
    packet: Any

    @classmethod
    def fromDict(cls, envelope: Dict[str, Any]) -> 'RawEvent':
        if not isinstance(envelope, dict):
            raise EnvelopeError(f"Envelope must be an object, got {type(envelope).__name__}")

        connectionId = envelope.get('connectionId') or envelope.get('id')
        if not isinstance(connectionId, str) or not connectionId:
            raise EnvelopeError("Envelope missing connectionId")

        return cls(connectionId=connectionId, packet=envelope.get('packet'))

    def toDict(self) -> Dict[str, Any]:
        return {'connectionId': self.connectionId, 'packet': self.packet}


def decodeEnvelope(payload: bytes) -> RawEvent:
    """Decode subscription bytes into a RawEvent. Raises EnvelopeError."""
    try:
        envelope = orjson.loads(payload)
    except orjson.JSONDecodeError as e:
        raise EnvelopeError(f"Invalid JSON payload: {e}") from e
    return RawEvent.fromDict(envelope)


def encodeEnvelope(connectionId: str, packet: Any) -> bytes:
    """Encode a packet for publishing on the packet subject."""
    return orjson.dumps({'connectionId': connectionId, 'packet': packet})


def nowMillis() -> int:
    """Wall-clock epoch milliseconds."""
    return int(time.time() * 1000)


def newRecordId(connectionId: str, receivedAtMillis: int) -> str:
    return f"{connectionId}_{receivedAtMillis}_{uuid.uuid4().hex[:9]}"


@dataclass(frozen=True)
class PacketRecord:
    """Classified packet stored in the buffer store."""
    payload: Any
    receivedAtMillis: int
    recordId: str
    packetType: PacketType

    @classmethod
    def create(cls, connectionId: str, payload: Any, packetType: PacketType,
               receivedAtMillis: int, recordId: Optional[str] = None) -> 'PacketRecord':
        return cls(
            payload=payload,
            receivedAtMillis=receivedAtMillis,
            recordId=recordId or newRecordId(connectionId, receivedAtMillis),
            packetType=packetType
        )

    def toDict(self) -> Dict[str, Any]:
        return {
            'payload': self.payload,
            'receivedAtMillis': self.receivedAtMillis,
            'recordId': self.recordId,
            'packetType': self.packetType.value
        }
