"""
Statistics Snapshot

Global statistics split into two independently owned field groups:

    AuthoritativeCounts   written only by the stats reconciler (and lifecycle resets)
        totalReceived, totalSent, connectionCount, connectionCounts
    LocalTypeCounts       written only by the flush path (and lifecycle resets)
        globalTypeCounts, connectionTypeCounts

Each writer replaces its own group through withAuthoritative()/withLocal(),
so the reconciler has no way to touch the locally derived type counts.
All three classes are immutable; every update yields a new snapshot.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping

ConnectionTraffic = Dict[str, int]      # {"received": n, "sent": n}
TypeCounts = Dict[str, int]


def _asCount(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{name} must be a non-negative integer, got {value!r}")
    return value


@dataclass(frozen=True)
class AuthoritativeCounts:
    totalReceived: int = 0
    totalSent: int = 0
    connectionCount: int = 0
    connectionCounts: Dict[str, ConnectionTraffic] = field(default_factory=dict)

    @classmethod
    def fromResponse(cls, response: Mapping[str, Any]) -> 'AuthoritativeCounts':
        """
        Parse the statistics query reply:
            {total_received, total_sent, connection_count,
             connection_counts: {id: {received, sent}}}

        Raises:
            ValueError: Reply is not shaped as above
        """
        if not isinstance(response, Mapping):
            raise ValueError(f"Statistics reply must be an object, got {type(response).__name__}")

        try:
            rawConnections = response.get('connection_counts')
            if rawConnections is None:
                rawConnections = {}
            if not isinstance(rawConnections, Mapping):
                raise ValueError("connection_counts must be an object")

            connectionCounts = {}
            for connectionId, traffic in rawConnections.items():
                if not isinstance(traffic, Mapping):
                    raise ValueError(f"connection_counts[{connectionId}] must be an object")
                connectionCounts[str(connectionId)] = {
                    'received': _asCount(traffic.get('received', 0), 'received'),
                    'sent': _asCount(traffic.get('sent', 0), 'sent'),
                }

            return cls(
                totalReceived=_asCount(response['total_received'], 'total_received'),
                totalSent=_asCount(response['total_sent'], 'total_sent'),
                connectionCount=_asCount(response.get('connection_count', len(connectionCounts)),
                                         'connection_count'),
                connectionCounts=connectionCounts,
            )
        except KeyError as e:
            raise ValueError(f"Statistics reply missing field {e.args[0]}") from e

    def toDict(self) -> Dict[str, Any]:
        return {
            'totalReceived': self.totalReceived,
            'totalSent': self.totalSent,
            'connectionCount': self.connectionCount,
            'connectionCounts': {cid: dict(t) for cid, t in self.connectionCounts.items()},
        }


@dataclass(frozen=True)
class LocalTypeCounts:
    globalTypeCounts: TypeCounts = field(default_factory=dict)
    connectionTypeCounts: Dict[str, TypeCounts] = field(default_factory=dict)

    def toDict(self) -> Dict[str, Any]:
        return {
            'globalTypeCounts': dict(self.globalTypeCounts),
            'connectionTypeCounts': {cid: dict(c) for cid, c in self.connectionTypeCounts.items()},
        }


@dataclass(frozen=True)
class StatisticsSnapshot:
    authoritative: AuthoritativeCounts = field(default_factory=AuthoritativeCounts)
    local: LocalTypeCounts = field(default_factory=LocalTypeCounts)

    @classmethod
    def empty(cls) -> 'StatisticsSnapshot':
        return cls()

    def withAuthoritative(self, authoritative: AuthoritativeCounts) -> 'StatisticsSnapshot':
        return replace(self, authoritative=authoritative)

    def withLocal(self, local: LocalTypeCounts) -> 'StatisticsSnapshot':
        return replace(self, local=local)

    def withoutConnection(self, connectionId: str) -> 'StatisticsSnapshot':
        """Drop one connection's key from connectionCounts and connectionTypeCounts."""
        connectionCounts = {cid: t for cid, t in self.authoritative.connectionCounts.items()
                            if cid != connectionId}
        connectionTypeCounts = {cid: c for cid, c in self.local.connectionTypeCounts.items()
                                if cid != connectionId}
        return StatisticsSnapshot(
            authoritative=replace(self.authoritative, connectionCounts=connectionCounts),
            local=replace(self.local, connectionTypeCounts=connectionTypeCounts),
        )

    # Flat read access

    @property
    def totalReceived(self) -> int:
        return self.authoritative.totalReceived

    @property
    def totalSent(self) -> int:
        return self.authoritative.totalSent

    @property
    def connectionCount(self) -> int:
        return self.authoritative.connectionCount

    @property
    def connectionCounts(self) -> Dict[str, ConnectionTraffic]:
        return self.authoritative.connectionCounts

    @property
    def globalTypeCounts(self) -> TypeCounts:
        return self.local.globalTypeCounts

    @property
    def connectionTypeCounts(self) -> Dict[str, TypeCounts]:
        return self.local.connectionTypeCounts

    @property
    def connectionPacketTypeCounts(self) -> Dict[str, TypeCounts]:
        return self.local.connectionTypeCounts

    def toDict(self) -> Dict[str, Any]:
        result = self.authoritative.toDict()
        result.update(self.local.toDict())
        return result
