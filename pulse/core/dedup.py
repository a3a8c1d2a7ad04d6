"""
Packet Dedup Guard

Bounded membership set of recently seen packet fingerprints.

Fingerprint:
    connectionId + the first stable identity field found, searched on the
    packet object, then inside its variant body. The value is canonical JSON,
    so 7 and "7" never collide. Packets without an identity field have no
    fingerprint and are always admitted. The default identity is `sequence`
    only: a Header `id` names the sensor, so repeated ids are distinct readings.

Capacity:
    Membership never exceeds `capacity`. When full, DedupPolicy.CLEAR drops
    the whole set before inserting; DedupPolicy.FIFO evicts only the oldest
    fingerprint. CLEAR briefly re-admits packets seen just before the clear.
"""

from collections import OrderedDict
from typing import Any, Dict, Iterable, Optional, Tuple

import canonicaljson

from sdk.logging import getLogger

from .classifier import findVariant
from .contract import DedupPolicy, DEDUP_CAPACITY, DEFAULT_IDENTITY_FIELDS


class DedupGuard:
    """Suppresses re-processing of packets already seen on the same connection."""

    def __init__(self, capacity: int = DEDUP_CAPACITY,
                 policy: DedupPolicy = DedupPolicy.CLEAR,
                 identityFields: Optional[Iterable[str]] = None):
        if capacity < 1:
            raise ValueError(f"Dedup capacity must be >= 1, got {capacity}")

        self.capacity = capacity
        self.policy = DedupPolicy(policy)
        self.identityFields = list(identityFields or DEFAULT_IDENTITY_FIELDS)
        # (connectionId, fingerprint) in insertion order
        self._seen: 'OrderedDict[Tuple[str, str], None]' = OrderedDict()
        self._hits = 0
        self._clears = 0
        self._evictions = 0
        self.log = getLogger()

    def computeFingerprint(self, connectionId: str, packet: Any) -> Optional[str]:
        """Fingerprint for (connectionId, identity field), or None when the packet has no identity."""
        identity = self._findIdentity(packet)
        if identity is None:
            return None

        scope, field, value = identity
        try:
            canonical = canonicaljson.encode_canonical_json(value).decode('utf-8')
        except (TypeError, ValueError):
            return None
        return f"{connectionId}|{scope}.{field}={canonical}"

    def isDuplicate(self, connectionId: str, packet: Any) -> bool:
        """
        Check-and-record.

        Returns:
            True if this packet was already seen (skip it); membership is not touched.
            False otherwise; the fingerprint (if any) is recorded.
        """
        fingerprint = self.computeFingerprint(connectionId, packet)
        if fingerprint is None:
            return False

        key = (connectionId, fingerprint)
        if key in self._seen:
            self._hits += 1
            return True

        if len(self._seen) >= self.capacity:
            self._makeRoom()
        self._seen[key] = None
        return False

    def forgetConnection(self, connectionId: str) -> int:
        """Drop every fingerprint recorded for one connection. Returns how many were dropped."""
        stale = [key for key in self._seen if key[0] == connectionId]
        for key in stale:
            del self._seen[key]
        return len(stale)

    def clear(self) -> None:
        self._seen.clear()

    @property
    def size(self) -> int:
        return len(self._seen)

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            'tracked': len(self._seen),
            'capacity': self.capacity,
            'policy': self.policy.value,
            'duplicates': self._hits,
            'clears': self._clears,
            'evictions': self._evictions,
        }

    def _makeRoom(self) -> None:
        if self.policy == DedupPolicy.FIFO:
            self._seen.popitem(last=False)
            self._evictions += 1
            return

        self._clears += 1
        self.log.info("Dedup set full, clearing", tracked=len(self._seen), clears=self._clears)
        self._seen.clear()

    def _findIdentity(self, packet: Any) -> Optional[Tuple[str, str, Any]]:
        if not isinstance(packet, dict):
            return None

        for field in self.identityFields:
            if packet.get(field) is not None:
                return 'packet', field, packet[field]

        found = findVariant(packet)
        if found is None or not isinstance(found[1], dict):
            return None
        variant, body = found
        for field in self.identityFields:
            if body.get(field) is not None:
                return variant, field, body[field]
        return None
