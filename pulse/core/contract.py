"""
Pulse Pipeline Contract Definitions

Single source of truth for pipeline capacities, cadences, subjects and the
packet type tag set. Import from this module rather than repeating literals.

Capacity Invariants:
- Visible history per connection never exceeds MAX_RECORDS_PER_CONNECTION
- Dedup membership never exceeds DEDUP_CAPACITY
"""

from enum import Enum
from typing import Dict, List


class PacketType(str, Enum):
    """Semantic packet type tag assigned by the classifier."""
    HEADER = "header"
    PAYLOAD = "payload"
    COMMAND = "command"
    STATE = "state"
    TARGET_PACKET = "TargetPacket"
    TARGET_PACKET_LIST = "TargetPacketList"
    OTHER = "other"


class DedupPolicy(str, Enum):
    """What the dedup guard does when its membership set is full."""
    CLEAR = "clear"     # drop every fingerprint, then insert
    FIFO = "fifo"       # evict the oldest fingerprint only


# ============================================================================
# Classification
# ============================================================================

# Payload discriminant variant -> tag. Order is the precedence when a payload
# carries more than one variant.
VARIANT_TAGS: Dict[str, PacketType] = {
    "Header": PacketType.HEADER,
    "Payload": PacketType.PAYLOAD,
    "Command": PacketType.COMMAND,
    "State": PacketType.STATE,
    "TargetPacket": PacketType.TARGET_PACKET,
    "TargetPacketList": PacketType.TARGET_PACKET_LIST,
}

# Field of the packet object holding the variant
DISCRIMINANT_FIELD = "kind"

# Per-packet identity fields, searched on the packet first, then inside the variant body.
# Variant-body "id" is the sensor id (constant per sensor), never a packet identity.
DEFAULT_IDENTITY_FIELDS: List[str] = ["sequence"]


# ============================================================================
# Capacities
# ============================================================================

MAX_RECORDS_PER_CONNECTION = 5000
DEDUP_CAPACITY = 10000


# ============================================================================
# Cadences (milliseconds)
# ============================================================================

FLUSH_INTERVAL_MS = 50
STATS_INTERVAL_MS = 1000
REQUEST_TIMEOUT_SECONDS = 1.0


# ============================================================================
# Transport subjects
# ============================================================================

PACKET_SUBJECT = "serial_packet"
STATISTICS_SUBJECT = "packet_statistics.get"
RESET_SUBJECT = "packet_statistics.reset"
