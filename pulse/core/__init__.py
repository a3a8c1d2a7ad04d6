"""
Pulse Core Package

Ingestion and aggregation pipeline for connection-tagged packet events.

Architecture Invariants:
- Per-connection history is capped; oldest records are evicted, never rejected
- Dedup membership is bounded
- Counters only decrease through an explicit clear/reset
- Consumers read visible snapshots only; accumulation state is private
- Authoritative totals and locally derived type counts have separate writers
"""

from .contract import PacketType, DedupPolicy
from .events import RawEvent, PacketRecord, EnvelopeError
from .statistics import StatisticsSnapshot, AuthoritativeCounts, LocalTypeCounts
from .statsSource import StatisticsSource, TransportStatisticsSource, StatsSourceError
from .packetData import PacketDataService, PacketDataError, TransportError
from .config import loadConfig, ConfigError

__all__ = [
    "PacketType",
    "DedupPolicy",
    "RawEvent",
    "PacketRecord",
    "EnvelopeError",
    "StatisticsSnapshot",
    "AuthoritativeCounts",
    "LocalTypeCounts",
    "StatisticsSource",
    "TransportStatisticsSource",
    "StatsSourceError",
    "PacketDataService",
    "PacketDataError",
    "TransportError",
    "loadConfig",
    "ConfigError",
]
