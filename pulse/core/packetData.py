"""
Packet Data Service

Owns the ingestion pipeline for one process:

    serial_packet subscription -> classify -> dedup -> (BufferStore, CountAggregator)
    FlushScheduler (50 ms)     -> accumulation side copied into visible state
    StatsReconciler (1000 ms)  -> authoritative counters merged into visible state

Architecture Invariants:
- Consumers read only visible state (data, packetCounts, statistics)
- The accumulation side is written only by handleEvent() and drained only by flush()
- The reconciler writes only the authoritative statistics group; type counts
  are owned by the flush path
- No exception escapes the subscription callback
- Subscription and both timers start and stop together
- resetCounters() leaves local state untouched when the external reset fails
"""

import asyncio
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Set, Tuple

from sdk.logging import getLogger

from .bufferStore import BufferStore
from .classifier import classifyPacket
from .contract import (
    DedupPolicy, PACKET_SUBJECT, STATISTICS_SUBJECT, RESET_SUBJECT,
    MAX_RECORDS_PER_CONNECTION, DEDUP_CAPACITY, FLUSH_INTERVAL_MS,
    STATS_INTERVAL_MS, REQUEST_TIMEOUT_SECONDS
)
from .counts import CountAggregator, CountSnapshot
from .dedup import DedupGuard
from .events import EnvelopeError, PacketRecord, decodeEnvelope, nowMillis
from .scheduler import FlushScheduler, StatsReconciler
from .statistics import AuthoritativeCounts, LocalTypeCounts, StatisticsSnapshot
from .statsSource import StatisticsSource, TransportStatisticsSource


# Per-event paths log once every N accepted events
LOG_EVERY = 1000


class PacketDataError(Exception):
    """Packet data service used out of lifecycle order"""
    pass


class TransportError(Exception):
    """Transport subscription or handling error"""
    pass


class PacketDataService:
    """
    Packet telemetry pipeline with a read surface and lifecycle commands.

    Feed it through a transport subscription (start()) or directly through
    handleEvent(). flush() is normally driven by the FlushScheduler but may be
    called directly.
    """

    def __init__(self, transport=None, statsSource: Optional[StatisticsSource] = None,
                 packetSubject: str = PACKET_SUBJECT,
                 maxRecordsPerConnection: int = MAX_RECORDS_PER_CONNECTION,
                 dedupCapacity: int = DEDUP_CAPACITY,
                 dedupPolicy: DedupPolicy = DedupPolicy.CLEAR,
                 identityFields: Optional[Iterable[str]] = None,
                 flushIntervalMs: int = FLUSH_INTERVAL_MS,
                 statsIntervalMs: int = STATS_INTERVAL_MS,
                 clock: Callable[[], int] = nowMillis):
        """
        Args:
            transport: Connected sdk.transport instance, or None for direct feeding
            statsSource: Authoritative statistics source. Defaults to a
                TransportStatisticsSource over `transport` when one is given.
            packetSubject: Subject carrying {connectionId, packet} envelopes
            clock: Epoch-milliseconds clock (injectable for tests)
        """
        if statsSource is None and transport is not None:
            statsSource = TransportStatisticsSource(transport)

        self.transport = transport
        self.statsSource = statsSource
        self.packetSubject = packetSubject
        self._clock = clock
        self.log = getLogger()

        # Accumulation side
        self.dedup = DedupGuard(dedupCapacity, dedupPolicy, identityFields)
        self.buffer = BufferStore(maxRecordsPerConnection)
        self.counts = CountAggregator()

        # Visible side (buffer visibility is kept inside BufferStore)
        self._packetCounts: Dict[str, CountSnapshot] = {}
        self._statistics = StatisticsSnapshot.empty()

        self.flushScheduler = FlushScheduler(self.flush, flushIntervalMs)
        self.reconciler: Optional[StatsReconciler] = None
        if statsSource is not None:
            self.reconciler = StatsReconciler(statsSource, self._applyAuthoritative,
                                              statsIntervalMs, clock)

        self._subscription = None
        self._running = False

        self.received = 0
        self.accepted = 0
        self.duplicates = 0
        self.malformed = 0
        self.flushes = 0

    @classmethod
    def fromConfig(cls, config: Dict[str, Any], transport=None,
                   clock: Callable[[], int] = nowMillis) -> 'PacketDataService':
        """Build from a validated config dict (see pulse.core.config)."""
        pipeline = config['pipeline']
        subjects = config['subjects']

        statsSource = None
        if transport is not None:
            statsSource = TransportStatisticsSource(
                transport,
                statisticsSubject=subjects.get('statistics', STATISTICS_SUBJECT),
                resetSubject=subjects.get('reset', RESET_SUBJECT),
                timeout=pipeline.get('requestTimeoutSeconds', REQUEST_TIMEOUT_SECONDS)
            )

        return cls(
            transport=transport,
            statsSource=statsSource,
            packetSubject=subjects.get('packets', PACKET_SUBJECT),
            maxRecordsPerConnection=pipeline['maxRecordsPerConnection'],
            dedupCapacity=pipeline['dedupCapacity'],
            dedupPolicy=DedupPolicy(pipeline['dedupPolicy']),
            identityFields=pipeline['identityFields'],
            flushIntervalMs=pipeline['flushIntervalMs'],
            statsIntervalMs=pipeline['statsIntervalMs'],
            clock=clock
        )

    # ===== Read surface =====

    @property
    def data(self) -> Mapping[str, Tuple[PacketRecord, ...]]:
        """Visible packet history per connection. Read-only snapshot."""
        return self.buffer.snapshot()

    @property
    def packetCounts(self) -> Mapping[str, CountSnapshot]:
        """Visible CountSnapshot per connection. Read-only snapshot."""
        return MappingProxyType(self._packetCounts)

    @property
    def statistics(self) -> StatisticsSnapshot:
        return self._statistics

    @property
    def running(self) -> bool:
        return self._running

    def stats(self) -> Dict[str, Any]:
        """Pipeline diagnostics."""
        result = {
            'running': self._running,
            'received': self.received,
            'accepted': self.accepted,
            'duplicates': self.duplicates,
            'malformed': self.malformed,
            'flushes': self.flushes,
            'pendingRecords': self.buffer.pendingCount,
            'evictedRecords': self.buffer.evicted,
            'connections': len(self.buffer.connectionIds),
            'dedup': self.dedup.stats,
            'flushIntervalMs': self.flushScheduler.intervalMs,
        }
        if self.reconciler is not None:
            result['reconciler'] = self.reconciler.status()
        return result

    # ===== Ingestion =====

    async def handleMessage(self, subject: str, payload: bytes) -> None:
        """Subscription callback. Never raises."""
        try:
            event = decodeEnvelope(payload)
        except EnvelopeError as e:
            self.malformed += 1
            self.log.warning(f"Dropping undecodable message: {e}", subject=subject, malformed=self.malformed)
            return
        except Exception as e:
            self.malformed += 1
            self.log.error(f"Error decoding message on '{subject}': {e}", exc_info=True)
            return

        self.handleEvent(event.connectionId, event.packet)

    def handleEvent(self, connectionId: str, packet: Any) -> bool:
        """
        Classify, dedup and accumulate one packet.

        Returns:
            True if the packet was accepted into the accumulation side
        """
        self.received += 1
        if packet is None:
            self.malformed += 1
            self.log.debug("Ignoring event without packet", connectionId=connectionId)
            return False

        try:
            packetType = classifyPacket(packet)
            if self.dedup.isDuplicate(connectionId, packet):
                self.duplicates += 1
                return False

            now = self._clock()
            record = PacketRecord.create(connectionId, packet, packetType, now)
            self.buffer.append(connectionId, record)
            self.counts.increment(connectionId, packetType, now)
        except Exception as e:
            self.malformed += 1
            self.log.error(f"Error ingesting packet: {e}", connectionId=connectionId, exc_info=True)
            return False

        self.accepted += 1
        if self.accepted % LOG_EVERY == 0:
            self.log.info(f"Accepted {self.accepted} packets total",
                          duplicates=self.duplicates, malformed=self.malformed)
        return True

    def flush(self) -> Set[str]:
        """
        Commit the accumulation side into visible state.

        Returns:
            Connection ids whose visible history changed
        """
        flushed = self.buffer.flush()
        if self.counts.dirty:
            packetCounts, globalTypeCounts, connectionTypeCounts = self.counts.takeSnapshot()
            self._packetCounts = packetCounts
            self._statistics = self._statistics.withLocal(
                LocalTypeCounts(globalTypeCounts, connectionTypeCounts))
        self.flushes += 1
        return flushed

    def _applyAuthoritative(self, counts: AuthoritativeCounts) -> None:
        self._statistics = self._statistics.withAuthoritative(counts)

    # ===== Lifecycle commands =====

    def clearData(self, connectionId: str) -> None:
        """Empty one connection's history and zero its counters. The map keys stay."""
        now = self._clock()
        self.buffer.clear(connectionId)
        self.counts.resetOne(connectionId, now)

        if connectionId in self._packetCounts or connectionId in self.counts.snapshotCounts():
            packetCounts = dict(self._packetCounts)
            packetCounts[connectionId] = CountSnapshot.zero(now)
            self._packetCounts = packetCounts

        local = self._statistics.local
        connectionTypeCounts = dict(local.connectionTypeCounts)
        connectionTypeCounts[connectionId] = {}
        self._statistics = self._statistics.withLocal(
            LocalTypeCounts(local.globalTypeCounts, connectionTypeCounts))

        self.log.info("Cleared connection data", connectionId=connectionId)

    def removeConnectionData(self, connectionId: str) -> None:
        """Delete one connection's keys from every store. Safe to repeat."""
        self.buffer.removeConnection(connectionId)
        self.counts.removeConnection(connectionId)
        forgotten = self.dedup.forgetConnection(connectionId)

        if connectionId in self._packetCounts:
            self._packetCounts = {cid: c for cid, c in self._packetCounts.items() if cid != connectionId}
        self._statistics = self._statistics.withoutConnection(connectionId)

        self.log.info("Removed connection data", connectionId=connectionId, fingerprints=forgotten)

    def clearAllData(self) -> None:
        """Reset every store to empty."""
        self.buffer.clearAll()
        self.counts.resetAll()
        self.dedup.clear()
        self._packetCounts = {}
        self._statistics = StatisticsSnapshot.empty()
        if self.reconciler is not None:
            self.reconciler.invalidate()

        self.log.info("Cleared all packet data")

    async def resetCounters(self) -> None:
        """
        Reset the authoritative counters, then local state, then re-poll.

        Raises:
            StatsSourceError: External reset failed; local state is untouched
            PacketDataError: No statistics source configured
        """
        if self.statsSource is None:
            raise PacketDataError("resetCounters requires a statistics source")

        try:
            await self.statsSource.resetCounters()
        except Exception as e:
            self.log.error(f"Counter reset failed: {e}")
            raise

        self.clearAllData()
        await self.reconciler.pollNow()

    async def fetchPacketStatistics(self) -> bool:
        """Poll the authoritative source now. Returns True if fresh values were applied."""
        if self.reconciler is None:
            raise PacketDataError("fetchPacketStatistics requires a statistics source")
        return await self.reconciler.pollNow()

    # ===== Start/stop =====

    async def start(self) -> None:
        if self._running:
            raise PacketDataError("PacketDataService already running")

        if self.transport is not None:
            try:
                self._subscription = await self.transport.subscribe(self.packetSubject, self.handleMessage)
            except Exception as e:
                raise TransportError(f"Failed to subscribe to '{self.packetSubject}': {e}") from e

        self.flushScheduler.start()
        if self.reconciler is not None:
            self.reconciler.start()
        self._running = True

        self.log.info("PacketDataService started", subject=self.packetSubject,
                      transport=self.transport is not None, reconciler=self.reconciler is not None)

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False

        stops = [self.flushScheduler.stop()]
        if self.reconciler is not None:
            stops.append(self.reconciler.stop())

        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            try:
                await subscription.unsubscribe()
            except Exception as e:
                self.log.warning(f"Unsubscribe failed: {e}")

        await asyncio.gather(*stops)
        self.log.info("PacketDataService stopped", accepted=self.accepted, flushes=self.flushes)

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()
