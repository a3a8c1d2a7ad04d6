"""
Mock Sensor

Synthetic packet producer and authoritative counter responder, so the whole
pipeline runs without serial/UDP hardware.

- Publishes {connectionId, packet} envelopes on the packet subject, cycling
  through every packet variant
- Packet shapes follow the real sensor producers: variant bodies carry the
  sensor's own id (constant per connection) with changing readings; the
  packet object carries a per-connection `sequence` that increases by one
- Optionally re-publishes the previous packet, same sequence, every N packets
  (dedup traffic)
- Keeps its own received/sent counters and answers the statistics query and
  reset subjects with the same reply shape a real backend uses

Usage:
    python -m pulse.tools.mockSensor --uri nats://localhost:4222 --connections 3
"""

import argparse
import asyncio
import itertools
import math
import random
from typing import Any, Dict, List, Optional, Sequence

import orjson

from pulse.core.contract import PACKET_SUBJECT, STATISTICS_SUBJECT, RESET_SUBJECT
from pulse.core.events import encodeEnvelope
from sdk.logging import getLogger, configureLogging
from sdk.transport import openTransport


VARIANT_CYCLE = ('Header', 'Payload', 'Payload', 'Command', 'State', 'TargetPacket', 'TargetPacketList')


def buildPacket(variant: str, sensorId: int, sequence: int, rng: random.Random) -> Dict[str, Any]:
    """One packet of the given variant from sensor `sensorId`, externally tagged under "kind"."""
    if variant == 'Header':
        body = {'id': sensorId, 'length': rng.randint(10, 99), 'checksum': rng.randint(1000, 9999),
                'version': 1, 'flags': rng.randint(0, 15)}
    elif variant == 'Payload':
        body = {'id': sensorId, 'data': [rng.randint(0, 255) for _ in range(8)]}
    elif variant == 'Command':
        body = {'id': sensorId, 'command': rng.choice(['ping', 'status', 'configure']), 'params': {}}
    elif variant == 'State':
        body = {'id': sensorId, 'state': rng.choice(['idle', 'tracking', 'fault']), 'uptime': sequence}
    elif variant == 'TargetPacket':
        body = _target(sensorId, sequence, rng)
    elif variant == 'TargetPacketList':
        body = {'id': sensorId, 'packets': [_target(sensorId * 10 + i, sequence, rng) for i in range(3)]}
    else:
        raise ValueError(f"Unknown variant '{variant}'")
    return {'sequence': sequence, 'kind': {variant: body}}


def _target(targetId: int, sequence: int, rng: random.Random) -> Dict[str, Any]:
    angle = sequence / 50.0
    return {
        'id': targetId,
        'target_id': targetId,
        'lat': 37.0 + 0.1 * math.sin(angle),
        'lon': -122.0 + 0.1 * math.cos(angle),
        'alt': 1000.0 + rng.uniform(-5.0, 5.0),
        'time': float(sequence),
    }


class MockSensor:
    """Publishes synthetic packets and serves the authoritative statistics subjects."""

    def __init__(self, transport, connectionIds: Sequence[str] = ('mock-1', 'mock-2'),
                 intervalMs: int = 20, duplicateEvery: int = 0, seed: Optional[int] = None,
                 packetSubject: str = PACKET_SUBJECT,
                 statisticsSubject: str = STATISTICS_SUBJECT,
                 resetSubject: str = RESET_SUBJECT):
        self.transport = transport
        self.connectionIds: List[str] = list(connectionIds)
        self.intervalMs = intervalMs
        self.duplicateEvery = duplicateEvery
        self.packetSubject = packetSubject
        self.statisticsSubject = statisticsSubject
        self.resetSubject = resetSubject
        self.log = getLogger()

        self._rng = random.Random(seed)
        self._sensorIds: Dict[str, int] = {cid: i + 1 for i, cid in enumerate(self.connectionIds)}
        self._nextSequence: Dict[str, int] = {cid: 1 for cid in self.connectionIds}
        self._variants = {cid: itertools.cycle(VARIANT_CYCLE) for cid in self.connectionIds}
        self._lastPacket: Dict[str, Dict[str, Any]] = {}
        self._counts: Dict[str, Dict[str, int]] = {}
        self._published = 0
        self._lastLogged = 0
        self._handles = []
        self._task: Optional[asyncio.Task] = None

    async def start(self, publish: bool = True) -> None:
        """Serve the statistics subjects; with publish=True also start the packet loop."""
        self._handles.append(await self.transport.registerHandler(self.statisticsSubject, self._handleStatistics))
        self._handles.append(await self.transport.registerHandler(self.resetSubject, self._handleReset))
        if publish:
            self._task = asyncio.create_task(self._publishLoop())
        self.log.info("MockSensor started", connections=len(self.connectionIds), intervalMs=self.intervalMs)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        for handle in self._handles:
            await handle.unsubscribe()
        self._handles.clear()
        self.log.info("MockSensor stopped", published=self._published)

    async def publishOne(self, connectionId: str) -> Dict[str, Any]:
        """Publish the next packet for one connection. Returns the packet."""
        self._published += 1
        if self.duplicateEvery and connectionId in self._lastPacket and self._published % self.duplicateEvery == 0:
            packet = self._lastPacket[connectionId]
        else:
            sensorId = self._sensorIds.setdefault(connectionId, len(self._sensorIds) + 1)
            sequence = self._nextSequence.setdefault(connectionId, 1)
            self._nextSequence[connectionId] = sequence + 1
            variants = self._variants.setdefault(connectionId, itertools.cycle(VARIANT_CYCLE))
            packet = buildPacket(next(variants), sensorId, sequence, self._rng)
            self._lastPacket[connectionId] = packet

        counts = self._counts.setdefault(connectionId, {'received': 0, 'sent': 0})
        counts['received'] += 1
        if 'Command' in packet['kind']:
            counts['sent'] += 1

        await self.transport.publish(self.packetSubject, encodeEnvelope(connectionId, packet))
        return packet

    def statistics(self) -> Dict[str, Any]:
        """Reply body for the statistics query subject."""
        return {
            'total_received': sum(c['received'] for c in self._counts.values()),
            'total_sent': sum(c['sent'] for c in self._counts.values()),
            'connection_count': len(self._counts),
            'connection_counts': {cid: dict(c) for cid, c in self._counts.items()},
        }

    def resetCounters(self) -> None:
        self._counts = {}

    async def _publishLoop(self) -> None:
        interval = self.intervalMs / 1000.0
        while True:
            for connectionId in self.connectionIds:
                await self.publishOne(connectionId)
            if self._published - self._lastLogged >= 1000:
                self._lastLogged = self._published
                self.log.info(f"Published {self._published} packets total")
            await asyncio.sleep(interval)

    async def _handleStatistics(self, subject: str, data: bytes) -> bytes:
        return orjson.dumps(self.statistics())

    async def _handleReset(self, subject: str, data: bytes) -> bytes:
        self.resetCounters()
        self.log.info("Counters reset by request")
        return orjson.dumps({'ok': True})


async def runMockSensor(uri: str, connections: int, intervalMs: int, duplicateEvery: int) -> None:
    transport = await openTransport(uri)
    sensor = MockSensor(transport, [f'mock-{i + 1}' for i in range(connections)],
                        intervalMs=intervalMs, duplicateEvery=duplicateEvery)
    try:
        await sensor.start()
        while True:
            await asyncio.sleep(1)
    finally:
        await sensor.stop()
        await transport.close()


def main():
    parser = argparse.ArgumentParser(description='Pulse mock sensor')
    parser.add_argument('--uri', default='nats://localhost:4222', help='Transport URI')
    parser.add_argument('--connections', type=int, default=2, help='Number of mock connections')
    parser.add_argument('--interval-ms', type=int, default=20, help='Publish interval per round')
    parser.add_argument('--duplicate-every', type=int, default=0, help='Re-send the previous packet every N packets')
    args = parser.parse_args()

    configureLogging()
    try:
        asyncio.run(runMockSensor(args.uri, args.connections, args.interval_ms, args.duplicate_every))
    except KeyboardInterrupt:
        pass


if __name__ == '__main__':
    main()
