"""
Pulse HTTP API

aiohttp surface over PacketDataService.

Architecture invariants:
- Read endpoints serialise visible snapshots only
- Command endpoints call the service's lifecycle commands; no state lives here
- A failed external reset is reported (502), never hidden

Property of Uncompromising Sensors LLC.
"""

from typing import Any, Dict, List, Optional, Sequence

from aiohttp import web

from pulse.core.analysis import calculatePacketStats, filterPacketsByType
from pulse.core.contract import PacketType
from pulse.core.events import PacketRecord
from pulse.core.packetData import PacketDataService, PacketDataError
from pulse.core.statsSource import StatsSourceError
from sdk.logging import getLogger


def _parseLimit(request: web.Request) -> Optional[int]:
    raw = request.query.get('limit')
    if raw is None:
        return None
    try:
        limit = int(raw)
    except ValueError:
        raise web.HTTPBadRequest(text=f"limit must be an integer, got '{raw}'")
    if limit < 0:
        raise web.HTTPBadRequest(text='limit must be >= 0')
    return limit


def _parseType(request: web.Request) -> Optional[PacketType]:
    raw = request.query.get('type')
    if raw is None:
        return None
    try:
        return PacketType(raw)
    except ValueError:
        raise web.HTTPBadRequest(text=f"Unknown packet type '{raw}'")


def _selectRecords(records: Sequence[PacketRecord], packetType: Optional[PacketType],
                   limit: Optional[int]) -> List[Dict[str, Any]]:
    if packetType is not None:
        records = filterPacketsByType(records, packetType)
    if limit is not None:
        records = records[-limit:] if limit else []
    return [r.toDict() for r in records]


class PacketApiServer:
    """HTTP read/command surface for one PacketDataService."""

    def __init__(self, service: PacketDataService, host: str = '127.0.0.1', port: int = 8085):
        self.service = service
        self.host = host
        self.port = port
        self.log = getLogger()

        self.app = web.Application()
        self._setupRoutes()

        self._runner = None
        self._site = None

    def _setupRoutes(self):
        self.app.router.add_get('/health', self.handleHealth)

        # Read surface
        self.app.router.add_get('/api/packets', self.handleListPackets)
        self.app.router.add_get('/api/packets/{connectionId}', self.handleGetPackets)
        self.app.router.add_get('/api/counts', self.handleCounts)
        self.app.router.add_get('/api/statistics', self.handleStatistics)
        self.app.router.add_get('/api/pipeline', self.handlePipeline)

        # Commands
        self.app.router.add_post('/api/connections/{connectionId}/clear', self.handleClearConnection)
        self.app.router.add_delete('/api/connections/{connectionId}', self.handleRemoveConnection)
        self.app.router.add_post('/api/clear', self.handleClearAll)
        self.app.router.add_post('/api/reset', self.handleReset)
        self.app.router.add_post('/api/statistics/refresh', self.handleRefreshStatistics)

    async def start(self):
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()

        self._site = web.TCPSite(self._runner, self.host, self.port)
        await self._site.start()

        self.log.info(f"[API] Listening on {self.host}:{self.port}")

    async def stop(self):
        if self._site:
            await self._site.stop()
            self._site = None
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

        self.log.info("[API] Stopped")

    # =========================================================================
    # Read handlers
    # =========================================================================

    async def handleHealth(self, request: web.Request) -> web.Response:
        body = {'status': 'ok', 'running': self.service.running}
        if self.service.transport is not None:
            body['transport'] = self.service.transport.status()
        return web.json_response(body)

    async def handleListPackets(self, request: web.Request) -> web.Response:
        """All visible history. ?type= filters, ?limit= keeps the newest N per connection."""
        packetType = _parseType(request)
        limit = _parseLimit(request)
        data = self.service.data
        return web.json_response({
            connectionId: _selectRecords(records, packetType, limit)
            for connectionId, records in data.items()
        })

    async def handleGetPackets(self, request: web.Request) -> web.Response:
        connectionId = request.match_info['connectionId']
        records = self.service.data.get(connectionId)
        if records is None:
            return web.json_response({'error': 'Connection not found'}, status=404)

        packetType = _parseType(request)
        limit = _parseLimit(request)
        return web.json_response({
            'connectionId': connectionId,
            'packets': _selectRecords(records, packetType, limit),
            'summary': calculatePacketStats(records),
        })

    async def handleCounts(self, request: web.Request) -> web.Response:
        return web.json_response({
            connectionId: snapshot.toDict()
            for connectionId, snapshot in self.service.packetCounts.items()
        })

    async def handleStatistics(self, request: web.Request) -> web.Response:
        return web.json_response(self.service.statistics.toDict())

    async def handlePipeline(self, request: web.Request) -> web.Response:
        return web.json_response(self.service.stats())

    # =========================================================================
    # Command handlers
    # =========================================================================

    async def handleClearConnection(self, request: web.Request) -> web.Response:
        connectionId = request.match_info['connectionId']
        self.service.clearData(connectionId)
        return web.json_response({'cleared': connectionId})

    async def handleRemoveConnection(self, request: web.Request) -> web.Response:
        connectionId = request.match_info['connectionId']
        self.service.removeConnectionData(connectionId)
        return web.json_response({'removed': connectionId})

    async def handleClearAll(self, request: web.Request) -> web.Response:
        self.service.clearAllData()
        return web.json_response({'cleared': 'all'})

    async def handleReset(self, request: web.Request) -> web.Response:
        try:
            await self.service.resetCounters()
        except StatsSourceError as e:
            self.log.error(f"[API] Counter reset failed: {e}")
            return web.json_response({'error': str(e)}, status=502)
        except PacketDataError as e:
            return web.json_response({'error': str(e)}, status=409)

        return web.json_response({'reset': True, 'statistics': self.service.statistics.toDict()})

    async def handleRefreshStatistics(self, request: web.Request) -> web.Response:
        try:
            refreshed = await self.service.fetchPacketStatistics()
        except PacketDataError as e:
            return web.json_response({'error': str(e)}, status=409)

        body = {'refreshed': refreshed, 'statistics': self.service.statistics.toDict()}
        if not refreshed and self.service.reconciler.lastError:
            body['error'] = self.service.reconciler.lastError
        return web.json_response(body)
