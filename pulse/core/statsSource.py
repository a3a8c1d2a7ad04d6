"""
Authoritative Statistics Source

Boundary to the external source of record for received/sent counters.

    getStatistics()  -> AuthoritativeCounts
    resetCounters()  -> None

Both raise StatsSourceError on any failure (transport error, timeout,
{"error": ...} reply, undecodable reply). Callers decide whether to swallow
(reconciler) or propagate (resetCounters).
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict

import orjson

from sdk.logging import getLogger

from .contract import STATISTICS_SUBJECT, RESET_SUBJECT, REQUEST_TIMEOUT_SECONDS
from .statistics import AuthoritativeCounts


class StatsSourceError(Exception):
    """Authoritative statistics query or reset failed"""
    pass


class StatisticsSource(ABC):

    @abstractmethod
    async def getStatistics(self) -> AuthoritativeCounts:
        ...

    @abstractmethod
    async def resetCounters(self) -> None:
        ...


class TransportStatisticsSource(StatisticsSource):
    """Statistics query and reset over transport request/reply."""

    def __init__(self, transport, statisticsSubject: str = STATISTICS_SUBJECT,
                 resetSubject: str = RESET_SUBJECT, timeout: float = REQUEST_TIMEOUT_SECONDS):
        self.transport = transport
        self.statisticsSubject = statisticsSubject
        self.resetSubject = resetSubject
        self.timeout = timeout
        self.log = getLogger()

    async def getStatistics(self) -> AuthoritativeCounts:
        reply = await self._call(self.statisticsSubject)
        try:
            return AuthoritativeCounts.fromResponse(reply)
        except ValueError as e:
            raise StatsSourceError(f"Malformed statistics reply: {e}") from e

    async def resetCounters(self) -> None:
        await self._call(self.resetSubject)
        self.log.info("Authoritative counters reset", subject=self.resetSubject)

    async def _call(self, subject: str) -> Dict[str, Any]:
        try:
            raw = await self.transport.request(subject, b'{}', timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise StatsSourceError(f"Request to '{subject}' timed out after {self.timeout}s") from e
        except Exception as e:
            raise StatsSourceError(f"Request to '{subject}' failed: {e}") from e

        try:
            reply = orjson.loads(raw) if raw else {}
        except orjson.JSONDecodeError as e:
            raise StatsSourceError(f"Undecodable reply from '{subject}': {e}") from e

        if isinstance(reply, dict) and reply.get('error'):
            raise StatsSourceError(f"'{subject}' replied with error: {reply['error']}")
        return reply
