"""
In-process Transport Adapter

API: connect, publish, subscribe, request, registerHandler, close
URI: memory://<busName>   (every transport connected to the same busName shares one bus)

Design:
    - Delivery is in-order and awaited inside publish(), so one producer's
      messages reach each subscriber in send order
    - Request/reply resolves against the single handler registered on the bus
    - Used for local runs (producer and consumer in one process) and tests

Property of Uncompromising Sensors LLC.
"""


# Imports
import asyncio, time
from typing import Dict, List, Optional, Tuple, Union
from urllib.parse import urlparse

import orjson

# Local imports
from .transportBase import TransportBase, SubscriptionHandle, MessageHandler, RequestHandler


class _MemoryBus:
    """Subject -> subscribers / request handler for one bus name."""

    def __init__(self, name: str):
        self.name = name
        self.subscribers: Dict[str, List[Tuple['MemoryTransport', SubscriptionHandle, MessageHandler]]] = {}
        self.handlers: Dict[str, Tuple['MemoryTransport', RequestHandler]] = {}


_buses: Dict[str, _MemoryBus] = {}


def _getBus(name: str) -> _MemoryBus:
    if name not in _buses:
        _buses[name] = _MemoryBus(name)
    return _buses[name]


def resetBus(name: str) -> None:
    """Drop every subscription and handler on a bus (test isolation)."""
    _buses.pop(name, None)


class MemoryTransport(TransportBase):
    """In-process pub/sub and request/reply."""


    def __init__(self):
        super().__init__()
        self._bus: Optional[_MemoryBus] = None
        self._publishCounter = 0


    @property
    def transportType(self) -> str:
        return 'memory'


    async def connect(self, uri: str, **opts) -> None:

        if self._state == 'READY':
            raise RuntimeError('MemoryTransport already connected')
        if opts:
            raise ValueError(f"Unknown options for MemoryTransport: {set(opts.keys())}")

        parsed = urlparse(uri)
        if parsed.scheme.lower() != 'memory':
            raise ValueError(f"Unsupported memory scheme '{parsed.scheme}'. Supported: memory")

        busName = (parsed.netloc + parsed.path).strip('/') or 'default'
        self._bus = _getBus(busName)
        self._endpoint = f'memory://{busName}'
        self._connectedAt = time.time()
        self._state = 'READY'

        self._log('MemoryTransport connected', level='DEBUG', event='connect')


    async def publish(self, subject: str, payload: Union[bytes, memoryview], timeout: Optional[float] = None) -> None:

        self._requireReady()
        data = bytes(payload)
        self._publishCounter += 1

        # Snapshot: a handler may unsubscribe while we iterate
        for _, handle, handler in list(self._bus.subscribers.get(subject, [])):
            if handle.active:
                await self._dispatch(handle, handler, subject, data)


    async def subscribe(self, subject: str, handler: MessageHandler,
                        timeout: Optional[float] = None) -> SubscriptionHandle:

        self._requireReady()
        if not callable(handler):
            raise ValueError(f"Handler must be callable, got {type(handler)}")

        handle = SubscriptionHandle(subject, self._unsubscribeSubject)
        self._subscriptions[subject] = handle
        self._bus.subscribers.setdefault(subject, []).append((self, handle, handler))

        self._log(f'Subscribed: {subject}', level='DEBUG', event='subscribe')
        return handle


    async def request(self, subject: str, payload: Union[bytes, memoryview],
                      timeout: Optional[float] = 1.0) -> bytes:

        self._requireReady()
        entry = self._bus.handlers.get(subject)
        if entry is None:
            raise RuntimeError(f"No responders for '{subject}' on {self._endpoint}")

        _, handler = entry
        call = self._serve(handler, subject, bytes(payload))
        if timeout:
            return await asyncio.wait_for(call, timeout=timeout)
        return await call


    async def registerHandler(self, subject: str, handler: RequestHandler) -> SubscriptionHandle:

        self._requireReady()
        if subject in self._bus.handlers:
            raise RuntimeError(f"Handler already registered for '{subject}' on {self._endpoint}")

        self._bus.handlers[subject] = (self, handler)
        handle = SubscriptionHandle(subject, self._unregisterSubject)
        self._subscriptions[subject] = handle

        self._log(f'Registered handler: {subject}', level='DEBUG', event='registerHandler')
        return handle


    async def close(self, timeout: Optional[float] = None) -> None:

        if self._state == 'CLOSED':
            return
        self._state = 'CLOSED'

        for subject in list(self._bus.subscribers.keys()):
            self._bus.subscribers[subject] = [s for s in self._bus.subscribers[subject] if s[0] is not self]
        for subject, (owner, _) in list(self._bus.handlers.items()):
            if owner is self:
                del self._bus.handlers[subject]
        self._subscriptions.clear()

        self._log('MemoryTransport closed', level='DEBUG', event='close')


    # ===== Internal Methods =====
    def _requireReady(self):
        if self._state != 'READY':
            raise RuntimeError('MemoryTransport not connected')


    async def _serve(self, handler: RequestHandler, subject: str, data: bytes) -> bytes:
        try:
            return await handler(subject, data)
        except Exception as e:
            self._log(f'Request handler error: {e}', level='ERROR', subject=subject)
            return orjson.dumps({'error': str(e)})


    async def _unsubscribeSubject(self, handle: SubscriptionHandle):
        subs = self._bus.subscribers.get(handle.subject, [])
        self._bus.subscribers[handle.subject] = [s for s in subs if s[1] is not handle]
        await self._unsubscribeHandle(handle)


    async def _unregisterSubject(self, handle: SubscriptionHandle):
        entry = self._bus.handlers.get(handle.subject)
        if entry is not None and entry[0] is self:
            del self._bus.handlers[handle.subject]
        await self._unsubscribeHandle(handle)
