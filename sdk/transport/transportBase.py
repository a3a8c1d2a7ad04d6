"""
TransportBase: Abstract base for bytes-in/bytes-out transports.
connect(uri, **opts), publish(subject, bytes), subscribe(subject, handler), close()
request(subject, bytes) / registerHandler(subject, handler) for request/reply.

Property of Uncompromising Sensors LLC.
"""


# Imports
import asyncio, uuid
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional, Dict, Any, Union

# Local imports
from sdk.logging import getLogger


MessageHandler = Callable[[str, bytes], Any]
RequestHandler = Callable[[str, bytes], Awaitable[bytes]]


class SubscriptionHandle:
    """
    Lightweight subscription handle for local lifecycle control.

    Read-only fields:
        - subject: The subscription subject
        - active: Whether this subscription is currently active
        - messagesSeen: Messages delivered to the handler through this handle"""


    def __init__(self, subject: str, unsubscribeCallback: Callable):
        self._subject = subject
        self._active = True
        self._messagesSeen = 0
        self._unsubscribeCallback = unsubscribeCallback

    @property
    def subject(self) -> str:
        return self._subject

    @property
    def active(self) -> bool:
        return self._active

    @property
    def messagesSeen(self) -> int:
        return self._messagesSeen

    def _incrementMessages(self):
        self._messagesSeen += 1

    async def unsubscribe(self):
        """Unsubscribe (idempotent)."""
        if self._active:
            self._active = False
            await self._unsubscribeCallback(self)


class TransportBase(ABC):
    """
    Abstract base class for transport adapters.

    Lifecycle States:
        - CLOSED: initial / shut down
        - READY: operational"""


    def __init__(self):
        self._logger = getLogger()
        self._state = 'CLOSED'
        self._endpoint = None
        self._connectedAt = None
        self._instanceId = str(uuid.uuid4())[:8]
        self._subscriptions: Dict[str, SubscriptionHandle] = {}


    # ===== Core Abstract Methods (Must Implement) =====
    @abstractmethod
    async def connect(self, uri: str, **opts) -> None:
        pass

    @abstractmethod
    async def publish(self, subject: str, payload: Union[bytes, memoryview], timeout: Optional[float] = None) -> None:
        pass

    @abstractmethod
    async def subscribe(self, subject: str, handler: MessageHandler,
                        timeout: Optional[float] = None) -> SubscriptionHandle:
        pass

    @abstractmethod
    async def close(self, timeout: Optional[float] = None) -> None:
        pass


    # ===== Core Properties =====
    @property
    @abstractmethod
    def transportType(self) -> str:
        pass

    @property
    def state(self) -> str:
        return self._state

    @property
    def isConnected(self) -> bool:
        return self._state == 'READY'


    # ===== Request/Reply (adapters override when supported) =====
    async def request(self, subject: str, payload: Union[bytes, memoryview],
                      timeout: Optional[float] = 1.0) -> bytes:
        raise NotImplementedError(f"{self.transportType} transport does not support request/reply")

    async def registerHandler(self, subject: str, handler: RequestHandler) -> SubscriptionHandle:
        raise NotImplementedError(f"{self.transportType} transport does not support request/reply")


    # ===== Optional Methods (Safe Base Defaults) =====
    async def drain(self, timeout: Optional[float] = None) -> None:
        pass

    def status(self) -> Dict[str, Any]:
        return {'state': self._state, 'endpoint': self._endpoint, 'sinceTs': self._connectedAt,
                'subs': len([h for h in self._subscriptions.values() if h.active])}


    # ===== Helper Methods =====
    def _log(self, message: str, level: str = 'INFO', **fields):
        fields.setdefault('transport', self.transportType)
        fields.setdefault('endpoint', self._endpoint)
        fields.setdefault('instanceId', self._instanceId)
        method = getattr(self._logger, level.lower(), self._logger.info)
        method(message, **fields)

    async def _dispatch(self, handle: SubscriptionHandle, handler: MessageHandler, subject: str, data: bytes):
        """Invoke a subscriber; handler errors are logged, never propagated to the transport."""
        handle._incrementMessages()
        try:
            result = handler(subject, data)
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            self._log(f'Handler error: {e}', level='ERROR', subject=subject)

    async def _unsubscribeHandle(self, handle: SubscriptionHandle):
        if self._subscriptions.get(handle.subject) is handle:
            del self._subscriptions[handle.subject]

    # ===== Context Manager Support =====
    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
