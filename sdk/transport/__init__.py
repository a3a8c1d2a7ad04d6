"""sdk.transport - bytes-in/bytes-out transport layer.

Public API:
    - TransportBase: Abstract base class for transport adapters
    - SubscriptionHandle: Lightweight subscription handle
    - createTransport: Factory function for creating transports from URIs
    - openTransport: Create and connect in one call
    - registerAdapter: Register custom transport adapters
    - NatsTransport: NATS transport (nats-py), schemes nats:// and tls://
    - MemoryTransport: In-process bus for local runs and tests

Usage:
    from sdk.transport import openTransport

    transport = await openTransport('nats://localhost:4222')

    handle = await transport.subscribe('serial_packet', handler)
    reply = await transport.request('packet_statistics.get', b'{}')

    await handle.unsubscribe()
    await transport.close()

Property of Uncompromising Sensors LLC.
"""

from .transportBase import TransportBase, SubscriptionHandle
from .transportFactory import (
    createTransport,
    openTransport,
    registerAdapter,
    schemeOf,
    TransportRegistry,
    getDefaultRegistry
)
from .natsTransport import NatsTransport
from .memoryTransport import MemoryTransport, resetBus

registerAdapter('nats', NatsTransport, 'tls')
registerAdapter('memory', MemoryTransport)

__all__ = [
    'TransportBase',
    'SubscriptionHandle',
    'createTransport',
    'openTransport',
    'schemeOf',
    'registerAdapter',
    'TransportRegistry',
    'getDefaultRegistry',
    'NatsTransport',
    'MemoryTransport',
    'resetBus'
]
