"""
TransportFactory: URI scheme -> adapter class.

    transport = createTransport('nats://localhost:4222')     # not yet connected
    transport = await openTransport('memory://pulse')        # created and connected

One adapter may serve several schemes (register(adapter, 'nats', 'tls')).

Property of Uncompromising Sensors LLC.
"""


# Imports
from typing import Dict, List, Optional, Type

# Local imports
from .transportBase import TransportBase


SCHEME_SEPARATOR = '://'


def schemeOf(uri: str) -> str:
    """Lower-cased scheme of a transport URI. Raises ValueError when it has none."""
    scheme, separator, _ = uri.partition(SCHEME_SEPARATOR)
    if not separator or not scheme:
        raise ValueError(f"Transport URI must look like '<scheme>://...' (e.g. 'nats://', 'memory://'): {uri}")
    return scheme.lower()


# Class
class TransportRegistry:
    """Adapter classes keyed by URI scheme."""


    def __init__(self):
        self._byScheme: Dict[str, Type[TransportBase]] = {}


    def register(self, scheme: str, adapterClass: Type[TransportBase], *aliases: str) -> None:
        if not isinstance(adapterClass, type) or not issubclass(adapterClass, TransportBase):
            raise TypeError(f"Adapter {adapterClass!r} must be a TransportBase subclass")
        for name in (scheme, *aliases):
            self._byScheme[name.lower()] = adapterClass


    def resolve(self, uri: str) -> Type[TransportBase]:
        scheme = schemeOf(uri)
        adapterClass = self._byScheme.get(scheme)
        if adapterClass is None:
            available = ', '.join(self.schemes()) or 'none'
            raise ValueError(f"No adapter registered for scheme '{scheme}'. Available schemes: {available}")
        return adapterClass


    def schemes(self) -> List[str]:
        return sorted(self._byScheme)


_defaultRegistry = TransportRegistry()


def registerAdapter(scheme: str, adapterClass: Type[TransportBase], *aliases: str) -> None:
    _defaultRegistry.register(scheme, adapterClass, *aliases)


def getDefaultRegistry() -> TransportRegistry:
    return _defaultRegistry


def createTransport(uri: str, registry: Optional[TransportRegistry] = None, **opts) -> TransportBase:
    """Instantiate (without connecting) the adapter registered for the URI's scheme."""
    adapterClass = (registry or _defaultRegistry).resolve(uri)
    try:
        return adapterClass(**opts)
    except TypeError as e:
        raise TypeError(f"Cannot build {adapterClass.__name__} with options {sorted(opts)}: {e}") from e


async def openTransport(uri: str, registry: Optional[TransportRegistry] = None, **connectOpts) -> TransportBase:
    """Create and connect a transport. Raises ConnectionError when connect fails."""
    transport = createTransport(uri, registry)
    try:
        await transport.connect(uri, **connectOpts)
    except ValueError:
        raise
    except Exception as e:
        raise ConnectionError(f"Could not connect {transport.transportType} transport to {uri}: {e}") from e
    return transport
