"""
Package init for pulse.server
"""

from pulse.server.api import PacketApiServer

__all__ = ['PacketApiServer']
