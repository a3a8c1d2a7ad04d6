"""
Pulse - packet telemetry ingestion and statistics service.

Consumes the "serial_packet" event stream, classifies and dedupes packets,
keeps bounded per-connection history and publishes read-only snapshots of
locally derived and authoritative packet statistics.
"""

__version__ = "1.0.0"
