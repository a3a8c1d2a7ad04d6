"""
Pulse main entry point.

Runs the packet data service (and its HTTP API) against the configured
transport until interrupted.

Usage:
    python -m pulse.main [--config path/to/config.json] [--mock]

--mock also runs an in-process MockSensor on the same transport, so the
pipeline has traffic and an authoritative counter source without hardware.

Property of Uncompromising Sensors LLC.
"""

import asyncio
import argparse
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from pulse.core.config import loadConfig, ConfigError
from pulse.core.packetData import PacketDataService
from pulse.server.api import PacketApiServer
from pulse.tools.mockSensor import MockSensor
from sdk.logging import getLogger, configureFromDict
from sdk.transport import openTransport


DEFAULT_CONFIG_PATH = Path(__file__).parent / 'config.json'


async def runPulse(config: dict, mock: bool = False):
    log = getLogger()

    transportUri = config['transport']['uri']
    transport = await openTransport(transportUri)

    service = PacketDataService.fromConfig(config, transport)
    apiConfig = config['api']
    api = PacketApiServer(service, apiConfig['host'], apiConfig['port']) if apiConfig['enabled'] else None

    sensor = None
    if mock:
        subjects = config['subjects']
        sensor = MockSensor(transport, packetSubject=subjects['packets'],
                            statisticsSubject=subjects['statistics'], resetSubject=subjects['reset'])

    try:
        if sensor:
            await sensor.start()
        await service.start()
        if api:
            await api.start()

        log.info("[Main] Pulse running (Ctrl+C to stop)", transport=transportUri, mock=mock)

        # Keep running
        while True:
            await asyncio.sleep(1)

    except asyncio.CancelledError:
        log.info("[Main] Shutdown signal received")
    except Exception as e:
        log.error(f"[Main] Fatal error: {e}", exc_info=True)
        raise
    finally:
        if api:
            await api.stop()
        await service.stop()
        if sensor:
            await sensor.stop()
        await transport.drain(timeout=2.0)
        transportStatus = transport.status()
        await transport.close()
        log.info("[Main] Pulse stopped", stats=service.stats(), transport=transportStatus)


def main():
    parser = argparse.ArgumentParser(description='Pulse - packet telemetry pipeline')
    parser.add_argument('--config', default=str(DEFAULT_CONFIG_PATH), help='Path to config file')
    parser.add_argument('--mock', action='store_true', help='Run an in-process mock sensor')
    args = parser.parse_args()

    try:
        config = loadConfig(args.config)
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        sys.exit(1)

    configureFromDict(config['logging'])
    log = getLogger()
    log.info("=" * 60)
    log.info("Pulse - packet telemetry pipeline")
    log.info("=" * 60)
    log.info(f"Config: {args.config}")

    try:
        asyncio.run(runPulse(config, mock=args.mock))
    except KeyboardInterrupt:
        log.info("[Main] Interrupted")


if __name__ == '__main__':
    main()
