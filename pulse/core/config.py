"""
Pulse Configuration

JSON config (read with orjson) deep-merged over DEFAULT_CONFIG, then validated.
Missing sections or keys fall back to defaults; present values must be valid.

Sections:
    transport   uri of the sdk.transport adapter
    subjects    packets / statistics / reset subjects
    pipeline    capacities, dedup policy, identity fields, cadences, timeout
    api         aiohttp surface
    logging     passed to sdk.logging.configureFromDict
"""

import copy
from pathlib import Path
from typing import Any, Dict, Optional, Union

import orjson

from sdk.logging import getLogger

from .contract import (
    DedupPolicy, DEFAULT_IDENTITY_FIELDS, PACKET_SUBJECT, STATISTICS_SUBJECT,
    RESET_SUBJECT, MAX_RECORDS_PER_CONNECTION, DEDUP_CAPACITY,
    FLUSH_INTERVAL_MS, STATS_INTERVAL_MS, REQUEST_TIMEOUT_SECONDS
)


class ConfigError(Exception):
    """Configuration file unreadable or invalid"""
    pass


DEFAULT_CONFIG: Dict[str, Any] = {
    'transport': {
        'uri': 'memory://pulse',
    },
    'subjects': {
        'packets': PACKET_SUBJECT,
        'statistics': STATISTICS_SUBJECT,
        'reset': RESET_SUBJECT,
    },
    'pipeline': {
        'maxRecordsPerConnection': MAX_RECORDS_PER_CONNECTION,
        'dedupCapacity': DEDUP_CAPACITY,
        'dedupPolicy': DedupPolicy.CLEAR.value,
        'identityFields': list(DEFAULT_IDENTITY_FIELDS),
        'flushIntervalMs': FLUSH_INTERVAL_MS,
        'statsIntervalMs': STATS_INTERVAL_MS,
        'requestTimeoutSeconds': REQUEST_TIMEOUT_SECONDS,
    },
    'api': {
        'enabled': True,
        'host': '127.0.0.1',
        'port': 8085,
    },
    'logging': {
        'logDir': None,
        'level': 'INFO',
        'console': True,
        'maxBytes': 10_000_000,
        'backupCount': 5,
        'utc': False,
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _requirePositiveInt(section: Dict[str, Any], key: str, path: str) -> None:
    value = section.get(key)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"{path}.{key} must be a positive integer, got {value!r}")


def validateConfig(config: Dict[str, Any]) -> None:
    """Raises ConfigError on the first invalid value."""
    if not isinstance(config, dict):
        raise ConfigError('Config is not a JSON object')

    for name in DEFAULT_CONFIG:
        if not isinstance(config.get(name), dict):
            raise ConfigError(f"Section '{name}' must be an object")

    uri = config['transport'].get('uri')
    if not isinstance(uri, str) or '://' not in uri:
        raise ConfigError(f"transport.uri must look like 'scheme://...', got {uri!r}")

    for key in ('packets', 'statistics', 'reset'):
        subject = config['subjects'].get(key)
        if not isinstance(subject, str) or not subject:
            raise ConfigError(f"subjects.{key} must be a non-empty string")

    pipeline = config['pipeline']
    for key in ('maxRecordsPerConnection', 'dedupCapacity', 'flushIntervalMs', 'statsIntervalMs'):
        _requirePositiveInt(pipeline, key, 'pipeline')

    policy = pipeline.get('dedupPolicy')
    if policy not in {p.value for p in DedupPolicy}:
        raise ConfigError(f"pipeline.dedupPolicy must be one of {[p.value for p in DedupPolicy]}, got {policy!r}")

    fields = pipeline.get('identityFields')
    if not isinstance(fields, list) or not fields or not all(isinstance(f, str) and f for f in fields):
        raise ConfigError('pipeline.identityFields must be a non-empty list of strings')

    timeout = pipeline.get('requestTimeoutSeconds')
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ConfigError(f"pipeline.requestTimeoutSeconds must be > 0, got {timeout!r}")

    api = config['api']
    port = api.get('port')
    if isinstance(port, bool) or not isinstance(port, int) or not 0 <= port <= 65535:
        raise ConfigError(f"api.port must be 0-65535, got {port!r}")

    level = config['logging'].get('level')
    if not isinstance(level, str) or level.upper() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
        raise ConfigError(f"logging.level is not a log level: {level!r}")


def buildConfig(overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Defaults merged with overrides, validated."""
    config = _merge(DEFAULT_CONFIG, overrides or {})
    validateConfig(config)
    return config


def loadConfig(configPath: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Load a config file over the defaults. No path means defaults only.

    Raises:
        ConfigError: File unreadable, not JSON, or invalid after merge
    """
    if configPath is None:
        return buildConfig()

    path = Path(configPath)
    try:
        with path.open('rb') as f:
            raw = orjson.loads(f.read())
    except OSError as e:
        raise ConfigError(f"Cannot read config '{path}': {e}") from e
    except orjson.JSONDecodeError as e:
        raise ConfigError(f"Config '{path}' is not valid JSON: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"Config '{path}' is not a JSON object")

    config = buildConfig(raw)
    getLogger().debug('Loaded config', configPath=str(path), transport=config['transport']['uri'])
    return config
