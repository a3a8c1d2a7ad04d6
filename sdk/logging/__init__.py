"""
SDK Logging - hierarchical structured logger with automatic name detection.

API:
    from sdk.logging import getLogger

    class DedupGuard:
        def __init__(self):
            self.log = getLogger()      # 'pulse.core.dedup.DedupGuard'

        def clear(self):
            self.log.info("Cleared", size=0)

    # Global configuration (once at app startup)
    from sdk.logging import configureLogging, configureFromDict
    configureLogging(logDir='./logs', level='DEBUG')
    configureFromDict(config['logging'])
"""

from .logger import getLogger, configureLogging, configureFromDict, StructuredFormatter

__all__ = [
    'getLogger',
    'configureLogging',
    'configureFromDict',
    'StructuredFormatter'
]
