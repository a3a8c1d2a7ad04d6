"""
Hierarchical structured logger with automatic name detection.

Features:
- Logger name derived from the caller's module path (and class, when called
  from a method); computed once per getLogger() call
- One rotating log file per top-level application ('pulse.log', 'transport.log')
- Optional console handler
- Structured fields passed as keyword arguments

Usage:
    from sdk.logging import getLogger

    class FlushScheduler:
        def __init__(self):
            self.log = getLogger()      # 'pulse.core.scheduler.FlushScheduler'

        def tick(self):
            self.log.debug("Flushed", connections=3)

    log = getLogger()                   # module-level: 'pulse.main'

Property of Uncompromising Sensors LLC.
"""

# Imports
import inspect, logging, logging.handlers, os, socket
from pathlib import Path
from typing import Optional
from datetime import datetime, timezone as tz


# Global state
_hostname = socket.gethostname()
_configured = False
_fileHandlers = {}  # logPath -> handler (shared by every logger of one app)
_config = {
    'logDir': None,
    'maxBytes': 10_000_000,
    'backupCount': 5,
    'maxTotalMb': 2048,
    'console': True,
    'level': logging.INFO,
    'utc': False
}


def configureLogging(logDir: Optional[str] = None, maxBytes: int = 10_000_000,
                     backupCount: int = 5, maxTotalMb: int = 2048,
                     console: bool = True, level: str = 'INFO', utc: bool = False):
    """
    Configure global logging settings (call once at app startup).

    Loggers created before this call keep their handlers; call it before the
    first getLogger() to take effect everywhere.

    Args:
        logDir: Directory for log files (default: ./logs)
        maxBytes: Maximum size per log file before rotation
        backupCount: Rotated files kept per app
        maxTotalMb: Total disk budget across the log directory, enforced on rotation
        console: Also log to console
        level: Minimum log level name
        utc: Use UTC timestamps instead of local time
    """
    global _configured

    if logDir is None:
        logDir = os.path.abspath(os.path.join(os.getcwd(), "logs"))

    levelValue = getattr(logging, str(level).upper(), None)
    if not isinstance(levelValue, int):
        raise ValueError(f"Unknown log level '{level}'")

    _config.update({'logDir': logDir, 'maxBytes': maxBytes, 'backupCount': backupCount,
                    'maxTotalMb': maxTotalMb, 'console': console, 'level': levelValue, 'utc': utc})

    Path(logDir).mkdir(parents=True, exist_ok=True)
    _configured = True


def configureFromDict(section: Optional[dict]):
    """Configure logging from the 'logging' section of an app config."""
    section = section or {}
    configureLogging(logDir=section.get('logDir'),
                     maxBytes=section.get('maxBytes', 10_000_000),
                     backupCount=section.get('backupCount', 5),
                     maxTotalMb=section.get('maxTotalMb', 2048),
                     console=section.get('console', True),
                     level=section.get('level', 'INFO'),
                     utc=section.get('utc', False))


def _autoDetectName() -> str:
    """Walk the call stack to the first frame outside sdk.logging. Returns e.g. 'pulse.core.dedup.DedupGuard'."""

    frame = inspect.currentframe()
    try:
        current = frame
        while current is not None:
            current = current.f_back
            if current is None:
                break

            module = inspect.getmodule(current)
            if module is None:
                continue

            moduleName = module.__name__
            if moduleName.startswith('sdk.logging'):
                continue
            if moduleName.startswith('importlib') or moduleName == '__main__':
                continue

            # 'sdk' is only a package wrapper: sdk.transport.natsTransport -> transport.natsTransport
            parts = moduleName.split('.')
            if parts and parts[0] == 'sdk':
                parts = parts[1:]

            className = None
            if current.f_locals:
                if 'self' in current.f_locals:
                    className = current.f_locals['self'].__class__.__name__
                elif 'cls' in current.f_locals and isinstance(current.f_locals['cls'], type):
                    className = current.f_locals['cls'].__name__

            hierarchy = '.'.join(parts) if parts else 'unknown'
            if className:
                hierarchy = f"{hierarchy}.{className}"
            return hierarchy

        return 'unknown'
    finally:
        del frame


class StructuredFormatter(logging.Formatter):
    """Formatter that appends structured fields.
    Format: timestamp - hostname - logger.name - level - message [field1=value1, field2=value2]"""

    # Attributes every LogRecord carries; anything else came in through extra=
    _reserved = {
        'name', 'msg', 'args', 'created', 'filename', 'funcName',
        'levelname', 'levelno', 'lineno', 'module', 'msecs',
        'message', 'pathname', 'process', 'processName',
        'relativeCreated', 'thread', 'threadName', 'exc_info',
        'exc_text', 'stack_info', 'hostname', 'asctime', 'taskName'
    }

    def __init__(self, fmt=None, datefmt=None, utc=False):
        super().__init__(fmt, datefmt)
        self.utc = utc

    def formatTime(self, record, datefmt=None):
        if self.utc:
            ct = datetime.fromtimestamp(record.created, tz=tz.utc)
        else:
            ct = datetime.fromtimestamp(record.created)

        if datefmt:
            return ct.strftime(datefmt)
        return f"{ct.strftime('%Y-%m-%d %H:%M:%S')},{int(record.msecs):03d}"

    def format(self, record):
        record.hostname = _hostname

        fields = [f"{key}={value}" for key, value in record.__dict__.items()
                  if key not in self._reserved and not key.startswith('_')]

        # Restore msg afterwards so other handlers see the original
        originalMsg = record.msg
        if fields:
            record.msg = f"{originalMsg} [{', '.join(fields)}]"
        try:
            return super().format(record)
        finally:
            record.msg = originalMsg


class _DiskBudgetHandler(logging.handlers.RotatingFileHandler):
    """Rotating handler that enforces the global disk budget after each rollover."""

    def doRollover(self):
        super().doRollover()
        _enforceDiskLimit()


def getLogger(name: Optional[str] = None, separateFile: bool = False) -> logging.Logger:
    """
    Get or create a logger with automatic hierarchy detection.

    Stack inspection happens once per call; keep the returned logger on the
    instance or module rather than calling getLogger() on hot paths.

    Args:
        name: Logger name (auto-detected from call stack if None)
        separateFile: Write to '<name>.log' instead of the app-wide file

    Returns:
        logging.Logger whose debug/info/warning/error/critical accept structured **fields
    """
    if not _configured:
        configureLogging()

    if name is None:
        name = _autoDetectName()

    logger = logging.getLogger(name)
    logger.propagate = False

    if not logger.handlers and not hasattr(logger, '_configuredBySdk'):
        logger.setLevel(_config['level'])

        logFilename = f"{name}.log" if separateFile else f"{name.split('.')[0]}.log"
        logPath = str(Path(_config['logDir']) / logFilename)

        if logPath not in _fileHandlers:
            fileHandler = _DiskBudgetHandler(
                logPath,
                maxBytes=_config['maxBytes'],
                backupCount=_config['backupCount'],
                encoding='utf-8'
            )
            fileHandler.setLevel(_config['level'])
            fileHandler.setFormatter(StructuredFormatter(
                '%(asctime)s - %(hostname)s - %(name)s - %(levelname)s - %(message)s',
                utc=_config['utc']
            ))
            _fileHandlers[logPath] = fileHandler

        logger.addHandler(_fileHandlers[logPath])

        if _config['console']:
            consoleHandler = logging.StreamHandler()
            consoleHandler.setLevel(_config['level'])
            consoleHandler.setFormatter(StructuredFormatter(
                '%(name)s - %(levelname)s - %(message)s',
                utc=_config['utc']
            ))
            logger.addHandler(consoleHandler)

        logger._configuredBySdk = True

    return _wrapLogger(logger)


def _wrapLogger(logger: logging.Logger) -> logging.Logger:
    """
    Replace the level methods so structured fields can be passed as kwargs.

    log.warning("Poll failed", error=str(e))  instead of  log.warning("Poll failed", extra={'error': ...})
    exc_info and stack_info keep their stdlib meaning.
    """
    if getattr(logger, '_isWrapped', False):
        return logger

    def _make(original):
        def method(msg, *args, **kwargs):
            excInfo = kwargs.pop('exc_info', False)
            stackInfo = kwargs.pop('stack_info', False)
            if kwargs:
                original(msg, *args, extra=kwargs, exc_info=excInfo, stack_info=stackInfo)
            else:
                original(msg, *args, exc_info=excInfo, stack_info=stackInfo)
        method.__name__ = original.__name__
        return method

    logger.debug = _make(logger.debug)
    logger.info = _make(logger.info)
    logger.warning = _make(logger.warning)
    logger.error = _make(logger.error)
    logger.critical = _make(logger.critical)
    logger._isWrapped = True

    return logger


def _enforceDiskLimit():
    """Remove the oldest rotated files while the log directory exceeds maxTotalMb."""
    logDir = Path(_config['logDir'])
    maxBytes = _config['maxTotalMb'] * 1024 * 1024

    files = []
    totalSize = 0
    try:
        for filepath in logDir.rglob('*.log.*'):
            if filepath.is_file():
                stat = filepath.stat()
                files.append((stat.st_mtime, stat.st_size, filepath))
                totalSize += stat.st_size
        for filepath in logDir.rglob('*.log'):
            if filepath.is_file():
                totalSize += filepath.stat().st_size
    except OSError:
        return

    if totalSize <= maxBytes:
        return

    # Only rotated backups are candidates; live files stay open
    files.sort(key=lambda x: x[0])
    for _, size, filepath in files:
        if totalSize <= maxBytes:
            break
        try:
            filepath.unlink()
            totalSize -= size
        except OSError:
            continue
