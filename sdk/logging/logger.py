"""
Hierarchical structured logger for Atrium processes.

Features:
- Logger name derived from the caller's module (and class, when called from a method)
- Structured fields: log.info("Started", port=8080) -> "Started [port=8080]"
- Optional rotating file output when a log directory is configured
- Project context (projectId/port) stamped on every record

Usage:
    from sdk.logging import getLogger

    class LocalFileServer:
        def __init__(self):
            self.log = getLogger()  # 'atrium.server.fileServer.LocalFileServer'

        async def start(self, port):
            self.log.info("[LocalFileServer] Started", port=port)
"""

import inspect, logging, logging.handlers, socket
from pathlib import Path
from typing import Optional
from datetime import datetime, timezone as tz

from .context import ProjectContextFilter


_hostname = socket.gethostname()
_configured = False
_fileHandlers = {}  # logPath -> handler
_config = {
    'logDir': None,
    'maxBytes': 10_000_000,
    'backupCount': 5,
    'console': True,
    'level': logging.INFO,
    'utc': False
}


def configureLogging(logDir: Optional[str] = None, maxBytes: int = 10_000_000,
                     backupCount: int = 5, console: bool = True,
                     level: str = 'INFO', utc: bool = False):
    """
    Configure global logging settings (call once at process startup).

    Args:
        logDir: Directory for rotating log files (None: console only)
        maxBytes: Maximum size per log file before rotation
        backupCount: Number of rotated files kept per app
        console: Also log to stderr
        level: Minimum log level name
        utc: Use UTC timestamps
    """
    global _configured

    _config.update({'logDir': logDir, 'maxBytes': maxBytes, 'backupCount': backupCount,
                    'console': console, 'level': getattr(logging, level.upper()), 'utc': utc})

    if logDir:
        Path(logDir).mkdir(parents=True, exist_ok=True)

    # Loggers handed out before this call keep their handlers; refresh levels
    for name in list(logging.root.manager.loggerDict):
        existing = logging.getLogger(name)
        if getattr(existing, '_configured_by_sdk', False):
            existing.setLevel(_config['level'])
            for handler in existing.handlers:
                handler.setLevel(_config['level'])

    _configured = True


def _autoDetectName() -> str:
    """Walk the stack to the first frame outside sdk.logging; returns 'module.Class' or 'module'"""
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
            if moduleName.startswith('sdk.logging') or moduleName.startswith('importlib'):
                continue

            if moduleName == '__main__':
                moduleName = 'atrium'

            className = None
            if 'self' in current.f_locals:
                className = current.f_locals['self'].__class__.__name__
            elif 'cls' in current.f_locals:
                className = current.f_locals['cls'].__name__

            return f"{moduleName}.{className}" if className else moduleName

        return 'unknown'
    finally:
        del frame


class StructuredFormatter(logging.Formatter):
    """Formatter that appends structured fields.
    Format: timestamp - hostname - logger.name - level - message [field1=value1, field2=value2]"""

    _excluded = {
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
                  if key not in self._excluded and not key.startswith('_') and value is not None]

        # Work on a copy of msg so other handlers see the original
        originalMsg = record.msg
        if fields:
            record.msg = f"{originalMsg} [{', '.join(fields)}]"
        try:
            return super().format(record)
        finally:
            record.msg = originalMsg


def getLogger(name: Optional[str] = None, separateFile: bool = False) -> logging.Logger:
    """
    Get or create a logger, naming it after the caller when no name is given.

    Args:
        name: Logger name (auto-detected from the call stack if None)
        separateFile: Write to '<name>.log' instead of the app-wide '<app>.log'

    Returns:
        logging.Logger whose debug/info/warning/error/critical accept structured **fields
    """
    if not _configured:
        configureLogging()

    if name is None:
        name = _autoDetectName()

    logger = logging.getLogger(name)
    logger.propagate = False

    if not logger.handlers and not hasattr(logger, '_configured_by_sdk'):
        logger.setLevel(_config['level'])
        contextFilter = ProjectContextFilter()

        if _config['logDir']:
            logFilename = f"{name}.log" if separateFile else f"{name.split('.')[0]}.log"
            logPath = str(Path(_config['logDir']) / logFilename)

            if logPath not in _fileHandlers:
                fileHandler = logging.handlers.RotatingFileHandler(
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
                fileHandler.addFilter(contextFilter)
                _fileHandlers[logPath] = fileHandler

            logger.addHandler(_fileHandlers[logPath])

        if _config['console']:
            consoleHandler = logging.StreamHandler()
            consoleHandler.setLevel(_config['level'])
            consoleHandler.setFormatter(StructuredFormatter(
                '%(name)s - %(levelname)s - %(message)s',
                utc=_config['utc']
            ))
            consoleHandler.addFilter(contextFilter)
            logger.addHandler(consoleHandler)

        logger._configured_by_sdk = True

    return _wrapLogger(logger)


def _wrapLogger(logger: logging.Logger) -> logging.Logger:
    """
    Let the level methods take structured fields as keyword arguments.

    log.info("Denied", path="/x") instead of log.info("Denied", extra={'path': '/x'})
    """
    if hasattr(logger, '_is_wrapped'):
        return logger

    def _structured(original):
        def method(msg, *args, **kwargs):
            excInfo = kwargs.pop('exc_info', False)
            if kwargs:
                original(msg, *args, extra=kwargs, exc_info=excInfo)
            else:
                original(msg, *args, exc_info=excInfo)
        return method

    logger.debug = _structured(logger.debug)
    logger.info = _structured(logger.info)
    logger.warning = _structured(logger.warning)
    logger.error = _structured(logger.error)
    logger.critical = _structured(logger.critical)
    logger._is_wrapped = True

    return logger
