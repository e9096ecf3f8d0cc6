"""
SDK Logging - hierarchical structured logger.

API:
    from sdk.logging import getLogger

    class LocalFileServer:
        def __init__(self):
            self.log = getLogger()  # Auto: 'atrium.server.fileServer.LocalFileServer'

        async def start(self, port):
            self.log.info("[LocalFileServer] Started", port=port)

    # Global configuration (optional, once at process startup)
    from sdk.logging import configureLogging
    configureLogging(logDir='./logs', level='DEBUG')
"""

from .logger import getLogger, configureLogging
from .context import (
    setProjectContext,
    getProjectContext,
    clearProjectContext,
    ProjectContextFilter
)

__all__ = [
    'getLogger',
    'configureLogging',
    'setProjectContext',
    'getProjectContext',
    'clearProjectContext',
    'ProjectContextFilter'
]
