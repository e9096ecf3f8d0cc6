"""
Project Server Manager - one LocalFileServer per open project.

Allocates ports from a fixed range, hands out bootstrap URLs, reports stats
and stops instances nobody has touched for a while.
"""

import asyncio
import secrets
import time
from pathlib import Path
from typing import Dict, List, Optional

from atrium.config import DEFAULT_HOST, InstanceConfig
from atrium.errors import BindError
from atrium.server.fileServer import LocalFileServer
from sdk.logging import getLogger

PORT_RANGE_START = 41000
PORT_RANGE_END = 41999
IDLE_TIMEOUT_SECONDS = 30 * 60
IDLE_CHECK_INTERVAL_SECONDS = 60


class ProjectServerManager:
    """
    Owns every project's file server.

    All mutations go through an asyncio.Lock so two concurrent getFileUrl
    calls for the same project never start two servers.
    """

    def __init__(self, portStart: int = PORT_RANGE_START, portEnd: int = PORT_RANGE_END,
                 idleTimeoutSeconds: float = IDLE_TIMEOUT_SECONDS, host: str = DEFAULT_HOST):
        if portStart <= 0 or portEnd < portStart:
            raise ValueError(f"Invalid port range {portStart}-{portEnd}")

        self.portStart = portStart
        self.portEnd = portEnd
        self.idleTimeoutSeconds = idleTimeoutSeconds
        self.host = host
        self.log = getLogger()

        # projectId -> LocalFileServer
        self._servers: Dict[str, LocalFileServer] = {}
        self._lock = asyncio.Lock()
        self._reaperTask: Optional[asyncio.Task] = None

    async def getFileUrl(self, projectId: str, projectPath: str, filePath: str = '/') -> str:
        """Bootstrap URL for filePath, starting the project's server if needed"""
        server = await self.ensureServer(projectId, projectPath)
        return server.getUrl(filePath)

    async def ensureServer(self, projectId: str, projectPath: str) -> LocalFileServer:
        rootPath = Path(projectPath).expanduser().resolve()

        async with self._lock:
            server = self._servers.get(projectId)
            if server is not None:
                if server.isRunning() and server.config.rootPath == rootPath:
                    return server
                # Project moved or server died: replace it
                self.log.info(f"[Manager] Replacing server for project {projectId}")
                await self._stopLocked(projectId)

            config = InstanceConfig(
                projectId=projectId,
                rootPath=rootPath,
                secret=secrets.token_hex(32),
                host=self.host,
            )
            server = LocalFileServer(config)
            await self._startOnFreePort(server)
            self._servers[projectId] = server
            return server

    async def _startOnFreePort(self, server: LocalFileServer):
        used = {s.getPort() for s in self._servers.values() if s.isRunning()}
        for port in range(self.portStart, self.portEnd + 1):
            if port in used:
                continue
            try:
                await server.start(port)
                return
            except BindError:
                continue
        raise BindError(self.portEnd, f"no free port in {self.portStart}-{self.portEnd}")

    async def stopServer(self, projectId: str) -> bool:
        """Stop and forget a project's server; False if there was none"""
        async with self._lock:
            return await self._stopLocked(projectId)

    async def _stopLocked(self, projectId: str) -> bool:
        server = self._servers.pop(projectId, None)
        if server is None:
            return False
        await server.stop()
        return True

    async def stopAllServers(self):
        await self.stopIdleReaper()
        async with self._lock:
            for projectId in list(self._servers):
                await self._stopLocked(projectId)
        self.log.info("[Manager] All servers stopped")

    def getServer(self, projectId: str) -> Optional[LocalFileServer]:
        return self._servers.get(projectId)

    def getStats(self) -> dict:
        now = time.time()
        servers = []
        for projectId, server in self._servers.items():
            servers.append({
                'projectId': projectId,
                'port': server.getPort(),
                'rootPath': str(server.config.rootPath),
                'lastAccessed': server.getLastAccessed(),
                'idleSeconds': max(0.0, now - server.getLastAccessed()),
            })
        return {'activeServers': len(servers), 'servers': servers}

    # =========================================================================
    # Idle reaping
    # =========================================================================

    async def reapIdle(self, now: Optional[float] = None) -> List[str]:
        """
        Stop servers idle longer than idleTimeoutSeconds and purge expired
        sessions of the rest. Returns the ids of the stopped projects.
        """
        now = time.time() if now is None else now
        reaped = []
        async with self._lock:
            for projectId, server in list(self._servers.items()):
                if now - server.getLastAccessed() > self.idleTimeoutSeconds:
                    await self._stopLocked(projectId)
                    reaped.append(projectId)
                elif server.sessions is not None:
                    server.sessions.purgeExpired()
        for projectId in reaped:
            self.log.info(f"[Manager] Stopped idle server for project {projectId}")
        return reaped

    def startIdleReaper(self, interval: float = IDLE_CHECK_INTERVAL_SECONDS):
        if self._reaperTask is not None and not self._reaperTask.done():
            return

        async def periodicReap():
            while True:
                await asyncio.sleep(interval)
                try:
                    await self.reapIdle()
                except Exception as e:
                    self.log.warning(f"[Manager] Idle reap error: {e}")

        self._reaperTask = asyncio.create_task(periodicReap())

    async def stopIdleReaper(self):
        task = self._reaperTask
        self._reaperTask = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
