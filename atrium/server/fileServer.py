"""
Local HTTP file server for a single project.

One instance per open project, bound to one localhost port. Request pipeline:

    security + CORS headers (every response, set in on_response_prepare)
    -> corsMiddleware   (OPTIONS preflight -> 204, before any trust check)
    -> errorMiddleware  (HttpError -> {"error": ...} JSON)
    -> trustMiddleware  (session / token / same-instance referer, else 403)
    -> ContentRewriter  (GET *.html, link-interception script injected)
    -> StaticAssetResponder (file bytes, else 404)

X-Frame-Options is intentionally never sent: the host shows instance pages in
a cross-origin iframe. Access is controlled by the trust chain instead.

Lifecycle: start(port) binds or raises BindError without changing state;
stop() is idempotent. Every start gets a fresh aiohttp app and session
store, so restarting an instance logs every browser out.
"""

import socket
import time
from typing import Any, Dict, Optional
from urllib.parse import quote

import orjson
from aiohttp import web

from atrium.config import InstanceConfig
from atrium.errors import AuthDenied, BindError, HttpError, IOFailure
from atrium.server.requestContext import RequestContext
from atrium.server.rewriter import ContentRewriter
from atrium.server.secretComparator import SecretComparator
from atrium.server.sessionStore import COOKIE_NAME, SessionStore
from atrium.server.staticFiles import StaticAssetResponder
from atrium.server.trust import TrustDecisionEngine
from sdk.logging import getLogger, setProjectContext

SECURITY_HEADERS = {
    'Cache-Control': 'no-cache, no-store, must-revalidate',
    'Pragma': 'no-cache',
    'Expires': '0',
    'X-Content-Type-Options': 'nosniff',
    'X-XSS-Protection': '1; mode=block',
}

CORS_ALLOW_METHODS = 'GET,HEAD,PUT,PATCH,POST,DELETE'

VERDICT_KEY = 'atrium.verdict'


def _dumps(obj: Any) -> str:
    return orjson.dumps(obj).decode('utf-8')


def errorResponse(error: HttpError) -> web.Response:
    return web.json_response({'error': error.message}, status=error.status, dumps=_dumps)


class LocalFileServer:
    """
    Serves one project directory on localhost behind the trust chain.

    The host creates it with an InstanceConfig, calls start(port), hands out
    getUrl(...) links, polls getLastAccessed() for idle decisions and finally
    calls stop().
    """

    def __init__(self, config: InstanceConfig):
        self.config = config
        self.log = getLogger()

        self.comparator = SecretComparator(config.secret)
        self.staticResponder = StaticAssetResponder(config.rootPath)
        self.rewriter = ContentRewriter(self.staticResponder)

        self.port = 0
        self.lastAccessed = time.time()
        self.sessions: Optional[SessionStore] = None
        self.trust: Optional[TrustDecisionEngine] = None
        self.app: Optional[web.Application] = None

        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.SockSite] = None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self, port: int):
        """
        Bind and start serving on port (0 picks a free port).

        Raises BindError if the port cannot be bound or the instance is already
        running; the instance is left exactly as it was.
        """
        if self.isRunning():
            raise BindError(port, f"project {self.config.projectId} already running on port {self.port}")

        sock = self._bindSocket(port)

        # Trust chain must exist before the first request can arrive
        self.sessions = SessionStore(self.config.secret, self.config.sessionTtlSeconds)
        self.trust = TrustDecisionEngine(self.comparator, self.sessions,
                                         getPort=self.getPort, onAccess=self._touch)

        app = self._createApp()
        runner = web.AppRunner(app, shutdown_timeout=self.config.shutdownTimeout)
        try:
            await runner.setup()
            site = web.SockSite(runner, sock)
            await site.start()
        except OSError as e:
            await runner.cleanup()
            sock.close()
            self.sessions = None
            self.trust = None
            raise BindError(port, str(e)) from e

        self.app = app
        self._runner = runner
        self._site = site
        self.port = sock.getsockname()[1]

        self.log.info(f"[LocalFileServer] Project \"{self.config.projectId}\" started on port {self.port}",
                      rootPath=str(self.config.rootPath))

    async def stop(self):
        """Close the listener. Stopping a stopped instance is a no-op."""
        runner = self._runner
        if runner is None:
            return

        # State reads as stopped before the (possibly slow) cleanup finishes
        self._runner = None
        self._site = None
        self.port = 0

        await runner.cleanup()
        self.sessions = None
        self.trust = None
        self.app = None

        self.log.info(f"[LocalFileServer] Project \"{self.config.projectId}\" stopped")

    def _bindSocket(self, port: int) -> socket.socket:
        host = self.config.host
        try:
            family = socket.AF_INET6 if ':' in host else socket.AF_INET
            sock = socket.socket(family, socket.SOCK_STREAM)
        except OSError as e:
            raise BindError(port, str(e)) from e

        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
            sock.listen(128)
            sock.setblocking(False)
        except (OSError, OverflowError) as e:
            sock.close()
            self.log.warning("[LocalFileServer] Bind failed", host=host, requestedPort=port, error=str(e))
            raise BindError(port, str(e)) from e

        return sock

    def _createApp(self) -> web.Application:
        app = web.Application(middlewares=[self.corsMiddleware, self.errorMiddleware, self.trustMiddleware])
        app.on_response_prepare.append(self._prepareResponse)
        app.router.add_route('*', '/{tail:.*}', self.handleFile)
        return app

    # =========================================================================
    # Middleware & handlers
    # =========================================================================

    @web.middleware
    async def corsMiddleware(self, request: web.Request, handler) -> web.StreamResponse:
        """Answer preflights before the trust chain; they carry no credentials"""
        if request.method != 'OPTIONS':
            return await handler(request)

        headers = {'Access-Control-Allow-Methods': CORS_ALLOW_METHODS}
        requestedHeaders = request.headers.get('Access-Control-Request-Headers')
        if requestedHeaders:
            headers['Access-Control-Allow-Headers'] = requestedHeaders
        return web.Response(status=204, headers=headers)

    @web.middleware
    async def errorMiddleware(self, request: web.Request, handler) -> web.StreamResponse:
        setProjectContext(self.config.projectId, self.port)
        try:
            return await handler(request)
        except HttpError as e:
            if isinstance(e, IOFailure):
                self.log.error("[LocalFileServer] Request failed", path=request.path,
                               error=str(e), exc_info=True)
            return errorResponse(e)

    @web.middleware
    async def trustMiddleware(self, request: web.Request, handler) -> web.StreamResponse:
        verdict = self.trust.evaluate(RequestContext.fromRequest(request))
        if not verdict.allowed:
            raise AuthDenied()
        request[VERDICT_KEY] = verdict
        return await handler(request)

    async def handleFile(self, request: web.Request) -> web.StreamResponse:
        response = await self.rewriter.respond(request)
        if response is not None:
            return response
        return await self.staticResponder.respond(request)

    async def _prepareResponse(self, request: web.Request, response: web.StreamResponse):
        """Security and CORS headers on every response; session cookie after token auth"""
        for name, value in SECURITY_HEADERS.items():
            response.headers[name] = value

        # Host renderer fetches with credentials from its own origin
        origin = request.headers.get('Origin')
        if origin:
            response.headers['Access-Control-Allow-Origin'] = origin
            response.headers['Access-Control-Allow-Credentials'] = 'true'
            response.headers.add('Vary', 'Origin')

        verdict = request.get(VERDICT_KEY)
        if verdict is not None and verdict.issueCookie:
            response.set_cookie(
                COOKIE_NAME,
                verdict.issueCookie,
                max_age=self.config.sessionTtlSeconds,
                httponly=True,
                secure=False,
                samesite='Lax',
                path='/'
            )

    def _touch(self):
        self.lastAccessed = time.time()

    # =========================================================================
    # Host-facing accessors
    # =========================================================================

    def getUrl(self, filePath: str = '/') -> str:
        """Bootstrap URL carrying the secret; the only sanctioned first-contact link"""
        normalizedPath = filePath if filePath.startswith('/') else f"/{filePath}"
        return f"http://localhost:{self.port}{normalizedPath}?token={quote(self.config.secret, safe='')}"

    def getPort(self) -> int:
        return self.port

    def getProjectId(self) -> str:
        return self.config.projectId

    def getLastAccessed(self) -> float:
        return self.lastAccessed

    def isRunning(self) -> bool:
        return self._runner is not None and self.port > 0

    def getStatus(self) -> Dict[str, Any]:
        return {
            'projectId': self.config.projectId,
            'rootPath': str(self.config.rootPath),
            'running': self.isRunning(),
            'port': self.port,
            'lastAccessed': self.lastAccessed,
            'sessions': len(self.sessions) if self.sessions is not None else 0,
        }
