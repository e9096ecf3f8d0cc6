"""
Trust decision engine.

Ordered rule chain evaluated fresh for every request:

1. Session  - signed cookie names a session already marked authenticated
2. Token    - X-Access-Token header or ?token= matches the instance secret;
              the session is marked authenticated and a cookie is (re)issued
3. Referer  - Referer authority is exactly localhost:{boundPort}, i.e. the
              request comes from a page this same instance served. Per-request
              grant only: the session is NOT marked.
4. Deny

The referer rule relies on browsers not letting scripts forge Referer. It is
deliberately limited to this instance's own bound port: no wildcard, no
configurable origin, never another instance's port.

Side effects are idempotent: lastAccessed is assigned (not accumulated) and
session marking is monotonic.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from yarl import URL

from atrium.server.requestContext import RequestContext
from atrium.server.secretComparator import SecretComparator
from atrium.server.sessionStore import SessionStore
from sdk.logging import getLogger

REASON_SESSION = 'session'
REASON_TOKEN = 'token'
REASON_REFERER = 'referer'
REASON_DENIED = 'denied'


@dataclass(frozen=True)
class TrustVerdict:
    allowed: bool
    reason: str
    sessionId: Optional[str] = None
    # Cookie value to send back; only set when a token authenticated the session
    issueCookie: Optional[str] = None


class TrustDecisionEngine:

    def __init__(self, comparator: SecretComparator, sessions: SessionStore,
                 getPort: Callable[[], int], onAccess: Callable[[], None]):
        self.comparator = comparator
        self.sessions = sessions
        self._getPort = getPort
        self._onAccess = onAccess
        self.log = getLogger()

    def evaluate(self, ctx: RequestContext) -> TrustVerdict:
        sessionId = self.sessions.decodeCookie(ctx.sessionCookie)

        if self.sessions.isAuthenticated(sessionId):
            self._onAccess()
            return TrustVerdict(True, REASON_SESSION, sessionId)

        token = ctx.token
        if token is not None and self.comparator.isValid(token):
            sessionId = sessionId or self.sessions.newSessionId()
            self.sessions.markAuthenticated(sessionId)
            self._onAccess()
            self.log.info("[Trust] Session authenticated by token", path=ctx.path)
            return TrustVerdict(True, REASON_TOKEN, sessionId, self.sessions.encodeCookie(sessionId))

        if self.isSameInstanceReferer(ctx.referer):
            self._onAccess()
            return TrustVerdict(True, REASON_REFERER)

        self.log.warning("[Trust] Request denied", method=ctx.method, path=ctx.path)
        return TrustVerdict(False, REASON_DENIED)

    def isSameInstanceReferer(self, referer: Optional[str]) -> bool:
        """True iff referer parses as an absolute URL whose authority is localhost:{boundPort}"""
        port = self._getPort()
        if not referer or port <= 0:
            return False

        try:
            url = URL(referer)
            if not url.is_absolute() or not url.host:
                return False
            authority = url.host if url.is_default_port() else f"{url.host}:{url.port}"
        except (ValueError, TypeError):
            return False

        return authority == f"localhost:{port}"
