"""
Per-instance session store.

Sessions are keyed by an opaque session id carried in a signed cookie. The
cookie is a JWT (HS256, signed with the instance secret) holding the id and its
expiry, so forged or expired cookies never reach the store. The store itself
only remembers which ids have authenticated.

Invariants:
- authenticated only ever goes False -> True for a live record
- a record reads as unauthenticated once expired; expired records are dropped
  on lookup and whenever a session is marked
- the store lives and dies with one running instance (fresh store per start)
"""

import hashlib
import secrets
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import jwt

from atrium.config import SESSION_TTL_SECONDS
from sdk.logging import getLogger

COOKIE_NAME = 'atrium_session'
JWT_ALGORITHM = 'HS256'


@dataclass
class SessionRecord:
    authenticated: bool
    expiresAt: float


class SessionStore:
    """Lock-guarded sessionId -> SessionRecord map plus the cookie codec"""

    def __init__(self, secret: str, ttlSeconds: int = SESSION_TTL_SECONDS):
        # Cookies are signed with a key derived from the secret, never the URL token itself
        self._signingKey = hashlib.sha256(b'atrium-session:' + secret.encode('utf-8')).digest()
        self.ttlSeconds = ttlSeconds
        self._records: Dict[str, SessionRecord] = {}
        self._lock = threading.Lock()
        self.log = getLogger()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    @staticmethod
    def newSessionId() -> str:
        return secrets.token_urlsafe(24)

    def isAuthenticated(self, sessionId: Optional[str]) -> bool:
        if not sessionId:
            return False
        with self._lock:
            record = self._records.get(sessionId)
            if record is None:
                return False
            if record.expiresAt <= time.time():
                del self._records[sessionId]
                return False
            return record.authenticated

    def markAuthenticated(self, sessionId: str):
        """Mark a session authenticated; re-marking only extends its expiry"""
        now = time.time()
        expiresAt = now + self.ttlSeconds
        with self._lock:
            # Token clients without cookies add a record per request
            self._dropExpiredLocked(now)
            record = self._records.get(sessionId)
            if record is None:
                self._records[sessionId] = SessionRecord(authenticated=True, expiresAt=expiresAt)
            else:
                record.authenticated = True
                record.expiresAt = max(record.expiresAt, expiresAt)

    def purgeExpired(self) -> int:
        """Drop expired records; returns how many were removed"""
        with self._lock:
            count = self._dropExpiredLocked(time.time())
        if count:
            self.log.debug("[SessionStore] Purged expired sessions", count=count)
        return count

    def _dropExpiredLocked(self, now: float) -> int:
        expired = [sid for sid, record in self._records.items() if record.expiresAt <= now]
        for sid in expired:
            del self._records[sid]
        return len(expired)

    def encodeCookie(self, sessionId: str) -> str:
        """Signed cookie value for a session id"""
        payload = {
            'sid': sessionId,
            'exp': datetime.now(timezone.utc) + timedelta(seconds=self.ttlSeconds)
        }
        return jwt.encode(payload, self._signingKey, algorithm=JWT_ALGORITHM)

    def decodeCookie(self, value: Optional[str]) -> Optional[str]:
        """
        Session id from a cookie value.

        Returns None for missing, forged, tampered or expired cookies.
        """
        if not value:
            return None
        try:
            payload = jwt.decode(value, self._signingKey, algorithms=[JWT_ALGORITHM])
        except jwt.ExpiredSignatureError:
            self.log.debug("[SessionStore] Session cookie expired")
            return None
        except jwt.InvalidTokenError:
            self.log.debug("[SessionStore] Session cookie rejected")
            return None

        sessionId = payload.get('sid')
        return sessionId if isinstance(sessionId, str) and sessionId else None
