"""
Per-request view consumed by the trust engine.

Built once from the aiohttp request so trust decisions can be evaluated (and
tested) without a live connection.
"""

from dataclasses import dataclass, field
from typing import Mapping, Optional

from aiohttp import web

from atrium.server.sessionStore import COOKIE_NAME

TOKEN_HEADER = 'X-Access-Token'
TOKEN_QUERY_PARAM = 'token'


@dataclass(frozen=True)
class RequestContext:
    method: str
    path: str
    headers: Mapping[str, str] = field(default_factory=dict)
    query: Mapping[str, str] = field(default_factory=dict)
    cookies: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def fromRequest(cls, request: web.Request) -> 'RequestContext':
        return cls(
            method=request.method,
            path=request.path,
            headers=request.headers,
            query=request.query,
            cookies=request.cookies,
        )

    @property
    def token(self) -> Optional[str]:
        """Credential from the token header, else the token query parameter"""
        return self.headers.get(TOKEN_HEADER) or self.query.get(TOKEN_QUERY_PARAM) or None

    @property
    def referer(self) -> Optional[str]:
        return self.headers.get('Referer')

    @property
    def sessionCookie(self) -> Optional[str]:
        return self.cookies.get(COOKIE_NAME)
