"""
Atrium error taxonomy.

HttpError subclasses carry a fixed public message; errorMiddleware turns them
into {"error": message} JSON bodies. The message never depends on which
internal check failed.
"""

from typing import Optional


class AtriumError(Exception):
    """Base class for all Atrium errors"""


class ConfigError(AtriumError):
    """Invalid instance configuration"""


class BindError(AtriumError):
    """Listener could not be bound; the instance stays stopped"""

    def __init__(self, port: int, reason: str):
        super().__init__(f"Failed to bind port {port}: {reason}")
        self.port = port
        self.reason = reason


class HttpError(AtriumError):
    """Request-level failure with a fixed status and public message"""

    status = 500
    message = 'Internal server error'

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or self.message)
        self.detail = detail


class AuthDenied(HttpError):
    """No session, token or same-instance referer: never retried automatically"""

    status = 403
    message = 'Forbidden: Invalid access token'


class NotFound(HttpError):
    status = 404
    message = 'File not found'


class IOFailure(HttpError):
    """Unexpected filesystem error while serving one request; the listener keeps serving"""

    status = 500
    message = 'Internal server error'
