"""
Static asset responder.

Serves regular files below the project root. Dotfiles and dot-directories
(.env, .git/config, .ssh/id_rsa, ...) are never served, whether named in the
request or reached through a symlink. Nothing outside the root is ever
served: paths are canonicalized (symlinks followed) and must stay under the
resolved root. Directories get no index document.
"""

import asyncio
from pathlib import Path, PurePosixPath
from typing import Optional

from aiohttp import web

from atrium.errors import IOFailure, NotFound
from sdk.logging import getLogger


class StaticAssetResponder:

    def __init__(self, rootPath: Path):
        self.rootPath = Path(rootPath).resolve()
        self.log = getLogger()

    def resolve(self, requestPath: str) -> Optional[Path]:
        """
        Map a URL path onto a filesystem path under the root.

        Returns None when the path names a dotfile, contains a NUL byte or
        resolves outside the root. Existence is not checked here.
        """
        if '\x00' in requestPath or '\\' in requestPath:
            return None

        parts = [p for p in PurePosixPath(requestPath).parts if p not in ('/', '')]
        if any(p.startswith('.') for p in parts):
            return None

        try:
            candidate = self.rootPath.joinpath(*parts).resolve()
        except (OSError, RuntimeError, ValueError):
            return None

        if candidate != self.rootPath and not candidate.is_relative_to(self.rootPath):
            self.log.warning("[Static] Path escapes project root", path=requestPath)
            return None

        # Symlinks inside the root may still land on a dotfile
        if any(p.startswith('.') for p in candidate.relative_to(self.rootPath).parts):
            return None

        return candidate

    async def respond(self, request: web.Request) -> web.StreamResponse:
        """Serve GET/HEAD for a regular file; anything else is NotFound"""
        if request.method not in ('GET', 'HEAD'):
            raise NotFound()

        filePath = self.resolve(request.path)
        if filePath is None:
            raise NotFound()

        # FileResponse.prepare answers read errors itself with bare 403/404
        try:
            readable = await asyncio.to_thread(self._isReadableFile, filePath)
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as e:
            raise NotFound() from e
        except OSError as e:
            self.log.warning("[Static] Cannot read file", path=request.path, error=str(e))
            raise IOFailure(str(e)) from e

        if not readable:
            raise NotFound()
        return web.FileResponse(filePath)

    @staticmethod
    def _isReadableFile(filePath: Path) -> bool:
        if not filePath.is_file():
            return False
        with filePath.open('rb'):
            return True
