"""
HTML content rewriter.

GET requests for *.html are read as text and get a small script injected that
reports target="_blank" clicks on relative links to the parent frame:

    window.parent.postMessage({type: 'OPEN_IN_TAB', href, baseUrl}, '*')

so the hosting shell can open them in its own tab instead of a browser window.
Absolute http(s)/mailto/tel links are left alone.

Files that cannot be resolved or do not exist are handed to the static
responder, so missing HTML and missing anything-else answer the same 404.
"""

import asyncio
import re
from pathlib import Path
from typing import Optional

from aiohttp import web

from atrium.errors import IOFailure
from atrium.server.staticFiles import StaticAssetResponder
from sdk.logging import getLogger

OPEN_IN_TAB_MESSAGE = 'OPEN_IN_TAB'

LINK_INTERCEPT_SCRIPT = """
<script>
(function() {
  function interceptLinks() {
    document.addEventListener('click', function(e) {
      var link = e.target && e.target.closest ? e.target.closest('a') : null;
      if (!link) return;

      var href = link.getAttribute('href');
      if (!href || link.getAttribute('target') !== '_blank') return;

      // Absolute links keep their normal behavior
      if (/^(https?:\\/\\/|mailto:|tel:)/i.test(href)) return;

      e.preventDefault();
      e.stopPropagation();

      if (window.parent && window.parent !== window) {
        window.parent.postMessage({
          type: '%s',
          href: href,
          baseUrl: window.location.pathname
        }, '*');
      }
    }, true);
  }

  if (document.readyState === 'loading') {
    document.addEventListener('DOMContentLoaded', interceptLinks);
  } else {
    interceptLinks();
  }
})();
</script>
""" % OPEN_IN_TAB_MESSAGE

_BODY_CLOSE = re.compile(r'</body\s*>', re.IGNORECASE)
_HTML_CLOSE = re.compile(r'</html\s*>', re.IGNORECASE)


def injectScript(html: str, script: str = LINK_INTERCEPT_SCRIPT) -> str:
    """Insert script before the first </body>, else before the first </html>, else at the end"""
    for pattern in (_BODY_CLOSE, _HTML_CLOSE):
        match = pattern.search(html)
        if match:
            return html[:match.start()] + script + html[match.start():]
    return html + script


def isRewritable(request: web.Request) -> bool:
    return request.method == 'GET' and request.path.endswith('.html')


class ContentRewriter:

    def __init__(self, staticResponder: StaticAssetResponder):
        self.staticResponder = staticResponder
        self.log = getLogger()

    async def respond(self, request: web.Request) -> Optional[web.Response]:
        """
        Rewritten HTML response, or None to let the static responder answer.

        Raises IOFailure for read errors other than "not there".
        """
        if not isRewritable(request):
            return None

        filePath = self.staticResponder.resolve(request.path)
        if filePath is None:
            return None

        content = await self._readText(filePath, request.path)
        if content is None:
            return None

        return web.Response(
            text=injectScript(content),
            content_type='text/html',
            charset='utf-8'
        )

    async def _readText(self, filePath: Path, requestPath: str) -> Optional[str]:
        try:
            return await asyncio.to_thread(filePath.read_text, encoding='utf-8', errors='replace')
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            return None
        except OSError as e:
            self.log.error("[Rewriter] Failed to read HTML", path=requestPath, error=str(e))
            raise IOFailure(f"Cannot read {requestPath}: {e}") from e
