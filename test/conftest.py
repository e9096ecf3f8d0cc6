"""
Shared fixtures: a small project tree and a running file server.
"""

import socket
from pathlib import Path

import aiohttp
import pytest
import pytest_asyncio

from atrium.config import InstanceConfig
from atrium.server.fileServer import LocalFileServer

SECRET = 'abc123'


def freePort() -> int:
    """Port that was free a moment ago on 127.0.0.1"""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(('127.0.0.1', 0))
        return sock.getsockname()[1]


@pytest.fixture
def projectRoot(tmp_path: Path) -> Path:
    root = tmp_path / 'project'
    root.mkdir()
    (root / 'index.html').write_text('<html><body>Hi</body></html>', encoding='utf-8')
    (root / 'fragment.html').write_text('<p>no closing tags</p>', encoding='utf-8')
    (root / 'style.css').write_text('body { color: red; }', encoding='utf-8')
    (root / '.env').write_text('API_KEY=hunter2', encoding='utf-8')
    (root / '.git').mkdir()
    (root / '.git' / 'config').write_text('[core]', encoding='utf-8')
    (root / 'docs').mkdir()
    (root / 'docs' / 'page.html').write_text('<html><body><a href="x.html" target="_blank">x</a></body></html>',
                                             encoding='utf-8')
    (tmp_path / 'outside.txt').write_text('outside the root', encoding='utf-8')
    return root


@pytest.fixture
def config(projectRoot: Path) -> InstanceConfig:
    return InstanceConfig(projectId='demo', rootPath=projectRoot, secret=SECRET)


@pytest_asyncio.fixture
async def server(config: InstanceConfig):
    instance = LocalFileServer(config)
    await instance.start(0)
    try:
        yield instance
    finally:
        await instance.stop()


@pytest_asyncio.fixture
async def http():
    """Client without a cookie jar: tests pass the session cookie explicitly"""
    async with aiohttp.ClientSession(cookie_jar=aiohttp.DummyCookieJar()) as session:
        yield session


def baseUrl(instance: LocalFileServer) -> str:
    return f"http://127.0.0.1:{instance.getPort()}"
