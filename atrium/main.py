"""
Atrium entry point - serve one project directory on localhost.

Usage:
    atrium --root path/to/project [--port 5173] [--secret s3cret]
    atrium --config path/to/instance.json [--port 5173]

Without --secret (or a "secret" in the config file) a random secret is
generated. The bootstrap URL (with the secret in it) is logged once on startup.
"""

import argparse
import asyncio
import secrets
import sys
from pathlib import Path
from typing import List, Optional

from atrium.config import InstanceConfig, loadConfig
from atrium.errors import AtriumError
from atrium.server.fileServer import LocalFileServer
from sdk.logging import getLogger, configureLogging


def buildConfig(args: argparse.Namespace) -> InstanceConfig:
    """Merge config file and command line (command line wins)"""
    data = loadConfig(args.config) if args.config else {}

    if args.root:
        data['rootPath'] = args.root
    if args.project_id:
        data['projectId'] = args.project_id
    if args.secret:
        data['secret'] = args.secret
    if args.host:
        data['host'] = args.host

    data.setdefault('rootPath', '.')
    data.setdefault('projectId', Path(data['rootPath']).expanduser().resolve().name or 'project')
    data.setdefault('secret', secrets.token_hex(32))

    return InstanceConfig.fromDict(data)


def parseArgs(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Atrium - local project preview server')
    parser.add_argument('--config', help='Path to instance JSON config')
    parser.add_argument('--root', help='Project directory to serve (default: current directory)')
    parser.add_argument('--port', type=int, default=0, help='Port to bind (default: any free port)')
    parser.add_argument('--project-id', help='Project identifier (default: directory name)')
    parser.add_argument('--secret', help='Access secret (default: random)')
    parser.add_argument('--host', help='Interface to bind (default: 127.0.0.1)')
    parser.add_argument('--log-dir', help='Directory for rotating log files')
    parser.add_argument('--log-level', default='INFO', help='Log level (default: INFO)')
    return parser.parse_args(argv)


async def runServer(config: InstanceConfig, port: int):
    log = getLogger()
    server = LocalFileServer(config)
    await server.start(port)
    log.info(f"[Main] Open {server.getUrl('/')}")

    try:
        # Keep running
        while True:
            await asyncio.sleep(1)
    finally:
        await server.stop()


def main(argv: Optional[List[str]] = None) -> int:
    args = parseArgs(argv)

    configureLogging(logDir=args.log_dir, level=args.log_level)
    log = getLogger()

    try:
        config = buildConfig(args)
    except AtriumError as e:
        log.error(f"[Main] {e}")
        return 1

    log.info(f"[Main] Serving project \"{config.projectId}\" from {config.rootPath}")

    try:
        asyncio.run(runServer(config, args.port))
    except KeyboardInterrupt:
        log.info("[Main] Shutdown signal received")
    except AtriumError as e:
        log.error(f"[Main] {e}")
        return 1

    log.info("[Main] Stopped")
    return 0


if __name__ == '__main__':
    sys.exit(main())
