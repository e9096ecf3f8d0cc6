"""
Instance configuration.

An InstanceConfig is built once by the host (or the CLI) and injected into a
LocalFileServer; it is never mutated afterwards.

JSON form (all keys except projectId/rootPath/secret optional):
    {
        "projectId": "demo",
        "rootPath": "/path/to/project",
        "secret": "3f9c...",
        "host": "127.0.0.1",
        "sessionTtlSeconds": 86400,
        "shutdownTimeout": 5.0
    }
"""

import orjson
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

from atrium.errors import ConfigError

DEFAULT_HOST = '127.0.0.1'
SESSION_TTL_SECONDS = 24 * 60 * 60
SHUTDOWN_TIMEOUT_SECONDS = 5.0


@dataclass(frozen=True)
class InstanceConfig:
    projectId: str
    rootPath: Path
    secret: str = field(repr=False)
    host: str = DEFAULT_HOST
    sessionTtlSeconds: int = SESSION_TTL_SECONDS
    shutdownTimeout: float = SHUTDOWN_TIMEOUT_SECONDS

    def __post_init__(self):
        if not self.projectId:
            raise ConfigError("projectId must not be empty")
        if not self.secret:
            raise ConfigError(f"Project {self.projectId}: secret must not be empty")
        if self.sessionTtlSeconds <= 0:
            raise ConfigError(f"Project {self.projectId}: sessionTtlSeconds must be positive")

        rootPath = Path(self.rootPath).expanduser().resolve()
        if not rootPath.is_dir():
            raise ConfigError(f"Project {self.projectId}: rootPath {rootPath} is not a directory")
        # frozen: normalize through object.__setattr__
        object.__setattr__(self, 'rootPath', rootPath)

    @classmethod
    def fromDict(cls, data: Dict[str, Any]) -> 'InstanceConfig':
        """Build from a plain dict (e.g. parsed JSON); unknown keys are ignored"""
        try:
            return cls(
                projectId=str(data['projectId']),
                rootPath=Path(data['rootPath']),
                secret=str(data['secret']),
                host=data.get('host', DEFAULT_HOST),
                sessionTtlSeconds=int(data.get('sessionTtlSeconds', SESSION_TTL_SECONDS)),
                shutdownTimeout=float(data.get('shutdownTimeout', SHUTDOWN_TIMEOUT_SECONDS)),
            )
        except KeyError as e:
            raise ConfigError(f"Missing config key: {e.args[0]}") from e
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid config value: {e}") from e


def loadConfig(configPath: str) -> Dict[str, Any]:
    """Load configuration from JSON file"""
    try:
        with open(configPath, 'rb') as f:
            return orjson.loads(f.read())
    except OSError as e:
        raise ConfigError(f"Cannot read config {configPath}: {e}") from e
    except orjson.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {configPath}: {e}") from e
