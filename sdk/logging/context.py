"""
Logging context for per-project server instances.

Every request task served by an instance runs with the instance's projectId and
port set here, so log lines from shared components say which project they
belong to.
"""

import logging
from typing import Optional
from contextvars import ContextVar

_project_id: ContextVar[Optional[str]] = ContextVar('project_id', default=None)
_port: ContextVar[Optional[int]] = ContextVar('port', default=None)


class ProjectContextFilter(logging.Filter):
    """Adds projectId/port to records that do not already carry them"""

    def filter(self, record):
        projectId = _project_id.get()
        port = _port.get()

        if projectId and not hasattr(record, 'projectId'):
            record.projectId = projectId
        if port and not hasattr(record, 'port'):
            record.port = port

        return True


def setProjectContext(projectId: str, port: Optional[int] = None):
    """
    Set the project context for the current task.

    Args:
        projectId: Project served by the instance handling the request
        port: Port the instance is bound to
    """
    _project_id.set(projectId)
    _port.set(port)


def getProjectContext() -> dict:
    """Get current project context"""
    return {
        'projectId': _project_id.get(),
        'port': _port.get()
    }


def clearProjectContext():
    """Clear project context"""
    _project_id.set(None)
    _port.set(None)
