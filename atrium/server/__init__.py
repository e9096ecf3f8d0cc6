"""
Package init for atrium.server
"""

from atrium.server.fileServer import LocalFileServer
from atrium.server.manager import ProjectServerManager
from atrium.server.trust import TrustDecisionEngine

__all__ = ['LocalFileServer', 'ProjectServerManager', 'TrustDecisionEngine']
