"""sdk - shared building blocks for Atrium processes

Contains:
    - logging: hierarchical structured logging with per-project context
"""

__version__ = "1.0.0"
