"""
Local package for pydev.

This package holds the supervisor side: configuration, notifications, the
ProcessManager and the supervisor components it wires together.
"""

from .config import MergedSettings

__all__ = ["MergedSettings"]
