"""
Logging module for pydev.
This module provides the console logging setup shared by the supervisor.
"""

from .setup import setup_logging, MainFormatter

__all__ = ["setup_logging", "MainFormatter"]
