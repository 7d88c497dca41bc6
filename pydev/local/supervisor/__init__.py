"""
The Supervisor package.
Manages the lifecycle of the wrapped script's process.

This package contains the ChildSupervisor state machine and its helper
modules, which together handle launching the child, listening on its control
channel, watching the files it loads and restarting it when they change.
"""
from .supervisor import Child, ChildState, ChildSupervisor, OneShot
from .restart import RestartCoordinator
from .watch_set import WatchSet
from .filters import should_watch, get_level, is_ignored

__all__ = [
    'Child',
    'ChildState',
    'ChildSupervisor',
    'OneShot',
    'RestartCoordinator',
    'WatchSet',
    'should_watch',
    'get_level',
    'is_ignored',
]
