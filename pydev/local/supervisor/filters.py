"""
Decides which reported dependencies are worth watching.

These are pure functions over path strings: no filesystem access, no state.
"""
import re
from typing import Iterable, Sequence

from pydev.settings import DEPENDENCY_MARKERS, UNLIMITED_DEPTH

_SEPARATORS = re.compile(r"[\\/]")


def is_ignored(path: str, ignore_prefixes: Iterable[str]) -> bool:
    """Returns True if `path` starts with any of the ignore prefixes."""
    return any(path.startswith(prefix) for prefix in ignore_prefixes)


def get_level(path: str, markers: Sequence[str] = DEPENDENCY_MARKERS) -> int:
    """
    Returns the nesting level of the given file.

    Files of the application itself (or of packages installed in editable
    mode) are level 0. Every `site-packages` style segment in the path adds
    one level.
    """
    return sum(1 for part in _SEPARATORS.split(path) if part in markers)


def should_watch(
    path: str,
    ignore_prefixes: Iterable[str],
    depth_limit: int,
    markers: Sequence[str] = DEPENDENCY_MARKERS,
) -> bool:
    """
    Decides whether a dependency reported by the child should be watched.

    :param path: Absolute path of the loaded file.
    :param ignore_prefixes: Path prefixes that are never watched.
    :param depth_limit: Maximum nesting level to watch, or -1 for no limit.
    :return bool: True if the file should be added to the watch set.
    """
    if is_ignored(path, ignore_prefixes):
        return False
    return depth_limit == UNLIMITED_DEPTH or get_level(path, markers) <= depth_limit
