"""Events posted to the supervision loop by the watcher and child-side threads."""
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

from .ipc import ControlMessage

if TYPE_CHECKING:
    from .supervisor import Child


@dataclass(frozen=True)
class ChildExited:
    child: "Child"
    returncode: int


@dataclass(frozen=True)
class ChildMessage:
    child: "Child"
    message: ControlMessage


@dataclass(frozen=True)
class FileChanged:
    path: str


@dataclass(frozen=True)
class WatcherFallback:
    limit: int


Event = Union[ChildExited, ChildMessage, FileChanged, WatcherFallback]
