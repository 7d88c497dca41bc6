import sys
import logging
from typing import IO, TYPE_CHECKING, Callable, Iterable, Optional

from pydev import settings
from .filters import should_watch

if TYPE_CHECKING:
    from .supervisor import ChildSupervisor
    from .watch_set import WatchSet

log = logging.getLogger(__name__)


class RestartCoordinator:
    """
    Turns file changes into restart cycles and dependency reports into watches.

    A change always empties the watch set first, so the next child rebuilds it
    from scratch. Changes that arrive while a restart is already pending join
    that restart instead of scheduling another one.
    """

    def __init__(
        self,
        supervisor: "ChildSupervisor",
        watch_set: "WatchSet",
        notify: Callable[..., None],
        ignore_prefixes: Iterable[str] = (),
        depth_limit: int = settings.UNLIMITED_DEPTH,
        clear_screen: bool = False,
        stream: Optional[IO[str]] = None,
    ) -> None:
        self.supervisor = supervisor
        self.watch_set = watch_set
        self.notify = notify
        self.ignore_prefixes = list(ignore_prefixes)
        self.depth_limit = depth_limit
        self.clear_screen = clear_screen
        self.stream = stream

    def on_change(self, path: str) -> None:
        """Restarts the child because `path` changed."""
        if self.clear_screen:
            stream = self.stream or sys.stdout
            stream.write(settings.CLEAR_SCREEN_SEQUENCE)
            stream.flush()

        self.notify("Restarting", f"{path} has been modified")
        self.watch_set.clear()

        if self.supervisor.is_running:
            # Restart once the current child is gone
            self.supervisor.when_exited(self.supervisor.start)
            self.supervisor.stop()
        else:
            # No child, probably due to a previous error
            self.supervisor.start()

    def on_dependency(self, path: str) -> None:
        """Watches a file the child reported as loaded, if the filter accepts it."""
        if should_watch(path, self.ignore_prefixes, self.depth_limit):
            self.watch_set.add(path)

    def on_fallback(self, limit: int) -> None:
        log.warning(f"pydev ran out of file handles after watching {limit} files.")
        log.warning("Falling back to polling which uses more CPU.")
        log.info("Run ulimit -n 10000 to increase the file descriptor limit.")
        if self.depth_limit != 0:
            log.info("... or add `--deps=0` to use fewer file handles.")
