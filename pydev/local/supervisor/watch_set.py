import errno
import time
import logging
import threading
from pathlib import Path
from typing import Callable, Dict, FrozenSet, Optional, Set

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver, ObservedWatch
from watchdog.observers.polling import PollingObserver

log = logging.getLogger(__name__)

# errno values meaning the OS ran out of file handles or inotify watches.
_EXHAUSTION_ERRNOS = {errno.EMFILE, errno.ENFILE, errno.ENOSPC}


class WatchedFileHandler(FileSystemEventHandler):
    """A watchdog event handler that reports changes to files in the watch set."""

    def __init__(self, watch_set: "WatchSet"):
        super().__init__()
        self.watch_set = watch_set
        self.debounce_cache: Dict[str, float] = {}

    def on_any_event(self, event: FileSystemEvent) -> None:
        """The main event handler method for watchdog, called on any file change."""
        if event.is_directory or event.event_type in ("opened", "closed", "closed_no_write"):
            return

        for path in {event.src_path, getattr(event, "dest_path", "")}:
            if path and path in self.watch_set and self._should_process_event(path):
                log.debug(f"Watchdog event: {event.event_type} on {path}")
                self.watch_set.on_change(path)

    def _should_process_event(self, path: str) -> bool:
        """Check if the event should be processed or skipped due to debouncing."""
        now = time.monotonic()
        if self.debounce_cache.get(path, float("-inf")) > now - self.watch_set.debounce:
            return False
        self.debounce_cache[path] = now
        return True


class WatchSet:
    """
    The set of files whose modification triggers a restart.

    Files are watched through one non-recursive watch per parent directory.
    When the OS runs out of watch handles the set switches to a polling
    observer and reports the number of watched files through `on_fallback`.
    """

    def __init__(
        self,
        on_change: Callable[[str], None],
        on_fallback: Callable[[int], None],
        force_polling: bool = False,
        poll_interval: float = 1.0,
        debounce: float = 0.1,
    ) -> None:
        """
        :param on_change: Called from the observer thread with the changed path.
        :param on_fallback: Called with the number of watched files when polling takes over.
        :param force_polling: Use the polling observer from the start.
        :param poll_interval: Seconds between scans of the polling observer.
        :param debounce: Repeated events for one path inside this window are dropped.
        """
        self.on_change = on_change
        self.on_fallback = on_fallback
        self.poll_interval = poll_interval
        self.debounce = debounce
        self.polling = force_polling

        self._lock = threading.Lock()
        self._paths: Set[str] = set()
        self._watches: Dict[str, ObservedWatch] = {}
        self._handler = WatchedFileHandler(self)
        self._observer: Optional[BaseObserver] = None

    def _create_observer(self) -> BaseObserver:
        if self.polling:
            return PollingObserver(timeout=self.poll_interval)
        return Observer()

    @property
    def paths(self) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._paths)

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return path in self._paths

    def __len__(self) -> int:
        with self._lock:
            return len(self._paths)

    def start(self) -> None:
        """Starts the underlying observer thread."""
        if self._observer is None:
            self._observer = self._create_observer()
            self._observer.start()

    def stop(self) -> None:
        """Stops the observer and forgets all watches."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None
        with self._lock:
            self._watches.clear()

    def add(self, path: str) -> bool:
        """
        Adds a file to the watch set.

        :param path: The file to watch. Relative paths are resolved against the working directory.
        :return bool: False if the file was already watched.
        """
        path = str(Path(path).resolve())
        with self._lock:
            if path in self._paths:
                return False
            self._paths.add(path)

        directory = str(Path(path).parent)
        if directory not in self._watches:
            self._schedule(directory)
        return True

    def _schedule(self, directory: str) -> None:
        self.start()
        try:
            self._watches[directory] = self._observer.schedule(self._handler, directory, recursive=False)
        except FileNotFoundError:
            log.debug(f"Directory {directory} no longer exists, not watching it.")
        except OSError as e:
            if e.errno not in _EXHAUSTION_ERRNOS or self.polling:
                raise
            self._fall_back_to_polling()

    def _fall_back_to_polling(self) -> None:
        """Replaces the native observer with a polling one and re-creates every watch."""
        limit = len(self)
        self.stop()
        self.polling = True
        self.start()
        with self._lock:
            directories = {str(Path(p).parent) for p in self._paths}
        for directory in directories:
            self._schedule(directory)
        self.on_fallback(limit)

    def clear(self) -> None:
        """Removes every path and every watch."""
        with self._lock:
            self._paths.clear()
            self._watches.clear()
            self._handler.debounce_cache.clear()
        if self._observer is not None:
            self._observer.unschedule_all()
