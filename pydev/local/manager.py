import sys
import queue
import signal
import logging
from typing import List

from pydev import settings
from pydev.local.config import MergedSettings
from pydev.local.notify import Notifier
from pydev.local.supervisor import ChildSupervisor, RestartCoordinator, WatchSet
from pydev.local.supervisor.events import ChildExited, ChildMessage, Event, FileChanged, WatcherFallback

logger = logging.getLogger(__name__)


class ProcessManager:
    """
    Runs the wrapped script and restarts it whenever one of its files changes.

    This class wires the file watcher, the child supervisor and the restart
    coordinator together. Background threads (the watchdog observer, the
    control channel reader, the exit watcher) only post events to a queue;
    the supervision loop handles them one at a time on the calling thread.
    """

    def __init__(self, command: List[str], config: MergedSettings) -> None:
        """
        Initializes the ProcessManager state.

        :param command: The launch command for the child.
        :param config: The effective settings.
        """
        self.config = config
        self.events: "queue.Queue[Event]" = queue.Queue()
        self.notify = Notifier(config.NOTIFY)

        self.watch_set = WatchSet(
            on_change=lambda path: self.post(FileChanged(path)),
            on_fallback=lambda limit: self.post(WatcherFallback(limit)),
            force_polling=config.POLL,
            poll_interval=config.POLL_INTERVAL,
            debounce=config.DEBOUNCE,
        )
        self.supervisor = ChildSupervisor(
            command,
            config,
            post_event=self.post,
            on_dependency=self._on_dependency,
            notify=self.notify,
        )
        self.coordinator = RestartCoordinator(
            self.supervisor,
            self.watch_set,
            self.notify,
            ignore_prefixes=config.ignore_prefixes(),
            depth_limit=config.DEPS,
            clear_screen=config.CLEAR,
        )

    def post(self, event: Event) -> None:
        """Queues an event for the supervision loop. Safe to call from any thread."""
        self.events.put(event)

    def _on_dependency(self, path: str) -> None:
        self.coordinator.on_dependency(path)

    def dispatch(self, event: Event) -> None:
        """Hands a single event to the component that owns it."""
        if isinstance(event, ChildMessage):
            self.supervisor.handle_message(event.child, event.message)
        elif isinstance(event, ChildExited):
            self.supervisor.handle_exit(event.child, event.returncode)
        elif isinstance(event, FileChanged):
            self.coordinator.on_change(event.path)
        elif isinstance(event, WatcherFallback):
            self.coordinator.on_fallback(event.limit)
        else:
            logger.error(f"Unknown event {event!r}")

    def _handle_termination_signal(self, signum, frame) -> None:
        """Relays SIGTERM to the child and exits without waiting for it."""
        logger.debug(f"Received {signal.Signals(signum).name}, relaying to child.")
        self.supervisor.relay_termination()
        sys.exit(0)

    def supervision_loop(self) -> None:
        """
        Starts the child and processes events until the supervisor exits.

        The loop ends by raising SystemExit, carrying the child's exit code when
        the child exits without a pending restart.
        """
        signal.signal(signal.SIGTERM, self._handle_termination_signal)
        self.watch_set.start()
        try:
            self.supervisor.start()
            while True:
                try:
                    event = self.events.get(timeout=settings.SUPERVISOR_SLEEP_INTERVAL)
                except queue.Empty:
                    continue
                self.dispatch(event)
        except KeyboardInterrupt:
            logger.info("Supervisor loop interrupted by user.")
            self.supervisor.relay_termination()
            sys.exit(130)
        finally:
            self.watch_set.stop()
