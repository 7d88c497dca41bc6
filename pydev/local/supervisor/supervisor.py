import sys
import logging
import subprocess
from enum import Enum, auto
from typing import TYPE_CHECKING, Any, Callable, List, Optional

from . import process_utils, shutdown
from .events import ChildExited, ChildMessage, Event
from .ipc import ControlChannel, ControlMessage, DependencyLoaded, FatalError, Ready

if TYPE_CHECKING:
    from pydev.local.config import MergedSettings

log = logging.getLogger(__name__)


class ChildState(Enum):
    """Lifecycle of the supervised child."""
    NOT_STARTED = auto()
    LAUNCHING = auto()   # Spawned, has not reported `loaded` yet
    RUNNING = auto()
    STOPPING = auto()    # Termination requested or announced
    EXITED = auto()


class OneShot:
    """
    A gate that opens exactly once.

    Continuations added before the gate opens run when it opens; continuations
    added afterwards run immediately. Everything runs on the caller's thread.
    """

    def __init__(self) -> None:
        self._fired = False
        self._callbacks: List[Callable[[], Any]] = []

    @property
    def is_set(self) -> bool:
        return self._fired

    def fire(self) -> None:
        if self._fired:
            return
        self._fired = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def then(self, callback: Callable[[], Any]) -> None:
        if self._fired:
            callback()
        else:
            self._callbacks.append(callback)


class Child:
    """One run of the wrapped script. Owned by ChildSupervisor."""

    def __init__(
        self,
        process: Optional[subprocess.Popen],
        channel: Optional[ControlChannel],
        respawn: bool = False,
    ) -> None:
        self.process = process
        self.channel = channel
        self.respawn = respawn
        self.state = ChildState.LAUNCHING
        self.ready = OneShot()
        self.termination_requested = False
        self.exit_callbacks: List[Callable[[], Any]] = []
        self._disconnect_scheduled = False

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process is not None else None

    @property
    def connected(self) -> bool:
        return self.channel is not None and self.channel.connected

    def disconnect_after_ready(self) -> None:
        """Disconnects the channel once the child has reported `loaded`, never earlier."""
        if self._disconnect_scheduled or self.channel is None:
            return
        self._disconnect_scheduled = True
        self.ready.then(self.channel.disconnect)

    def __repr__(self) -> str:
        return f"<Child pid={self.pid} state={self.state.name}>"


class ChildSupervisor:
    """
    Owns the single child slot and drives the child's lifecycle.

    All methods must be called from the supervision loop thread. Threads that
    watch the child only post events; the loop hands them back to
    `handle_message` and `handle_exit`.
    """

    def __init__(
        self,
        command: List[str],
        config: "MergedSettings",
        post_event: Callable[[Event], None],
        on_dependency: Callable[[str], None],
        notify: Callable[..., None],
        exit_process: Callable[[int], Any] = sys.exit,
    ) -> None:
        """
        :param command: The launch command, see `process_utils.build_command`.
        :param config: The effective settings.
        :param post_event: Queues an event for the supervision loop (thread-safe).
        :param on_dependency: Called with every path the child reports as loaded.
        :param notify: Notifier used for errors reported by the child.
        :param exit_process: Terminates the supervisor with the given exit code.
        """
        self.command = command
        self.config = config
        self._post = post_event
        self._on_dependency = on_dependency
        self._notify = notify
        self._exit_process = exit_process
        self._child: Optional[Child] = None
        self.start_count = 0

    @property
    def child(self) -> Optional[Child]:
        return self._child

    @property
    def is_running(self) -> bool:
        return self._child is not None

    @property
    def state(self) -> ChildState:
        if self._child is None:
            return ChildState.EXITED if self.start_count else ChildState.NOT_STARTED
        return self._child.state

    def start(self) -> Child:
        """
        Launches a new child. Returns without waiting for it to finish starting up.

        :raises RuntimeError: If a child is still alive.
        """
        if self._child is not None:
            raise RuntimeError(f"Cannot start a new child while {self._child} is alive.")

        self.start_count += 1
        try:
            process, channel = process_utils.launch_child(self.command, self.config.PRELOAD)
        except OSError as e:
            log.error(f"Failed to start '{' '.join(self.command)}': {e}")
            child = self._child = Child(None, None, respawn=self.config.RESPAWN)
            self._post(ChildExited(child, 1))
            return child

        child = self._child = Child(process, channel, respawn=self.config.RESPAWN)
        reader = channel.listen(lambda message: self._post(ChildMessage(child, message)))
        process_utils.watch_exit(process, lambda code: self._post(ChildExited(child, code)), reader)
        return child

    def stop(self, will_terminate: bool = False) -> None:
        """
        Stops the current child.

        The child's respawn flag is always set, so its exit never ends the
        supervisor. A termination request is sent at most once per child.

        :param will_terminate: True if the child announced it is exiting on its own.
        """
        child = self._child
        if child is None:
            log.debug("Stop requested but no child is running.")
            return

        child.respawn = True
        if child.state is not ChildState.EXITED:
            child.state = ChildState.STOPPING

        if not child.termination_requested:
            child.termination_requested = True
            if not will_terminate:
                shutdown.request_termination(child, self.config.GRACEFUL_IPC)

        child.disconnect_after_ready()

    def when_exited(self, callback: Callable[[], Any]) -> bool:
        """
        Registers a one-shot continuation on the current child's exit.

        Registering the same callback twice for one child has no effect.

        :return bool: False if there is no child to wait for.
        """
        child = self._child
        if child is None:
            return False
        if callback not in child.exit_callbacks:
            child.exit_callbacks.append(callback)
        return True

    def handle_message(self, child: Child, message: ControlMessage) -> None:
        """Reacts to a message the child sent over the control channel."""
        if child is not self._child:
            log.debug(f"Ignoring {message!r} from stale {child}.")
            return

        if isinstance(message, DependencyLoaded):
            # A child on its way out must not repopulate the cleared watch set
            if child.state is not ChildState.STOPPING:
                self._on_dependency(message.path)
        elif isinstance(message, FatalError):
            self._notify(message.error, message.message, "error")
            self.stop(message.will_terminate)
        elif isinstance(message, Ready):
            if child.state is ChildState.LAUNCHING:
                child.state = ChildState.RUNNING
            child.ready.fire()

    def handle_exit(self, child: Child, returncode: int) -> None:
        """
        Reacts to the child's process exit.

        Without the respawn flag the supervisor exits with the child's code.
        Otherwise the slot is freed and pending continuations (a restart) run.
        """
        if child is not self._child:
            log.debug(f"Ignoring exit of stale {child}.")
            return

        child.state = ChildState.EXITED
        if child.channel is not None:
            child.channel.disconnect()

        if not child.respawn:
            log.debug(f"Child exited with {process_utils.signal_name(returncode)}, exiting.")
            self._exit_process(process_utils.exit_code(returncode))
            return

        self._child = None
        callbacks, child.exit_callbacks = child.exit_callbacks, []
        if not callbacks:
            log.info(
                f"Child exited with {process_utils.signal_name(returncode)}. "
                "Waiting for a file change before restarting."
            )
        for callback in callbacks:
            callback()

    def relay_termination(self) -> None:
        """Forwards an OS termination request to the connected child, if any."""
        child = self._child
        if child is not None and child.connected and not child.termination_requested:
            child.termination_requested = True
            shutdown.request_termination(child, self.config.GRACEFUL_IPC)
