"""Tests for ChildSupervisor and its handshake with RestartCoordinator."""

import queue
import sys
import textwrap

import pytest

from conftest import FakeWatchSet, make_config
from pydev.local.supervisor import ChildState, ChildSupervisor, OneShot, RestartCoordinator
from pydev.local.supervisor.events import ChildExited, ChildMessage
from pydev.local.supervisor.ipc import DependencyLoaded, FatalError, Ready


class Harness:
    """A supervisor and coordinator driven by hand instead of by the event loop."""

    def __init__(self, **config):
        self.events = []
        self.exit_codes = []
        self.notifications = []
        self.watch_set = FakeWatchSet()
        self.supervisor = ChildSupervisor(
            ["python", "-m", "pydev.wrap", "app.py"],
            make_config(**config),
            post_event=self.events.append,
            on_dependency=lambda path: self.coordinator.on_dependency(path),
            notify=lambda *args: self.notifications.append(args),
            exit_process=self.exit_codes.append,
        )
        self.coordinator = RestartCoordinator(
            self.supervisor, self.watch_set, notify=lambda *args: self.notifications.append(args),
            ignore_prefixes=[], depth_limit=1,
        )

    @property
    def child(self):
        return self.supervisor.child

    def send(self, message, child=None):
        self.supervisor.handle_message(child or self.child, message)

    def exit(self, returncode, child=None):
        self.supervisor.handle_exit(child or self.child, returncode)


class TestOneShot:
    def test_callbacks_run_once_when_fired(self):
        gate = OneShot()
        calls = []
        gate.then(lambda: calls.append("a"))
        assert calls == []

        gate.fire()
        gate.fire()
        assert calls == ["a"]
        assert gate.is_set

    def test_callbacks_added_after_firing_run_immediately(self):
        gate = OneShot()
        gate.fire()
        calls = []
        gate.then(lambda: calls.append("late"))
        assert calls == ["late"]


class TestLifecycle:
    def test_start_does_not_wait_for_ready(self, launches):
        h = Harness()
        assert h.supervisor.state is ChildState.NOT_STARTED

        child = h.supervisor.start()

        assert child is h.child
        assert child.state is ChildState.LAUNCHING
        assert not child.ready.is_set
        assert len(launches) == 1

    def test_ready_message_moves_child_to_running(self, launches):
        h = Harness()
        h.supervisor.start()
        h.send(Ready())
        assert h.child.state is ChildState.RUNNING
        assert h.child.ready.is_set

    def test_second_start_while_alive_is_refused(self, launches):
        h = Harness()
        h.supervisor.start()
        with pytest.raises(RuntimeError):
            h.supervisor.start()
        assert len(launches) == 1

    def test_respawn_setting_is_copied_to_the_child(self, launches):
        h = Harness(RESPAWN=True)
        h.supervisor.start()
        assert h.child.respawn is True

    def test_natural_exit_without_respawn_exits_with_child_code(self, launches):
        h = Harness()
        h.supervisor.start()
        h.exit(3)
        assert h.exit_codes == [3]

    def test_death_by_signal_maps_to_shell_code(self, launches):
        h = Harness()
        h.supervisor.start()
        h.exit(-15)
        assert h.exit_codes == [143]

    def test_natural_exit_with_respawn_goes_idle(self, launches):
        h = Harness(RESPAWN=True)
        h.supervisor.start()
        h.exit(0)
        assert h.exit_codes == []
        assert h.child is None
        assert h.supervisor.state is ChildState.EXITED

    def test_launch_failure_surfaces_as_exit_event(self, monkeypatch):
        from pydev.local.supervisor import process_utils

        def failing_launch(cmd, preload=None):
            raise FileNotFoundError("no such interpreter")

        monkeypatch.setattr(process_utils, "launch_child", failing_launch)
        h = Harness()
        child = h.supervisor.start()

        assert h.events == [ChildExited(child, 1)]
        h.exit(1, child)
        assert h.exit_codes == [1]

    def test_dependency_messages_reach_the_watch_set(self, launches):
        h = Harness()
        h.supervisor.start()
        h.send(DependencyLoaded("/app/main.py"))
        h.send(DependencyLoaded("/app/main.py"))
        assert h.watch_set.paths == {"/app/main.py"}

    def test_messages_from_stale_child_are_ignored(self, launches, terminated):
        h = Harness()
        old = h.supervisor.start()
        h.supervisor.stop()
        h.exit(-15, old)
        h.supervisor.start()

        h.send(DependencyLoaded("/app/old.py"), child=old)
        h.send(FatalError("ValueError", "late", True), child=old)

        assert h.watch_set.paths == set()
        assert h.notifications == []


class TestStop:
    def test_stop_sets_respawn_and_sends_sigterm(self, launches, terminated):
        h = Harness()
        child = h.supervisor.start()
        h.supervisor.stop()

        assert child.respawn is True
        assert child.state is ChildState.STOPPING
        assert terminated == [child.pid]

    def test_stop_sends_graceful_payload_instead_of_signal(self, launches, terminated):
        h = Harness(GRACEFUL_IPC={"type": "shutdown"})
        child = h.supervisor.start()
        h.supervisor.stop()

        assert terminated == []
        assert child.channel.sent == [{"type": "shutdown"}]

    def test_termination_is_requested_only_once(self, launches, terminated):
        h = Harness()
        h.supervisor.start()
        h.supervisor.stop()
        h.supervisor.stop()
        h.send(FatalError("RuntimeError", "boom", False))
        assert len(terminated) == 1

    def test_disconnect_waits_for_ready(self, launches, terminated):
        h = Harness()
        child = h.supervisor.start()
        h.supervisor.stop()
        assert child.channel.connected

        h.send(Ready())
        assert not child.channel.connected
        assert child.channel.disconnects == 1

    def test_stop_without_child_is_harmless(self, launches, terminated):
        h = Harness()
        h.supervisor.stop()
        assert terminated == []

    def test_relay_termination_uses_graceful_payload(self, launches, terminated):
        h = Harness(GRACEFUL_IPC={"cmd": "quit"})
        child = h.supervisor.start()
        h.supervisor.relay_termination()
        assert child.channel.sent == [{"cmd": "quit"}]
        assert terminated == []

    def test_relay_termination_skips_disconnected_child(self, launches, terminated):
        h = Harness()
        child = h.supervisor.start()
        child.channel.disconnect()
        h.supervisor.relay_termination()
        assert terminated == []


class TestFatalErrors:
    def test_fatal_error_notifies_and_kills(self, launches, terminated):
        h = Harness()
        child = h.supervisor.start()
        h.send(FatalError("ZeroDivisionError", "division by zero", False))

        assert h.notifications == [("ZeroDivisionError", "division by zero", "error")]
        assert terminated == [child.pid]
        assert child.respawn is True

    def test_self_terminating_child_is_not_killed(self, launches, terminated):
        h = Harness(GRACEFUL_IPC={"type": "shutdown"})
        child = h.supervisor.start()
        h.send(Ready())
        h.send(FatalError("ImportError", "no module", True))

        assert terminated == []
        assert child.channel.sent == []
        # Ready already arrived, so the disconnect happens right away
        assert not child.channel.connected

    def test_fatal_error_is_not_retried(self, launches, terminated):
        h = Harness()
        h.supervisor.start()
        h.send(FatalError("ImportError", "no module", True))
        h.exit(1)

        assert h.child is None
        assert h.exit_codes == []
        assert len(launches) == 1

    def test_change_after_fatal_error_starts_immediately(self, launches, terminated):
        h = Harness()
        h.supervisor.start()
        h.send(FatalError("ImportError", "no module", True))
        h.exit(1)

        h.coordinator.on_change("/app/main.py")

        assert len(launches) == 2
        assert h.child.state is ChildState.LAUNCHING


class TestRestartHandshake:
    def test_change_restarts_after_exit(self, launches, terminated):
        h = Harness()
        first = h.supervisor.start()
        h.send(Ready())
        h.send(DependencyLoaded("/app/a.py"))

        h.coordinator.on_change("/app/a.py")

        assert h.watch_set.paths == set()
        assert terminated == [first.pid]
        assert len(launches) == 1  # Waits for the exit

        h.exit(-15, first)

        assert h.exit_codes == []
        assert len(launches) == 2
        second = h.child
        assert second is not first
        h.send(Ready())
        assert second.state is ChildState.RUNNING

    def test_concurrent_changes_coalesce_into_one_restart(self, launches, terminated):
        h = Harness()
        first = h.supervisor.start()
        h.coordinator.on_change("/app/a.py")
        h.coordinator.on_change("/app/b.py")
        h.coordinator.on_change("/app/a.py")

        assert len(terminated) == 1
        h.exit(-15, first)
        assert len(launches) == 2

    def test_never_two_live_children(self, launches, terminated):
        h = Harness()
        live = []
        original_start = h.supervisor.start

        def tracking_start():
            assert h.supervisor.child is None
            child = original_start()
            live.append(child)
            return child

        h.supervisor.start = tracking_start
        tracking_start()
        for _ in range(3):
            h.coordinator.on_change("/app/a.py")
            h.exit(-15)

        assert len(live) == 4
        assert len(set(map(id, live))) == 4

    def test_stopping_child_does_not_repopulate_watch_set(self, launches, terminated):
        h = Harness()
        first = h.supervisor.start()
        h.coordinator.on_change("/app/a.py")
        h.send(DependencyLoaded("/app/stale.py"), child=first)
        assert h.watch_set.paths == set()

        h.exit(-15, first)
        h.send(DependencyLoaded("/app/stale.py"), child=first)
        h.send(DependencyLoaded("/app/fresh.py"))

        assert h.watch_set.paths == {"/app/fresh.py"}


CHATTY_CHILD = textwrap.dedent("""
    import json, os, sys
    out = os.fdopen(int(os.environ["PYDEV_IPC_FDS"].split(",")[1]), "w")
    for i in range({count}):
        out.write(json.dumps({{"type": "dependency-loaded", "required": "/app/m%d.py" % i}}) + "\\n")
    if {crash}:
        out.write(json.dumps({{"type": "error", "error": "RuntimeError", "message": "boom", "willTerminate": True}}) + "\\n")
    out.flush()
    sys.exit(1)
""")


class TestRealChild:
    """Runs real child processes through launch_child and watch_exit."""

    def run(self, count, crash, **config):
        events = queue.Queue()
        exit_codes = []
        deps = []
        command = [sys.executable, "-c", CHATTY_CHILD.format(count=count, crash=crash)]
        supervisor = ChildSupervisor(
            command,
            make_config(**config),
            post_event=events.put,
            on_dependency=deps.append,
            notify=lambda *args: None,
            exit_process=exit_codes.append,
        )
        child = supervisor.start()

        while True:
            event = events.get(timeout=15)
            if isinstance(event, ChildMessage):
                supervisor.handle_message(event.child, event.message)
            elif isinstance(event, ChildExited):
                supervisor.handle_exit(event.child, event.returncode)
                break
        return child, deps, exit_codes

    def test_messages_sent_before_exit_are_handled_first(self):
        child, deps, exit_codes = self.run(3000, crash=False, RESPAWN=True)

        assert len(deps) == 3000
        assert deps[-1] == "/app/m2999.py"
        assert child.state is ChildState.EXITED
        assert exit_codes == []

    def test_terminating_error_before_exit_keeps_supervisor_alive(self):
        child, deps, exit_codes = self.run(3000, crash=True)

        assert len(deps) == 3000
        assert child.respawn
        assert exit_codes == []

    def test_exit_code_propagates_without_respawn(self):
        _, deps, exit_codes = self.run(5, crash=False)

        assert deps == [f"/app/m{i}.py" for i in range(5)]
        assert exit_codes == [1]
