"""Shared fakes for supervisor tests."""

from types import SimpleNamespace

import pytest

from pydev.local.supervisor import process_utils, shutdown


class FakeProcess:
    """Stands in for subprocess.Popen."""

    def __init__(self, pid: int):
        self.pid = pid


class FakeChannel:
    """Stands in for ControlChannel; records what the supervisor does with it."""

    def __init__(self):
        self.connected = True
        self.sent = []
        self.disconnects = 0
        self.on_message = None

    def listen(self, on_message):
        self.on_message = on_message

    def send(self, payload):
        if not self.connected:
            return False
        self.sent.append(payload)
        return True

    def disconnect(self):
        if self.connected:
            self.disconnects += 1
        self.connected = False

    def close(self):
        self.disconnect()


class FakeWatchSet:
    """Stands in for WatchSet without touching the file system."""

    def __init__(self):
        self.paths = set()
        self.clears = 0

    def add(self, path):
        if path in self.paths:
            return False
        self.paths.add(path)
        return True

    def clear(self):
        self.paths.clear()
        self.clears += 1

    def __contains__(self, path):
        return path in self.paths

    def __len__(self):
        return len(self.paths)


def make_config(**overrides):
    values = dict(RESPAWN=False, GRACEFUL_IPC=None, PRELOAD=None)
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.fixture
def launches(monkeypatch):
    """Replaces process launching; returns the list of (process, channel) pairs created."""
    created = []

    def fake_launch_child(cmd, preload=None):
        pair = (FakeProcess(1000 + len(created)), FakeChannel())
        created.append(pair)
        return pair

    monkeypatch.setattr(process_utils, "launch_child", fake_launch_child)
    monkeypatch.setattr(process_utils, "watch_exit", lambda process, on_exit, reader=None: None)
    return created


@pytest.fixture
def terminated(monkeypatch):
    """Records the PIDs that received SIGTERM."""
    pids = []

    def fake_terminate(pid):
        pids.append(pid)
        return True

    monkeypatch.setattr(shutdown, "terminate_process", fake_terminate)
    return pids
