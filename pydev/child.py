"""
The child's half of the control channel.

This module runs inside the supervised process. Scripts that want to shut
down cleanly when pydev is configured with a graceful payload register a
handler::

    from pydev.child import on_message

    @on_message
    def handle(payload):
        if payload.get("type") == "shutdown":
            server.shutdown()

With no handler registered, a payload from the supervisor terminates the
process with SIGTERM.
"""
import os
import sys
import json
import signal
import logging
import threading
import importlib.abc
from typing import IO, Any, Callable, List, Optional

from pydev import settings

log = logging.getLogger(__name__)

_writer: Optional[IO[str]] = None
_write_lock = threading.Lock()
_handlers: List[Callable[[Any], None]] = []


def connect(environ=os.environ) -> bool:
    """
    Opens the channel from the descriptors the supervisor passed in the environment.

    :return bool: False when not running under pydev.
    """
    global _writer
    fds = environ.get(settings.IPC_FDS_ENV)
    if not fds:
        return False
    read_fd, write_fd = (int(fd) for fd in fds.split(","))
    _writer = os.fdopen(write_fd, "w", encoding="utf-8", buffering=1)
    reader = os.fdopen(read_fd, "rb")
    threading.Thread(target=_listen, args=(reader,), daemon=True, name="pydev-control").start()
    return True


def send(message: dict) -> None:
    """Writes one message to the supervisor. Does nothing when disconnected."""
    global _writer
    with _write_lock:
        if _writer is None:
            return
        try:
            _writer.write(json.dumps(message) + "\n")
        except (OSError, ValueError):
            _writer = None  # Supervisor is gone


def report_dependency(path: str) -> None:
    send({"type": "dependency-loaded", "required": path})


def report_error(exc: BaseException, will_terminate: bool) -> None:
    send({
        "type": "error",
        "error": type(exc).__name__,
        "message": str(exc),
        "willTerminate": will_terminate,
    })


def report_loaded() -> None:
    send({"type": "loaded"})


def on_message(handler: Callable[[Any], None]) -> Callable[[Any], None]:
    """Registers a handler for payloads sent by the supervisor. Usable as a decorator."""
    _handlers.append(handler)
    return handler


def _listen(reader: IO[bytes]) -> None:
    for line_bytes in iter(reader.readline, b""):
        line = line_bytes.decode("utf-8", errors="replace").strip()
        if not line:
            continue
        try:
            payload = json.loads(line)
        except json.JSONDecodeError:
            log.warning(f"pydev: ignoring malformed message {line!r}")
            continue
        _dispatch(payload)
    reader.close()


def _dispatch(payload: Any) -> None:
    handlers = list(_handlers)
    if not handlers:
        os.kill(os.getpid(), signal.SIGTERM)
        return
    for handler in handlers:
        try:
            handler(payload)
        except Exception:
            log.exception(f"pydev: message handler {handler!r} failed")


class DependencyReporter(importlib.abc.MetaPathFinder):
    """
    A meta path finder that finds nothing itself.

    It asks the finders behind it for each import and reports the file of
    every module they locate.
    """

    def __init__(self, report: Callable[[str], None]):
        self.report = report
        self._local = threading.local()

    def find_spec(self, fullname, path, target=None):
        if getattr(self._local, "searching", False):
            return None

        self._local.searching = True
        try:
            spec = None
            for finder in sys.meta_path:
                if finder is self or not hasattr(finder, "find_spec"):
                    continue
                spec = finder.find_spec(fullname, path, target)
                if spec is not None:
                    break
        finally:
            self._local.searching = False

        if spec is not None and spec.has_location and spec.origin:
            self.report(os.path.abspath(spec.origin))
        return spec

    def install(self) -> None:
        sys.meta_path.insert(0, self)
