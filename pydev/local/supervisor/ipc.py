"""
The control channel between the supervisor and its child.

Messages are JSON objects, one per line, over a pair of pipes the child
inherits. The child reports:

    {"type": "dependency-loaded", "required": "/abs/path.py"}
    {"type": "error", "error": "ValueError", "message": "...", "willTerminate": true}
    {"type": "loaded"}

The supervisor only ever sends the operator's graceful shutdown payload,
verbatim.
"""
import os
import json
import logging
import threading
from dataclasses import dataclass
from typing import IO, Any, Callable, Dict, Iterator, Tuple, Union

log = logging.getLogger(__name__)


class ProtocolError(ValueError):
    """Raised when a control message cannot be decoded."""
    pass


@dataclass(frozen=True)
class DependencyLoaded:
    path: str


@dataclass(frozen=True)
class FatalError:
    error: str
    message: str
    will_terminate: bool = False


@dataclass(frozen=True)
class Ready:
    pass


ControlMessage = Union[DependencyLoaded, FatalError, Ready]


def decode(raw: Any) -> ControlMessage:
    """
    Converts a raw wire message into a ControlMessage.

    Only the presence of the fields each message type needs is checked.

    :raises ProtocolError: If the message type is unknown or a field is missing.
    """
    if not isinstance(raw, dict):
        raise ProtocolError(f"Control message must be an object, got {type(raw).__name__}")

    kind = raw.get("type")
    try:
        if kind == "dependency-loaded":
            return DependencyLoaded(path=str(raw["required"]))
        if kind == "error":
            return FatalError(
                error=str(raw["error"]),
                message=str(raw.get("message", "")),
                will_terminate=bool(raw.get("willTerminate", False)),
            )
        if kind == "loaded":
            return Ready()
    except KeyError as e:
        raise ProtocolError(f"Control message '{kind}' is missing field {e}") from e
    raise ProtocolError(f"Unknown control message type {kind!r}")


def encode(message: ControlMessage) -> Dict[str, Any]:
    """Converts a ControlMessage into its wire representation."""
    if isinstance(message, DependencyLoaded):
        return {"type": "dependency-loaded", "required": message.path}
    if isinstance(message, FatalError):
        return {
            "type": "error",
            "error": message.error,
            "message": message.message,
            "willTerminate": message.will_terminate,
        }
    if isinstance(message, Ready):
        return {"type": "loaded"}
    raise TypeError(f"Not a control message: {message!r}")


def iter_lines(stream: IO[bytes]) -> Iterator[Any]:
    """Yields decoded JSON values from a newline-delimited stream until EOF."""
    for line_bytes in iter(stream.readline, b""):
        line = line_bytes.decode("utf-8", errors="replace").strip()
        if not line:
            continue
        try:
            yield json.loads(line)
        except json.JSONDecodeError as e:
            log.error(f"Dropping malformed control line {line!r}: {e}")


def open_pipes() -> Tuple[Tuple[int, int], Tuple[int, int]]:
    """
    Creates the two pipes backing a control channel.

    :return tuple: ((parent_read, parent_write), (child_read, child_write)) file descriptors.
    """
    child_to_parent_r, child_to_parent_w = os.pipe()
    parent_to_child_r, parent_to_child_w = os.pipe()
    os.set_inheritable(parent_to_child_r, True)
    os.set_inheritable(child_to_parent_w, True)
    return (child_to_parent_r, parent_to_child_w), (parent_to_child_r, child_to_parent_w)


class ControlChannel:
    """The supervisor's end of the control channel shared with one child."""

    def __init__(self, reader: IO[bytes], writer: IO[bytes]):
        self._reader = reader
        self._writer = writer
        self._connected = True
        self._lock = threading.Lock()

    @classmethod
    def from_fds(cls, read_fd: int, write_fd: int) -> "ControlChannel":
        return cls(os.fdopen(read_fd, "rb"), os.fdopen(write_fd, "wb"))

    @property
    def connected(self) -> bool:
        return self._connected

    def send(self, payload: Any) -> bool:
        """
        Sends a JSON payload to the child.

        :return bool: False if the channel is disconnected or the child is gone.
        """
        with self._lock:
            if not self._connected:
                log.debug("Control channel is disconnected, not sending.")
                return False
            try:
                self._writer.write(json.dumps(payload).encode("utf-8") + b"\n")
                self._writer.flush()
                return True
            except OSError as e:
                log.warning(f"Could not send to child, disconnecting: {e}")
                self._close_writer()
                return False

    def disconnect(self) -> None:
        """Closes the sending side. Anything the child still sends is discarded."""
        with self._lock:
            if self._connected:
                log.debug("Disconnecting control channel.")
                self._close_writer()

    def close(self) -> None:
        """Closes both ends. Only for channels that were never listened on."""
        self.disconnect()
        self._reader.close()

    def _close_writer(self) -> None:
        self._connected = False
        try:
            self._writer.close()
        except OSError:
            pass  # Pipe already broken

    def listen(self, on_message: Callable[[ControlMessage], None]) -> threading.Thread:
        """
        Starts a daemon thread that decodes incoming messages and hands them to `on_message`.

        :param on_message: Called from the reader thread for every decoded message.
        :return threading.Thread: The started reader thread. It ends once every end of the
            child's pipe is closed, after the last message was handed over.
        """
        thread = threading.Thread(
            target=self._read_loop,
            args=(on_message,),
            daemon=True,
            name="ControlChannelReader",
        )
        thread.start()
        return thread

    def _read_loop(self, on_message: Callable[[ControlMessage], None]) -> None:
        try:
            for raw in iter_lines(self._reader):
                if not self._connected:
                    continue
                try:
                    message = decode(raw)
                except ProtocolError as e:
                    log.error(f"Dropping invalid control message: {e}")
                    continue
                on_message(message)
        except (OSError, ValueError) as e:
            log.debug(f"Control channel reader exited: {e}")
        finally:
            self._reader.close()
