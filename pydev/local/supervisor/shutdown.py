import json
import psutil
import logging
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from .ipc import ControlChannel
    from .supervisor import Child

log = logging.getLogger(__name__)


def terminate_process(pid: int) -> bool:
    """
    Sends SIGTERM to the process with the given PID.

    :param pid: The PID of the child.
    :return: True if the signal was sent, False if the process no longer exists.
    """
    try:
        proc = psutil.Process(pid)
        log.debug(f"Sending SIGTERM to {proc.name()} (PID {pid})")
        proc.terminate()
        return True
    except psutil.NoSuchProcess:
        log.debug(f"Process {pid} no longer exists, skipping termination.")
        return False


def send_graceful_payload(channel: Optional["ControlChannel"], payload: Any) -> bool:
    """Sends the operator's shutdown payload over the control channel."""
    log.info("Sending IPC: " + json.dumps(payload))
    if channel is None:
        return False
    return channel.send(payload)


def request_termination(child: "Child", graceful_payload: Any = None) -> None:
    """
    Asks a child to shut down: with the graceful payload when one is configured,
    otherwise with SIGTERM.

    :param child: The child to stop.
    :param graceful_payload: The configured payload, or None for a forceful signal.
    """
    if graceful_payload is not None:
        send_graceful_payload(child.channel, graceful_payload)
    elif child.pid is not None:
        terminate_process(child.pid)
