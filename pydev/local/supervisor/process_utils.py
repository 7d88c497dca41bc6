import os
import sys
import signal
import logging
import threading
import subprocess
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from pydev import settings
from . import ipc
from .ipc import ControlChannel

log = logging.getLogger(__name__)


#* --- Launch Command ---
def get_python_executable(script: str, python: str = settings.PYTHON_EXECUTABLE) -> str:
    """
    Returns the interpreter used to run `script`.

    On Windows, `.pyw` scripts run under the console-less `pythonw.exe` that
    sits next to the configured interpreter, if there is one.
    """
    if sys.platform == "win32" and Path(script).suffix == ".pyw":
        pythonw = Path(python).with_name("pythonw.exe")
        if pythonw.exists():
            return str(pythonw)
    return python


def build_command(
    interpreter_args: Sequence[str],
    script: str,
    script_args: Sequence[str],
    as_module: bool = False,
    python: str = settings.PYTHON_EXECUTABLE,
) -> List[str]:
    """
    Builds the command line that runs `script` inside the pydev bootstrap.

    :param interpreter_args: Options for the interpreter itself (e.g. ['-X', 'dev']).
    :param script: Path of the script, or a module name when `as_module` is set.
    :param script_args: Arguments passed through to the script.
    :param as_module: Run `script` like `python -m script`.
    :return list: The full argument vector.
    """
    cmd = [get_python_executable(script, python), *interpreter_args, "-m", settings.WRAPPER_MODULE]
    if as_module:
        cmd.append("--module")
    cmd.append(script)
    cmd.extend(script_args)
    return cmd


def build_child_env(child_fds: Tuple[int, int], preload: Optional[str] = None) -> Dict[str, str]:
    """
    Returns the environment for a new child: ours, plus the control channel
    descriptors and the optional preload file.
    """
    env = dict(os.environ)
    env[settings.IPC_FDS_ENV] = f"{child_fds[0]},{child_fds[1]}"
    if preload:
        env[settings.PRELOAD_ENV] = str(Path(preload).resolve())
    return env


#* --- Process Creation ---
def spawn_process(cmd: List[str], env: Dict[str, str], pass_fds: Tuple[int, ...]) -> subprocess.Popen:
    """
    Starts the child in the current working directory with inherited stdio.

    The child-side pipe ends are closed in this process once the child has them.
    """
    try:
        return subprocess.Popen(cmd, cwd=os.getcwd(), env=env, pass_fds=pass_fds)
    finally:
        for fd in pass_fds:
            os.close(fd)


def watch_exit(
    process: subprocess.Popen,
    on_exit: Callable[[int], None],
    reader: Optional[threading.Thread] = None,
) -> threading.Thread:
    """
    Starts a daemon thread that waits for `process` and reports its return code.

    :param reader: The control channel reader. The exit is reported only after it has
        handed over everything the child wrote before exiting.
    """
    def _wait() -> None:
        returncode = process.wait()
        if reader is not None:
            # Grandchildren may hold the pipe open, so the wait is bounded
            reader.join(timeout=settings.CHANNEL_DRAIN_TIMEOUT)
        on_exit(returncode)

    thread = threading.Thread(target=_wait, daemon=True, name=f"ExitWatcher-{process.pid}")
    thread.start()
    return thread


def exit_code(returncode: int) -> int:
    """Maps a Popen return code to a shell exit code (death by signal N becomes 128 + N)."""
    if returncode < 0:
        return 128 - returncode
    return returncode


def signal_name(returncode: int) -> Any:
    """Returns the name of the signal that killed a process, or the return code itself."""
    if returncode < 0:
        try:
            return signal.Signals(-returncode).name
        except ValueError:
            pass
    return returncode


def launch_child(cmd: List[str], preload: Optional[str] = None) -> Tuple[subprocess.Popen, ControlChannel]:
    """
    Starts a child process with a fresh control channel.

    :param cmd: The command built by `build_command`.
    :param preload: Optional file the child runs before the script.
    :return tuple: The Popen object and the supervisor's end of the channel.
    :raises OSError: If the process could not be spawned.
    """
    parent_fds, child_fds = ipc.open_pipes()
    channel = ControlChannel.from_fds(*parent_fds)
    try:
        process = spawn_process(cmd, build_child_env(child_fds, preload), child_fds)
    except OSError:
        channel.close()
        raise
    log.debug(f"Started child with PID {process.pid}: {' '.join(cmd)}")
    return process, channel
