"""
Bootstrap that runs the wrapped script inside the child process.

    python -m pydev.wrap [--module] TARGET [ARGS...]

It connects the control channel, reports every file the script imports,
announces itself as loaded and then runs TARGET as `__main__`.
"""
import os
import sys
import runpy
import signal
import threading
import traceback
from typing import List, Optional, Tuple

from pydev import child, settings


def _parse_argv(argv: List[str]) -> Tuple[str, List[str], bool]:
    as_module = bool(argv) and argv[0] == "--module"
    if as_module:
        argv = argv[1:]
    if not argv:
        raise SystemExit("Usage: python -m pydev.wrap [--module] TARGET [ARGS...]")
    return argv[0], argv[1:], as_module


def _exit_on_sigterm(signum, frame) -> None:
    """Default SIGTERM behavior: a clean exit. Scripts may install their own handler."""
    sys.exit(0)


def _other_threads_keep_alive() -> bool:
    """True if non-daemon threads would keep the interpreter running after main returns."""
    main = threading.main_thread()
    return any(t is not main and t.is_alive() and not t.daemon for t in threading.enumerate())


def _run_preload() -> None:
    preload = os.environ.get(settings.PRELOAD_ENV)
    if preload:
        child.report_dependency(preload)
        runpy.run_path(preload, run_name="__pydev_preload__")


def main(argv: Optional[List[str]] = None) -> int:
    target, args, as_module = _parse_argv(sys.argv[1:] if argv is None else argv)

    child.connect()
    signal.signal(signal.SIGTERM, _exit_on_sigterm)
    child.DependencyReporter(child.report_dependency).install()

    if not as_module:
        target = os.path.abspath(target)
        sys.path[0] = os.path.dirname(target)
        child.report_dependency(target)

    _run_preload()
    sys.argv = [target, *args]
    child.report_loaded()

    try:
        if as_module:
            runpy.run_module(target, run_name="__main__", alter_sys=True)
        else:
            runpy.run_path(target, run_name="__main__")
    except (SystemExit, KeyboardInterrupt):
        raise
    except BaseException as exc:
        traceback.print_exc()
        child.report_error(exc, will_terminate=not _other_threads_keep_alive())
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
