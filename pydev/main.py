import sys
import json
import logging
import argparse
from typing import Any, Dict, List, Optional, Tuple

import setproctitle

from pydev import __version__
from pydev.log.setup import setup_logging
from pydev.local.config import MergedSettings
from pydev.local.manager import ProcessManager
from pydev.local.supervisor.process_utils import build_command

log = logging.getLogger(__name__)

# Options that consume the following argument when given without `=`.
_OPTIONS_WITH_VALUE = {
    "--deps", "--graceful-ipc", "--ignore", "--preload", "--interval", "--debounce", "-X", "-W", "-m",
}


def split_argv(argv: List[str]) -> Tuple[List[str], List[str]]:
    """
    Splits the command line into pydev's own options and the child's command.

    The child's command starts at the first positional argument, or right after
    `-m MODULE`. Everything from there on is passed to the script untouched.

    :return tuple: (pydev arguments, script arguments).
    """
    i = 0
    while i < len(argv):
        arg = argv[i]
        if arg == "--":
            return argv[:i], argv[i + 1:]
        if not arg.startswith("-") or arg == "-":
            return argv[:i], argv[i:]
        if arg == "-m" or (arg.startswith("-m") and len(arg) > 2):
            end = i + 2 if arg == "-m" else i + 1
            return argv[:end], argv[end:]
        if arg in _OPTIONS_WITH_VALUE:
            i += 1
        i += 1
    return argv, []


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pydev",
        usage="pydev [options] [-X opt] [-W arg] (script | -m module) [arguments]",
        description="Runs a Python script and restarts it when one of the files it loaded changes.",
    )
    parser.add_argument("-m", dest="module", metavar="MODULE", help="Run a library module as a script.")
    parser.add_argument("-X", dest="x_options", action="append", default=[], metavar="OPT",
                        help="Implementation-specific option passed to the interpreter.")
    parser.add_argument("-W", dest="w_options", action="append", default=[], metavar="ARG",
                        help="Warning control passed to the interpreter.")
    parser.add_argument("--clear", action=argparse.BooleanOptionalAction, default=None,
                        help="Clear the screen on every restart.")
    parser.add_argument("--deps", type=int, metavar="N",
                        help="Watch dependencies up to N levels of site-packages deep (-1 for all).")
    parser.add_argument("--all-deps", dest="deps", action="store_const", const=-1,
                        help="Watch all dependencies, same as --deps=-1.")
    parser.add_argument("--graceful-ipc", type=json.loads, metavar="JSON",
                        help="Send this JSON payload to the child instead of SIGTERM.")
    parser.add_argument("--ignore", action="append", metavar="PATH",
                        help="Never watch files below PATH (repeatable).")
    parser.add_argument("--notify", action=argparse.BooleanOptionalAction, default=None,
                        help="Show desktop notifications.")
    parser.add_argument("--poll", action="store_true", default=None,
                        help="Poll for changes instead of using native file system events.")
    parser.add_argument("--interval", dest="poll_interval", type=float, metavar="SECONDS",
                        help="Polling interval.")
    parser.add_argument("--debounce", type=float, metavar="SECONDS",
                        help="Ignore repeated changes to a file within this window.")
    parser.add_argument("--respawn", action="store_true", default=None,
                        help="Keep watching for changes after the script exits.")
    parser.add_argument("--timestamp", action="store_true", default=None,
                        help="Prefix log output with the time of day.")
    parser.add_argument("--preload", metavar="PATH", help="Run this file in the child before the script.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _cli_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Collects the settings given on the command line."""
    keys = ("clear", "deps", "graceful_ipc", "ignore", "notify", "poll", "poll_interval",
            "debounce", "respawn", "timestamp", "preload")
    return {key.upper(): getattr(args, key) for key in keys if getattr(args, key) is not None}


def main(argv: Optional[List[str]] = None) -> int:
    """The main entry point for the pydev command."""
    own_args, script_args = split_argv(sys.argv[1:] if argv is None else argv)
    parser = build_parser()
    args = parser.parse_args(own_args)

    if args.module:
        target, as_module = args.module, True
    elif script_args:
        target, script_args, as_module = script_args[0], script_args[1:], False
    else:
        parser.print_usage()
        return 1

    config = MergedSettings(cli_overrides=_cli_overrides(args))
    setup_logging(logging.DEBUG if args.verbose else logging.INFO, timestamp=config.TIMESTAMP)

    interpreter_args = [f"-X{opt}" for opt in args.x_options] + [f"-W{opt}" for opt in args.w_options]
    command = build_command(interpreter_args, target, script_args, as_module=as_module)
    log.debug(f"Child command: {command}")

    setproctitle.setproctitle(f"pydev - {target}")
    manager = ProcessManager(command, config)
    manager.supervision_loop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
