"""
This module contains the default configuration settings for pydev.
It defines the dependency watching rules, the child lifecycle options and the
console output options. Every value can be overridden from the environment
(or a .env file), from .pydev.json files and from the command line.
"""

import os
import sys
import json
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

#* --- Core Paths ---
CONFIG_FILE_NAME = ".pydev.json"
USER_CONFIG_PATH = pathlib.Path.home() / CONFIG_FILE_NAME

#* --- Python Executable Configuration ---
# The interpreter used to run the wrapped script. Defaults to the one running pydev.
PYTHON_EXECUTABLE = os.getenv("PYDEV_PYTHON") or sys.executable
WRAPPER_MODULE = "pydev.wrap"

#* --- Dependency Watching ---
# Path segments that mark the root of an installed distribution tree.
DEPENDENCY_MARKERS = ("site-packages", "dist-packages")
UNLIMITED_DEPTH = -1
DEPS = int(os.getenv("PYDEV_DEPS", "1"))
IGNORE = [p for p in os.getenv("PYDEV_IGNORE", "").split(os.pathsep) if p]
POLL = os.getenv("PYDEV_POLL", "False").lower() in ('true', '1', 't')
POLL_INTERVAL = float(os.getenv("PYDEV_POLL_INTERVAL", "1.0"))  # seconds
DEBOUNCE = float(os.getenv("PYDEV_DEBOUNCE", "0.1"))  # seconds

#* --- Manager/Supervisor Settings ---
SUPERVISOR_SLEEP_INTERVAL = 0.5  # seconds the loop waits for an event before checking again
CHANNEL_DRAIN_TIMEOUT = 2.0  # seconds an exit waits for the child's last control messages

#* --- Child Lifecycle ---
RESPAWN = os.getenv("PYDEV_RESPAWN", "False").lower() in ('true', '1', 't')
# JSON payload sent over the control channel instead of SIGTERM, e.g. {"type": "shutdown"}
GRACEFUL_IPC = json.loads(os.getenv("PYDEV_GRACEFUL_IPC")) if os.getenv("PYDEV_GRACEFUL_IPC") else None
PRELOAD = os.getenv("PYDEV_PRELOAD") or None

#* --- Console Output ---
CLEAR = os.getenv("PYDEV_CLEAR", "False").lower() in ('true', '1', 't')
NOTIFY = os.getenv("PYDEV_NOTIFY", "True").lower() in ('true', '1', 't')
TIMESTAMP = os.getenv("PYDEV_TIMESTAMP", "False").lower() in ('true', '1', 't')
CLEAR_SCREEN_SEQUENCE = "\033[2J\033[H"
NOTIFY_TIMEOUT = 5  # seconds before giving up on the desktop notifier

#* --- Environment handed to the child ---
IPC_FDS_ENV = "PYDEV_IPC_FDS"
PRELOAD_ENV = "PYDEV_PRELOAD"

#* --- MODIFIABLE SETTINGS (Changeable via .pydev.json files and the command line) ---
MODIFIABLE_SETTINGS = {
    # Dependency watching
    "DEPS", "IGNORE", "POLL", "POLL_INTERVAL", "DEBOUNCE",
    # Child lifecycle
    "RESPAWN", "GRACEFUL_IPC", "PRELOAD",
    # Console output
    "CLEAR", "NOTIFY", "TIMESTAMP",
}
