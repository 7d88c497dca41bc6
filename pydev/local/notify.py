import sys
import shutil
import logging
import subprocess
from typing import List, Optional

from pydev import settings

log = logging.getLogger(__name__)

_LEVELS = {"info": logging.INFO, "warn": logging.WARNING, "error": logging.ERROR}


def _desktop_command(title: str, message: str, level: str) -> Optional[List[str]]:
    """Returns the platform's desktop notification command, or None if there is none."""
    if sys.platform == "darwin" and shutil.which("osascript"):
        # Text goes in as arguments so quotes in it cannot break the script
        return [
            "osascript",
            "-e", "on run argv",
            "-e", "display notification (item 2 of argv) with title (item 1 of argv)",
            "-e", "end run",
            title, message,
        ]
    if shutil.which("notify-send"):
        urgency = "critical" if level == "error" else "normal"
        return ["notify-send", "--app-name=pydev", f"--urgency={urgency}", title, message]
    return None


class Notifier:
    """Reports restarts and child errors in the log and, if enabled, on the desktop."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled

    def __call__(self, title: str, message: str, level: str = "info") -> None:
        log.log(_LEVELS.get(level, logging.INFO), f"{title}: {message}")
        if self.enabled:
            self._send_desktop_notification(title, message, level)

    def _send_desktop_notification(self, title: str, message: str, level: str) -> None:
        cmd = _desktop_command(title, message, level)
        if cmd is None:
            return
        try:
            subprocess.run(cmd, timeout=settings.NOTIFY_TIMEOUT, check=False, capture_output=True)
        except (OSError, subprocess.TimeoutExpired) as e:
            log.debug(f"Desktop notification failed: {e}")
