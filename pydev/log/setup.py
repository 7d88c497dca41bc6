import sys
import logging


class MainFormatter(logging.Formatter):
    """
    Formats supervisor messages so they stand apart from the child's own output.

    Messages are prefixed with `[pydev]`, warnings and errors carry their level
    name, and an `HH:MM:SS` timestamp is added when requested.
    """

    def __init__(self, timestamp: bool = False):
        super().__init__(datefmt='%H:%M:%S')
        self.timestamp = timestamp

    def format(self, record):
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"

        if record.levelno >= logging.WARNING:
            message = f"{record.levelname}: {message}"
        if self.timestamp:
            message = f"{self.formatTime(record, self.datefmt)} {message}"
        return f"[pydev] {message}"


def setup_logging(console_level: int = logging.INFO, timestamp: bool = False) -> None:
    """
    Configures the root logger for the supervisor.
    Clears any previously configured handlers to prevent duplication.

    :param console_level: The logging level for the console output (e.g., logging.INFO).
    :param timestamp: If True, every line is prefixed with the time of day.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(console_level)

    # Clear any existing handlers to prevent re-adding them on re-runs
    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    # --- Console Handler ---
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(MainFormatter(timestamp=timestamp))
    root_logger.addHandler(console_handler)
