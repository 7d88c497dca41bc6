import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import pydev.settings as default_settings

log = logging.getLogger(__name__)


class MergedSettings:
    """
    Merges the default settings with .pydev.json files and command-line overrides.

    This class provides a unified, attribute-based access point for the
    supervisor's configuration. It follows a clear precedence:
    1. Base values from `settings.py` (including `PYDEV_*` environment variables).
    2. Overrides from `~/.pydev.json`.
    3. Overrides from `.pydev.json` in the working directory.
    4. Overrides given on the command line.

    Only keys listed in `MODIFIABLE_SETTINGS` can be overridden.
    """

    def __init__(self, cli_overrides: Optional[Dict[str, Any]] = None, cwd: Optional[Path] = None) -> None:
        """
        Initializes the settings object by loading defaults and overrides.

        :param cli_overrides: Settings given on the command line, keyed by setting name.
        :param cwd: The directory searched for a project-level config file.
        """
        self.cwd = Path(cwd) if cwd is not None else Path.cwd()

        self._load_defaults()
        for path in (default_settings.USER_CONFIG_PATH, self.cwd / default_settings.CONFIG_FILE_NAME):
            self._load_overrides_file(path)
        self.apply_overrides(cli_overrides or {}, source="command line")

        self.IGNORE = [str((self.cwd / p).resolve()) for p in self.IGNORE]

    def _load_defaults(self) -> None:
        """Loads all uppercase attributes from the settings.py module as defaults."""
        for key in dir(default_settings):
            if key.isupper():
                setattr(self, key, getattr(default_settings, key))

    def _load_overrides_file(self, path: Path) -> None:
        """Loads and applies settings from a single JSON config file, if present."""
        if not path.is_file():
            return

        try:
            with path.open('r') as f:
                overrides = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            log.error(f"Failed to load or parse config file '{path}': {e}")
            return

        if not isinstance(overrides, dict):
            log.error(f"Config file '{path}' must contain a JSON object. Ignoring.")
            return

        log.debug(f"Loading configuration overrides from {path}")
        self.apply_overrides(overrides, source=str(path))

    def apply_overrides(self, overrides: Dict[str, Any], source: str) -> None:
        """
        Applies a dictionary of overrides, coercing each value to the type of its default.

        :param overrides: Setting names (any case) mapped to their new values.
        :param source: Where the overrides came from, for log messages.
        """
        for raw_key, value in overrides.items():
            key = str(raw_key).upper().replace("-", "_")
            if not hasattr(self, key):
                log.warning(f"Unknown setting '{raw_key}' in {source}. Ignoring.")
                continue
            if key not in self.MODIFIABLE_SETTINGS:
                log.warning(f"Attempted to override non-modifiable setting '{raw_key}' in {source}. Ignoring.")
                continue

            try:
                setattr(self, key, self._coerce(key, value))
                log.debug(f"Overridden setting: {key} = {value!r} ({source})")
            except (ValueError, TypeError) as e:
                log.error(f"Could not convert value {value!r} for '{key}' from {source}: {e}")

    def _coerce(self, key: str, value: Any) -> Any:
        """Converts a value to the type of the current value of `key`."""
        if key == "GRACEFUL_IPC":
            return value  # Arbitrary JSON, sent verbatim

        original_value = getattr(self, key)
        if isinstance(original_value, bool):
            if isinstance(value, str):
                return value.lower() in ('true', '1', 't', 'yes', 'y')
            return bool(value)
        if isinstance(original_value, list):
            return [value] if isinstance(value, str) else list(value)
        if original_value is not None and value is not None:
            return type(original_value)(value)
        return value

    def ignore_prefixes(self) -> List[str]:
        """Returns the absolute path prefixes that are never watched."""
        return list(self.IGNORE)
