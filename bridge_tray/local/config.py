import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import bridge_tray.settings as default_settings

log = logging.getLogger(__name__)

HEALTH_TIMING_KEYS = ("HEALTH_POLL_INTERVAL", "HEALTH_CHECK_TIMEOUT")


def health_timing_error(poll_interval: Any, timeout: Any) -> Optional[str]:
    """
    Checks a poll interval / request timeout pair.

    :return: A description of the problem, or None if the pair is usable.
    """
    for name, value in (("poll interval", poll_interval), ("timeout", timeout)):
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            return f"Health check {name} must be a positive number, got '{value}'."
    if timeout >= poll_interval:
        return f"Health check timeout ({timeout}s) must be shorter than the poll interval ({poll_interval}s)."
    return None


class MergedSettings:
    """
    A singleton class that merges default settings with JSON/env overrides.

    This class provides a unified, attribute-based access point for all
    host configuration. It follows a clear precedence:
    1. Base values from `settings.py`.
    2. Overrides from `.env` file (handled by `python-dotenv` in settings.py).
    3. Overrides from `overrides.json` for settings in `MODIFIABLE_SETTINGS`.
    """

    def __init__(self) -> None:
        """Initializes the settings object by loading defaults and overrides."""
        self.OVERRIDES_JSON_PATH: Path = default_settings.OVERRIDES_JSON_PATH
        self.start_time = None

        self._load_defaults()
        self._load_overrides()

    def _load_defaults(self) -> None:
        """Loads all uppercase attributes from the settings.py module as defaults."""
        for key in dir(default_settings):
            if key.isupper():
                setattr(self, key, getattr(default_settings, key))

    def _load_overrides(self) -> None:
        """
        Loads and applies settings from the `overrides.json` file.

        Only keys listed in `MODIFIABLE_SETTINGS` are applied.
        """
        if not self.OVERRIDES_JSON_PATH.exists():
            return

        try:
            with self.OVERRIDES_JSON_PATH.open('r') as f:
                overrides = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            log.error(f"Failed to load or parse overrides file '{self.OVERRIDES_JSON_PATH}': {e}")
            return

        if not isinstance(overrides, dict):
            log.error(f"Overrides file '{self.OVERRIDES_JSON_PATH}' does not contain a JSON object. Ignoring.")
            return

        log.info(f"Loading runtime configuration overrides from {self.OVERRIDES_JSON_PATH}")
        for key, value in overrides.items():
            if not hasattr(self, key):
                log.warning(f"Override setting '{key}' not found in default settings. Ignoring.")
                continue
            if key not in self.MODIFIABLE_SETTINGS:
                log.warning(f"Attempted to override non-modifiable setting '{key}'. Ignoring.")
                continue
            setattr(self, key, value)
            log.debug(f"Overridden setting: {key} = {value}")

        problem = health_timing_error(self.HEALTH_POLL_INTERVAL, self.HEALTH_CHECK_TIMEOUT)
        if problem:
            log.error(f"Ignoring health polling overrides in '{self.OVERRIDES_JSON_PATH}': {problem}")
            for key in HEALTH_TIMING_KEYS:
                setattr(self, key, getattr(default_settings, key))

    def get(self, item: str, default: Any = None) -> Any:
        """Provides dictionary-like access to settings with a default value."""
        return getattr(self, item, default)

    def modifiable_settings(self) -> Dict[str, Any]:
        """Returns the current value of every runtime-modifiable setting."""
        return {key: getattr(self, key, None) for key in sorted(self.MODIFIABLE_SETTINGS)}

    def update_setting(self, key: str, value: Any) -> Tuple[bool, str]:
        """
        Updates a modifiable setting, coercing the value to the type of the
        current one, and persists it to the overrides file.

        :param key: The setting name (case-sensitive, uppercase).
        :param value: The new value, usually a string typed at the console.
        :return: A tuple of (success, human-readable message).
        """
        if key not in self.MODIFIABLE_SETTINGS:
            message = f"Setting '{key}' is not modifiable."
            log.warning(f"Rejected config update: {message}")
            return False, message

        original_value = getattr(self, key, None)
        try:
            if isinstance(original_value, bool):
                new_value = str(value).lower() in ('true', '1', 't', 'yes', 'y')
            elif original_value is not None:
                new_value = type(original_value)(value)
            else:
                new_value = value
        except (ValueError, TypeError) as e:
            message = f"Could not convert value '{value}' for key '{key}'. Error: {e}"
            log.error(f"Config update failed: {message}")
            return False, message

        if key in HEALTH_TIMING_KEYS:
            timing = {k: getattr(self, k) for k in HEALTH_TIMING_KEYS}
            timing[key] = new_value
            problem = health_timing_error(timing["HEALTH_POLL_INTERVAL"], timing["HEALTH_CHECK_TIMEOUT"])
            if problem:
                log.warning(f"Rejected config update: {problem}")
                return False, problem

        setattr(self, key, new_value)
        self.save_overrides(self.modifiable_settings())
        message = f"Setting '{key}' updated to '{new_value}'. Restart the sidecar for it to take full effect."
        log.info(message)
        return True, message

    def save_overrides(self, overrides_to_save: Dict[str, Any]) -> None:
        """
        Saves the provided dictionary of settings to the overrides JSON file.

        Keys not present in `MODIFIABLE_SETTINGS` are filtered out.

        :param overrides_to_save: A dictionary of settings to persist.
        """
        filtered_overrides = {
            key: value
            for key, value in overrides_to_save.items()
            if key in self.MODIFIABLE_SETTINGS
        }

        if not filtered_overrides:
            log.warning("No modifiable settings provided to save.")
            return

        try:
            self.OVERRIDES_JSON_PATH.parent.mkdir(parents=True, exist_ok=True)
            with self.OVERRIDES_JSON_PATH.open('w') as f:
                json.dump(filtered_overrides, f, indent=4)
            log.info(f"Configuration overrides saved to {self.OVERRIDES_JSON_PATH}")
        except IOError as e:
            log.error(f"Failed to write to overrides file '{self.OVERRIDES_JSON_PATH}': {e}")

# Create a singleton instance to be imported by other modules
app_globals = MergedSettings()
