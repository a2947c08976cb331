"""Operator policy: typed key/value store over a machine-wide backend.

Every key has a fixed type and constraint. Writes are validated as a batch
before anything is persisted. StoreUpdatesOriginalValue is the restoration
point for an external policy this agent overrides, so it is written at most
once (see SettingsStore.preserve_original).
"""

import json
import logging
import os
import re
from datetime import datetime

from wingetkeeper.core.errors import SettingsError

logger = logging.getLogger(__name__)

NOTIFICATION_LEVELS = ('Full', 'SuccessOnly', 'None')
UPDATE_INTERVALS = ('Daily', 'Every2Days', 'Weekly', 'Every2Weeks', 'Monthly')

ORIGINAL_VALUE_KEY = 'StoreUpdatesOriginalValue'

# Accepted UpdateTime spellings, normalised to HH:MM:SS
_TIME_FORMATS = ('%H:%M:%S', '%H:%M', '%I%p', '%I:%M%p')
_TIME_SPACES = re.compile(r'\s+')


def _flag(value) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int) and value in (0, 1):
        return value
    if isinstance(value, str) and value.strip().lower() in ('0', '1', 'true', 'false'):
        return 1 if value.strip().lower() in ('1', 'true') else 0
    raise ValueError(f"expected 0/1 or a boolean, got {value!r}")


def _choice(options):
    def convert(value) -> str:
        for option in options:
            if isinstance(value, str) and value.lower() == option.lower():
                return option
        raise ValueError(f"expected one of {', '.join(options)}, got {value!r}")
    return convert


def _string_list(value) -> list[str]:
    if isinstance(value, str):
        value = value.split(',')
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"expected a list of strings, got {value!r}")
    items = [str(v).strip() for v in value]
    return [v for v in items if v]


def _integer(value) -> int:
    if isinstance(value, bool):
        raise ValueError(f"expected an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"expected an integer, got {value!r}") from None


def normalize_time(value) -> str:
    """'6am', '16:00', '06:30PM' -> 'HH:MM:SS'."""
    if not isinstance(value, str):
        raise ValueError(f"expected a time of day, got {value!r}")
    text = _TIME_SPACES.sub('', value).upper()
    for fmt in _TIME_FORMATS:
        try:
            return datetime.strptime(text, fmt).strftime('%H:%M:%S')
        except ValueError:
            continue
    raise ValueError(f"expected a time of day like 16:00 or 6am, got {value!r}")


# key -> converter; each raises ValueError on a constraint violation
SCHEMA = {
    'NotificationLevel': _choice(NOTIFICATION_LEVELS),
    'AutoUpdate': _flag,
    'AutoUpdateBlocklist': _string_list,
    'DisableOnMetered': _flag,
    'MachineScopeOnly': _flag,
    'UpdateOnLogin': _flag,
    'UpdateInterval': _choice(UPDATE_INTERVALS),
    'UpdateTime': normalize_time,
    ORIGINAL_VALUE_KEY: _integer,
}


class JsonFileBackend:
    """Key/value backend stored in a single JSON file.

    Used where the registry is not available (development, tests). Each call
    re-reads the file so separate instances see each other's writes.
    """

    def __init__(self, path: str):
        self.path = path

    def _load(self) -> dict:
        if not os.path.isfile(self.path):
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Failed to read %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _dump(self, data: dict):
        os.makedirs(os.path.dirname(self.path) or '.', exist_ok=True)
        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2)

    def read(self, name: str):
        return self._load().get(name)

    def write(self, name: str, value):
        data = self._load()
        data[name] = value
        self._dump(data)

    def delete(self, name: str):
        data = self._load()
        if data.pop(name, None) is not None:
            self._dump(data)

    def names(self) -> list[str]:
        return list(self._load())


class SettingsStore:
    """Validated access to the persisted policy keys."""

    def __init__(self, backend):
        self._backend = backend

    def get(self, key: str):
        """Return the stored value, or None (with a warning) if nothing is set."""
        if key not in SCHEMA:
            raise SettingsError(f"Unknown setting: {key}")
        value = self._backend.read(key)
        if value is None:
            logger.warning("No value set for %s", key)
        return value

    def get_all(self) -> dict:
        """Every key that currently has a value."""
        result = {}
        for key in SCHEMA:
            value = self._backend.read(key)
            if value is not None:
                result[key] = value
        return result

    def set(self, **fields):
        """Write the supplied fields; keys not passed are left untouched.

        All fields are validated before the first write, so an invalid value
        leaves the store unchanged. StoreUpdatesOriginalValue goes through
        preserve_original() and is skipped if already stored.
        """
        validated = {}
        for key, value in fields.items():
            converter = SCHEMA.get(key)
            if converter is None:
                raise SettingsError(f"Unknown setting: {key}")
            try:
                validated[key] = converter(value)
            except ValueError as e:
                raise SettingsError(f"{key}: {e}") from None

        for key, value in validated.items():
            if key == ORIGINAL_VALUE_KEY:
                self.preserve_original(value)
                continue
            self._backend.write(key, value)
            logger.info("Set %s = %r", key, value)

    def preserve_original(self, value: int) -> bool:
        """Record the pre-override value of the external store policy.

        Returns False without writing when a value is already persisted.
        """
        value = _integer(value)
        existing = self._backend.read(ORIGINAL_VALUE_KEY)
        if existing is not None:
            logger.info("%s already recorded (%r), keeping it",
                        ORIGINAL_VALUE_KEY, existing)
            return False
        self._backend.write(ORIGINAL_VALUE_KEY, value)
        logger.info("Recorded %s = %d", ORIGINAL_VALUE_KEY, value)
        return True

    def unset(self, key: str):
        if key not in SCHEMA:
            raise SettingsError(f"Unknown setting: {key}")
        self._backend.delete(key)
        logger.info("Cleared %s", key)

    def flag(self, key: str) -> bool:
        """Integer flag as a bool; unset counts as off."""
        value = self._backend.read(key)
        return bool(value) if value is not None else False
