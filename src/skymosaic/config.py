"""
config.py

String-keyed run settings consulted by the mosaicking components.
"""

# === Imports ======================================================================================

import logging
import os
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path

from skymosaic.errors import ConfigurationError

logger = logging.getLogger(__name__)

# === Main =========================================================================================

class Settings:
    """
    Case-insensitive key/value store.

    Values are kept as strings. Array valued settings are stored comma separated, and a key given
    without a value (``"NoNormalize"``) is stored as ``"1"`` so that only its presence matters.
    """

    def __init__(self, values: Mapping[str, object] | None = None):
        self._values: dict[str, str] = {}
        self._names: dict[str, str] = {}
        for key, value in (values or {}).items():
            self.put(key, value)

    # Special methods
    def __contains__(self, key: str) -> bool:
        return self.has(key)

    def __getitem__(self, key: str) -> str:
        try:
            return self._values[key.lower()]
        except KeyError as err:
            raise KeyError(f"Setting '{key}' is not defined.") from err

    def __iter__(self) -> Iterator[str]:
        return iter(self._names.values())

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        items = ", ".join(f"{self._names[k]}={v!r}" for k, v in self._values.items())
        return f"Settings({items})"

    # Queries
    def has(self, key: str) -> bool:
        return key.lower() in self._values

    def get(self, key: str, default: str | None = None) -> str | None:
        return self._values.get(key.lower(), default)

    def get_array(self, key: str) -> list[str]:
        """Comma separated setting as a list (empty when the key is absent)."""
        value = self.get(key)
        if value is None:
            return []
        return [item.strip() for item in value.split(",")]

    def get_float(self, key: str, default: float | None = None) -> float | None:
        """Numeric setting; a malformed value is a configuration error."""
        value = self.get(key)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError as err:
            raise ConfigurationError(f"Setting '{key}' is not numeric: {value!r}") from err

    def get_int(self, key: str, default: int | None = None) -> int | None:
        value = self.get_float(key)
        if value is None:
            return default
        if value != int(value):
            raise ConfigurationError(f"Setting '{key}' is not an integer: {self.get(key)!r}")
        return int(value)

    # Updates
    def put(self, key: str, value: object = None) -> None:
        if not key:
            raise ConfigurationError("Settings keys must be non-empty strings.")
        if value is None:
            value = "1"
        value = str(value)

        # Strip matching quotes
        if len(value) > 1 and value[0] in "'\"" and value[-1] == value[0]:
            value = value[1:-1]

        self._values[key.lower()] = value
        self._names[key.lower()] = key

    def suggest(self, key: str, value: object) -> None:
        """Set a value only if the user has not supplied one (or asked for the default)."""
        current = self.get(key)
        if current is not None and current.lower() != "default":
            return
        self.put(key, value)

    def add(self, key: str, value: str) -> None:
        """Append a value to an array setting, ignoring duplicates."""
        current = self.get_array(key)
        if value in current:
            return
        self.put(key, ",".join([*current, value]))

    def remove(self, key: str) -> None:
        self._values.pop(key.lower(), None)
        self._names.pop(key.lower(), None)

    def update_from_args(self, args: Iterable[str]) -> None:
        """Apply ``key=value`` (or bare ``key``) arguments."""
        for arg in args:
            arg = arg.strip()
            if not arg:
                continue
            key, sep, value = arg.partition("=")
            self.put(key, value if sep else None)

    def update_from_file(self, path: str | os.PathLike) -> None:
        """
        Read settings from a ``key=value`` file.

        Blank lines and lines starting with ``#`` are ignored. A value starting with ``$`` is taken
        from the named environment variable and skipped if that variable is not set.
        """
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Settings file '{path}' not found.")

        for lineno, line in enumerate(path.read_text().splitlines(), start=1):
            line = line.strip()
            if len(line) < 2 or line.startswith("#"):
                continue
            key, sep, value = line.partition("=")
            key = key.strip()
            if not key:
                logger.warning("Unparseable line %d in settings file %s: %s", lineno, path, line)
                continue
            value = value.strip() if sep else None
            if value and value.startswith("$"):
                value = os.environ.get(value[1:])
                if value is None:
                    continue
            self.put(key, value)

    def copy(self) -> "Settings":
        new = Settings()
        for key in self:
            new.put(key, self[key])
        return new


def default_settings() -> Settings:
    """Settings initialized from the file named by ``SKYMOSAIC_SETTINGS`` if it is set."""
    settings = Settings()
    path = os.environ.get("SKYMOSAIC_SETTINGS")
    if path:
        settings.update_from_file(path)
    return settings
