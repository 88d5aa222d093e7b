"""Environment-backed settings for the health record service and its clients."""

import logging
import os
from pathlib import Path
from typing import Any

_TRUE_VALUES = ("true", "1", "yes")


class HelperConfig:
    """Typed access to environment variables plus the shared application logger.

    Keys are case-insensitive. An empty variable counts as unset. Passing a
    default of None makes a variable mandatory.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    def _read(self, key: str, default: Any) -> tuple[str, str | None]:
        key = key.upper()
        raw = (os.getenv(key) or "").strip() or None
        if raw is None and default is None:
            raise ValueError(f"Environment variable '{key}' is not set.")
        return key, raw

    def get_string_val(self, key: str, default: str | None = None) -> str:
        """
        Raises:
            ValueError: If the variable is unset and default is None.
        """
        _, raw = self._read(key, default)
        return raw if raw is not None else default

    def get_number_val(self, key: str, default: float | int | None = None) -> float | int:
        """Read an int, or a float when the value contains a dot.

        Raises:
            ValueError: If the variable is unset and default is None, or is not a number.
        """
        key, raw = self._read(key, default)
        if raw is None:
            return default
        try:
            return float(raw) if "." in raw else int(raw)
        except ValueError:
            raise ValueError(f"Environment variable '{key}' is not a valid number: '{raw}'.")

    def get_bool_val(self, key: str, default: bool | None = None) -> bool:
        """True for "true", "1" or "yes" (any case), False for anything else."""
        _, raw = self._read(key, default)
        if raw is None:
            return default
        return raw.lower() in _TRUE_VALUES

    def get_list_val(self, key: str, default: list[str] | None = None, separator: str = ",") -> list[str]:
        """Read a bracketed list such as "[firebase,local]". Blank elements are dropped.

        Raises:
            ValueError: If the variable is unset and default is None, or is not wrapped in brackets.
        """
        key, raw = self._read(key, default)
        if raw is None:
            return default
        if not (raw.startswith("[") and raw.endswith("]")):
            raise ValueError(f"Environment variable '{key}' must look like '[a{separator}b]', got '{raw}'.")
        return [item.strip() for item in raw[1:-1].split(separator) if item.strip()]

    def get_path_val(self, key: str, default: Path | None = None) -> Path:
        """Read a filesystem path, expanding "~". The path need not exist."""
        raw = self.get_string_val(key, default=str(default) if default is not None else None)
        return Path(raw).expanduser()

    def get_logger(self) -> logging.Logger:
        return self._logger
