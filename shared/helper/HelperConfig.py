"""Central configuration helper for the drive recognition bridge."""

import logging
import os

from shared.helper.errors import ConfigurationError

_TRUE_VALUES = ("true", "1", "yes", "on")
_FALSE_VALUES = ("false", "0", "no", "off")


class HelperConfig:
    """Reads all settings from environment variables.

    Keys are case-insensitive. An empty variable counts as unset, so a default
    applies to it as well.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    @staticmethod
    def _read(key: str) -> str | None:
        raw = os.getenv(key.upper())
        if raw is None or not raw.strip():
            return None
        return raw.strip()

    @staticmethod
    def _missing(key: str) -> ConfigurationError:
        return ConfigurationError(f"Environment variable '{key.upper()}' is not set.")

    def get_string_val(self, key: str, default: str | None = None) -> str:
        """Read a string environment variable.

        Raises:
            ConfigurationError: If the variable is not set and no default is provided.
        """
        val = self._read(key)
        if val is None:
            if default is None:
                raise self._missing(key)
            return default
        return val

    def get_number_val(self, key: str, default: float | int | None = None) -> float | int:
        """Read a numeric environment variable. Values with a decimal point are floats.

        Raises:
            ConfigurationError: If the variable is not set and no default is provided,
                or if the value cannot be parsed as a number.
        """
        raw = self._read(key)
        if raw is None:
            if default is None:
                raise self._missing(key)
            return default
        try:
            return int(raw) if "." not in raw else float(raw)
        except ValueError:
            raise ConfigurationError(f"Environment variable '{key.upper()}' is not a valid number: '{raw}'.")

    def get_int_val(self, key: str, default: int | None = None, minimum: int | None = None) -> int:
        """Read an integer environment variable, e.g. a budget or a period in seconds.

        Args:
            key (str): Environment variable name.
            default (int | None): Fallback value if the variable is not set.
            minimum (int | None): Smallest accepted value.

        Raises:
            ConfigurationError: If the variable is missing without default, not an integer,
                or below the minimum.
        """
        value = self.get_number_val(key, default=default)
        if isinstance(value, float) and not value.is_integer():
            raise ConfigurationError(f"Environment variable '{key.upper()}' must be an integer, got '{value}'.")
        value = int(value)
        if minimum is not None and value < minimum:
            raise ConfigurationError(f"Environment variable '{key.upper()}' must be at least {minimum}, got {value}.")
        return value

    def get_bool_val(self, key: str, default: bool | None = None) -> bool:
        """Read a boolean environment variable (true/false, 1/0, yes/no, on/off).

        Raises:
            ConfigurationError: If the variable is not set and no default is provided,
                or if the value is not a recognised boolean.
        """
        raw = self._read(key)
        if raw is None:
            if default is None:
                raise self._missing(key)
            return default
        lowered = raw.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ConfigurationError(f"Environment variable '{key.upper()}' is not a valid boolean: '{raw}'.")

    def get_list_val(self, key: str, default: list | None = None, separator: str = ",", element_type: type = str) -> list:
        """Read a list environment variable, either "a,b" or "[a,b]".

        Raises:
            ConfigurationError: If the variable is not set and no default is provided,
                or if an element cannot be cast to element_type.
        """
        raw = self._read(key)
        if raw is None:
            if default is None:
                raise self._missing(key)
            return default
        if raw.startswith("[") and raw.endswith("]"):
            raw = raw[1:-1]
        elements = [v.strip() for v in raw.split(separator) if v.strip()]
        try:
            return [element_type(elem) for elem in elements]
        except ValueError as e:
            raise ConfigurationError(f"Environment variable '{key.upper()}' contains invalid elements for type {element_type.__name__}: {e}")

    def get_logger(self) -> logging.Logger:
        """Return the application logger."""
        return self._logger
