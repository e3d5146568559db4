"""Configuration defaults and config-file loading.

Central place for tuneable parameters shared across modules.
Import individual names where needed.
"""

import tomllib

from enocean_exporter.eep import DEFAULT_PROFILE, get_profile
from enocean_exporter.telegram import parse_address

# Read from the working directory when no path is given.
DEFAULT_CONFIG = "enocean_exporter.toml"

# Reconnect backoff in seconds, doubled after every failed attempt.
RECONNECT_INITIAL_S = 1.0
RECONNECT_MAX_S = 60.0

# Reopen attempts per port after a drop, reset by any packet; 0 is no limit.
MAX_RETRIES = 0


class ConfigError(ValueError):
    """Missing, malformed, or out-of-range configuration value."""


def load_config(path: str) -> dict:
    """Read a TOML config file and validate it.

    Required keys: ``listen`` (``"host:port"``) and ``port`` (serial
    device path, or a non-empty list of them).

    Optional keys: ``profile`` (str), ``read_timeout`` (seconds),
    ``timestamps`` (bool), a ``[reconnect]`` table with ``initial``,
    ``max`` and ``retries``, and a ``[devices]`` table mapping
    8-hex-digit addresses to display names.

    Returns:
        dict: ``listen`` as a ``(host, port)`` tuple, ``ports`` as a
            list, ``devices`` keyed by int address, and the remaining
            settings with defaults applied.

    Raises:
        ConfigError: If any key is missing or has the wrong type or value.
        OSError: If the file cannot be read.
    """
    with open(path, "rb") as f:
        try:
            raw = tomllib.load(f)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError("%s: %s" % (path, exc)) from exc

    _require_str(raw, "listen")
    listen = parse_listen(raw["listen"])

    ports = _require_ports(raw)

    profile = raw.get("profile", DEFAULT_PROFILE)
    if not isinstance(profile, str):
        raise ConfigError("profile must be str, got %s" % type(profile).__name__)
    try:
        profile = get_profile(profile).eep
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc

    read_timeout = None
    if "read_timeout" in raw:
        read_timeout = _require_positive(raw, "read_timeout")

    timestamps = raw.get("timestamps", False)
    if not isinstance(timestamps, bool):
        raise ConfigError(
            "timestamps must be bool, got %s" % type(timestamps).__name__
        )

    reconnect = raw.get("reconnect", {})
    if not isinstance(reconnect, dict):
        raise ConfigError("[reconnect] must be a table")
    initial = RECONNECT_INITIAL_S
    if "initial" in reconnect:
        initial = _require_positive(reconnect, "initial", "reconnect.")
    maximum = max(RECONNECT_MAX_S, initial)
    if "max" in reconnect:
        maximum = _require_positive(reconnect, "max", "reconnect.")
        if maximum < initial:
            raise ConfigError(
                "reconnect.max (%s) must be >= reconnect.initial (%s)"
                % (maximum, initial)
            )
    retries = MAX_RETRIES
    if "retries" in reconnect:
        retries = reconnect["retries"]
        if not isinstance(retries, int) or isinstance(retries, bool) or retries < 0:
            raise ConfigError(
                "reconnect.retries must be a non-negative int, got %r" % (retries,)
            )

    return {
        "listen": listen,
        "ports": ports,
        "profile": profile,
        "read_timeout": read_timeout,
        "timestamps": timestamps,
        "reconnect_initial": initial,
        "reconnect_max": maximum,
        "max_retries": retries,
        "devices": _require_devices(raw),
    }


def parse_listen(text: str) -> tuple[str, int]:
    """Split a ``host:port`` listen address.

    IPv6 hosts must be bracketed (``"[::1]:9584"``).

    Example:
        >>> parse_listen("0.0.0.0:9584")
        ('0.0.0.0', 9584)

    Raises:
        ConfigError: If the address is malformed or the port is out of range.
    """
    host, sep, port = text.rpartition(":")
    if not sep or not host or not port:
        raise ConfigError("listen must be host:port, got '%s'" % text)
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    elif ":" in host:
        raise ConfigError("IPv6 listen host must be bracketed, got '%s'" % text)
    if not port.isdigit() or not 1 <= int(port) <= 65535:
        raise ConfigError("listen port must be 1-65535, got '%s'" % port)
    return host, int(port)


def _require_ports(raw: dict[str, object]) -> list[str]:
    """Validate ``port``: a str or a non-empty list of unique strs."""
    if "port" not in raw:
        raise ConfigError("missing required key: port")
    value = raw["port"]
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        raise ConfigError("port must be str or list of str")
    if len(value) == 0:
        raise ConfigError("port must not be empty")
    for i, v in enumerate(value):
        if not isinstance(v, str) or not v:
            raise ConfigError("port[%d] must be a non-empty str, got %r" % (i, v))
    if len(set(value)) != len(value):
        raise ConfigError("port lists the same device more than once")
    return list(value)


def _require_devices(raw: dict[str, object]) -> dict[int, str]:
    """Validate the optional ``[devices]`` table of address -> name."""
    section = raw.get("devices", {})
    if not isinstance(section, dict):
        raise ConfigError("[devices] must be a table")
    devices = {}
    for key, name in section.items():
        try:
            address = parse_address(key)
        except ValueError as exc:
            raise ConfigError("devices: %s" % exc) from exc
        if not isinstance(name, str):
            raise ConfigError(
                "devices.%s must be str, got %s" % (key, type(name).__name__)
            )
        if address in devices:
            raise ConfigError("devices: address %s listed twice" % key)
        devices[address] = name
    return devices


def _require_positive(raw: dict[str, object], key: str, prefix: str = "") -> float:
    """Validate that *key* is a positive int or float and return it."""
    value = raw[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(
            "%s%s must be a number, got %s" % (prefix, key, type(value).__name__)
        )
    if value <= 0:
        raise ConfigError("%s%s must be > 0, got %s" % (prefix, key, value))
    return float(value)


def _require_str(raw: dict[str, object], key: str) -> None:
    """Validate that *key* exists in *raw* and is a str."""
    if key not in raw:
        raise ConfigError("missing required key: %s" % key)
    if not isinstance(raw[key], str):
        raise ConfigError("%s must be str, got %s" % (key, type(raw[key]).__name__))
