"""Latest-value temperature registry shared between threads.

The acquisition loop is the only writer; HTTP scrapes are readers.
Readings are immutable, so a copy of the mapping taken under the lock
is a consistent point-in-time view.

Example:
    >>> from enocean_exporter.registry import Registry, TemperatureReading
    >>> registry = Registry()
    >>> registry.set(0x01234567, TemperatureReading(0x01234567, 21.5, 1700000000.0))
    >>> registry.snapshot()[0x01234567].celsius
    21.5
"""

import threading
from dataclasses import dataclass


@dataclass(frozen=True)
class TemperatureReading:
    """Last decoded temperature for one device.

    ``observed_at`` is a Unix timestamp (seconds since epoch, UTC).
    """

    address: int
    celsius: float
    observed_at: float


class Registry:
    """Thread-safe mapping of device address to its latest reading.

    Entries are never evicted; a reading stays until the same address
    reports again.
    """

    def __init__(self):
        """Create an empty registry."""
        self._lock = threading.Lock()
        self._readings: dict[int, TemperatureReading] = {}

    def set(self, address: int, reading: TemperatureReading) -> None:
        """Store *reading* for *address*, replacing any previous one."""
        with self._lock:
            self._readings[address] = reading

    def get(self, address: int) -> TemperatureReading | None:
        """Return the latest reading for *address*, or None."""
        with self._lock:
            return self._readings.get(address)

    def snapshot(self) -> dict[int, TemperatureReading]:
        """Return a point-in-time copy of all readings."""
        with self._lock:
            return dict(self._readings)

    def __len__(self) -> int:
        with self._lock:
            return len(self._readings)
