"""Acquisition loop: serial link -> packets -> telegrams -> registry.

One loop runs per serial port, in its own thread.  The loop is an
explicit state machine::

    CONNECTING -> STREAMING -> DISCONNECTED -> CONNECTING
         |                          |
         +------> DISCONNECTED      +-> FAILED

with an exponential backoff before every reopen attempt.  STOPPED
is entered from any state once shutdown is requested.
"""

import enum
import logging
import threading
import time

from enocean_exporter.eep import Profile
from enocean_exporter.esp3 import FrameReader, Packet
from enocean_exporter.registry import Registry, TemperatureReading
from enocean_exporter.serial_link import LinkError, open_link
from enocean_exporter.telegram import decode_telegram, format_address

log = logging.getLogger(__name__)


class LinkState(enum.Enum):
    """Where an acquisition loop is in its connect/stream cycle."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    STOPPED = "stopped"
    FAILED = "failed"


class AcquisitionLoop:
    """Keeps one serial port streaming into the registry.

    Link errors never end the loop on their own: the link is closed,
    the loop waits out the backoff, and reopens.  With a non-zero
    *max_retries*, the loop makes at most that many reopen attempts
    after a drop; if none of them delivers a packet it moves to FAILED.

    Args:
        port: Serial port device path.
        registry: Registry that receives decoded readings.
        profile: EEP profile used to convert every 4BS telegram.
        opener: Callable ``(port, timeout) -> link``; the link needs
            ``read(size)`` and ``close()``.
        link: Already-open link to start streaming from, or None to
            open one on the first pass.
        read_timeout: Read deadline in seconds passed to *opener*.
        backoff_initial: First reconnect delay in seconds.
        backoff_max: Upper bound for the reconnect delay.
        max_retries: Reopen attempts allowed without a packet arriving;
            0 means no limit.
        shutdown: Event that stops the loop when set.
        clock: Returns the current Unix time; stamps readings.
    """

    def __init__(self, port: str, registry: Registry, profile: Profile,
                 opener=open_link, link=None,
                 read_timeout: float | None = None,
                 backoff_initial: float = 1.0, backoff_max: float = 60.0,
                 max_retries: int = 0,
                 shutdown: threading.Event | None = None,
                 clock=time.time):
        """Initialize the loop; nothing is opened until ``run()``."""
        self.port = port
        self._registry = registry
        self._profile = profile
        self._opener = opener
        self._link = link
        self._read_timeout = read_timeout
        self._backoff_initial = backoff_initial
        self._backoff_max = max(backoff_max, backoff_initial)
        self._max_retries = max_retries
        self._shutdown = shutdown if shutdown is not None else threading.Event()
        self._clock = clock
        self._reader: FrameReader | None = None
        self.state = LinkState.STREAMING if link is not None else LinkState.CONNECTING
        self.retries = 0
        self.reconnects = 0
        self.readings = 0
        self.last_error: Exception | None = None

    def run(self) -> int:
        """Drive the state machine until shutdown or FAILED.

        Returns:
            int: Number of readings stored.
        """
        backoff = self._backoff_initial
        connected_once = self._link is not None

        while True:
            if self._shutdown.is_set():
                self.state = LinkState.STOPPED
                break

            if self.state is LinkState.DISCONNECTED:
                if self._max_retries and self.retries >= self._max_retries:
                    log.critical(
                        "%s: giving up after %d reopen attempts: %s",
                        self.port, self.retries, self.last_error,
                    )
                    self.state = LinkState.FAILED
                    break
                log.info("%s: reconnecting in %.1fs", self.port, backoff)
                if self._shutdown.wait(backoff):
                    continue
                backoff = min(backoff * 2, self._backoff_max)
                self.retries += 1
                self.state = LinkState.CONNECTING

            elif self.state is LinkState.CONNECTING:
                try:
                    self._link = self._opener(self.port, self._read_timeout)
                except LinkError as exc:
                    self._fail(exc)
                    continue
                if connected_once:
                    self.reconnects += 1
                    log.info("%s: reconnected", self.port)
                connected_once = True
                self.state = LinkState.STREAMING

            elif self.state is LinkState.STREAMING:
                if self._stream():
                    backoff = self._backoff_initial

        self._close_link()
        log.info("%s: acquisition %s, %d readings", self.port,
                 self.state.value, self.readings)
        return self.readings

    def stop(self) -> None:
        """Request shutdown and unblock a pending read."""
        self._shutdown.set()
        self._close_link()

    def stats(self) -> dict[str, int]:
        """Return cumulative reader counters plus loop counters."""
        stats = self._reader.stats() if self._reader is not None else {}
        stats["readings"] = self.readings
        stats["reconnects"] = self.reconnects
        stats["retries"] = self.retries
        return stats

    def handle_packet(self, packet: Packet) -> TemperatureReading | None:
        """Decode *packet* and store the resulting reading, if any."""
        telegram = decode_telegram(packet)
        if telegram is None:
            return None

        reading = TemperatureReading(
            address=telegram.sender,
            celsius=self._profile.convert(telegram),
            observed_at=self._clock(),
        )
        self._registry.set(telegram.sender, reading)
        self.readings += 1
        log.debug(
            "%s: %s %.2f C (dBm %s)", self.port,
            format_address(telegram.sender), reading.celsius, telegram.dbm,
        )
        return reading

    def _stream(self) -> bool:
        """Read packets until the link fails; True if any arrived."""
        link = self._link
        if link is None:
            # stop() got here first
            return False
        if self._reader is None:
            self._reader = FrameReader(link)
        else:
            self._reader.reset(link)
        received = False
        try:
            for packet in self._reader.packets():
                if not received:
                    received = True
                    self.retries = 0
                self.handle_packet(packet)
                if self._shutdown.is_set():
                    break
        except LinkError as exc:
            if not self._shutdown.is_set():
                self._fail(exc)
        finally:
            self._close_link()
        return received

    def _fail(self, exc: Exception) -> None:
        self.last_error = exc
        log.warning("%s: link error: %s", self.port, exc)
        self.state = LinkState.DISCONNECTED

    def _close_link(self) -> None:
        link, self._link = self._link, None
        if link is None:
            return
        try:
            link.close()
        except (LinkError, OSError) as exc:
            log.debug("%s: error closing link: %s", self.port, exc)
