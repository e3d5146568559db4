"""Serial link to an EnOcean ESP3 transceiver.

Wraps pyserial with the fixed ESP3 line settings (57600 baud, 8N1)
and turns every pyserial failure into a ``LinkError`` so callers only
need to handle one exception type.

Example:
    >>> from enocean_exporter.serial_link import open_link
    >>> link = open_link("/dev/ttyUSB0", timeout=600)
    >>> chunk = link.read(6)
    >>> link.close()
"""

import logging

import serial

log = logging.getLogger(__name__)

# ESP3 line settings are fixed by the transceiver.
ESP3_BAUDRATE = 57600


class LinkError(Exception):
    """Serial I/O failure: open failed, device gone, or read timed out."""


class SerialLink:
    """Read-only byte source backed by ``serial.Serial``.

    Duck-typed -- tests can substitute any object with matching
    ``read(size)`` and ``close()`` methods.

    Args:
        port: Serial port device path (e.g. ``"/dev/ttyUSB0"``).
        timeout: Read deadline in seconds, or ``None`` to block until
            data arrives.

    Raises:
        LinkError: If the port cannot be opened.
    """

    def __init__(self, port: str, timeout: float | None = None):
        """Open the serial port with ESP3 line settings."""
        self.port = port
        try:
            self._ser = serial.Serial(
                port,
                ESP3_BAUDRATE,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=timeout,
            )
        except (serial.SerialException, OSError) as exc:
            raise LinkError("cannot open %s: %s" % (port, exc)) from exc

    def read(self, size: int) -> bytes:
        """Read up to *size* bytes.

        Blocks until *size* bytes arrive or the read deadline passes.
        Returns fewer bytes (possibly ``b""``) on timeout.

        Raises:
            LinkError: If the device reports an I/O error.
        """
        try:
            return self._ser.read(size)
        except (serial.SerialException, OSError) as exc:
            raise LinkError("read from %s failed: %s" % (self.port, exc)) from exc

    def close(self) -> None:
        """Cancel any pending read and close the port."""
        cancel = getattr(self._ser, "cancel_read", None)
        if cancel is not None:
            try:
                cancel()
            except (serial.SerialException, OSError) as exc:
                log.debug("cancel_read on %s failed: %s", self.port, exc)
        self._ser.close()

    def __enter__(self) -> "SerialLink":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def open_link(port: str, timeout: float | None = None) -> SerialLink:
    """Open *port* and return a ``SerialLink``.

    Raises:
        LinkError: If the port cannot be opened.
    """
    link = SerialLink(port, timeout)
    log.info("opened %s at %d baud", port, ESP3_BAUDRATE)
    return link
