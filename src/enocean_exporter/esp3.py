"""Frame reading for the EnOcean Serial Protocol 3 (ESP3).

Wire format of one packet::

    SYNC(0x55) | DATA_LEN(u16 BE) | OPT_LEN(u8) | TYPE(u8) | CRC8H
               | DATA | OPTIONAL | CRC8D

CRC8H covers the four header bytes, CRC8D covers DATA + OPTIONAL.
Both use CRC-8 with polynomial 0x07.
"""

import logging
import struct
from dataclasses import dataclass
from typing import Iterator

from enocean_exporter.serial_link import LinkError

log = logging.getLogger(__name__)

# -- Protocol constants ------------------------------------------------------

ESP3_SYNC = 0x55
ESP3_HEADER_LEN = 4

PACKET_TYPE_RADIO_ERP1 = 0x01
PACKET_TYPE_RESPONSE = 0x02
PACKET_TYPE_EVENT = 0x04
PACKET_TYPE_COMMON_COMMAND = 0x05

PACKET_TYPE_NAMES = {
    PACKET_TYPE_RADIO_ERP1: "RADIO_ERP1",
    PACKET_TYPE_RESPONSE: "RESPONSE",
    PACKET_TYPE_EVENT: "EVENT",
    PACKET_TYPE_COMMON_COMMAND: "COMMON_COMMAND",
}


class FramingError(ValueError):
    """Header or data checksum mismatch in the byte stream."""


@dataclass(frozen=True)
class Packet:
    """A checksum-validated ESP3 packet."""

    packet_type: int
    data: bytes
    optional: bytes = b""


# -- CRC-8 -------------------------------------------------------------------


def crc8(data: bytes) -> int:
    """Compute the ESP3 CRC-8 over a byte sequence.

    Polynomial 0x07, initial value 0x00, no reflection, no final xor.
    Bitwise implementation; ESP3 packets are short.

    Example:
        >>> hex(crc8(bytes([0x00, 0x07, 0x07, 0x01])))
        '0x7a'
    """
    crc = 0x00
    for byte in data:
        crc ^= byte
        for _ in range(8):
            if crc & 0x80:
                crc = ((crc << 1) ^ 0x07) & 0xFF
            else:
                crc = (crc << 1) & 0xFF
    return crc


# -- Encoding ----------------------------------------------------------------


def encode_packet(packet_type: int, data: bytes, optional: bytes = b"") -> bytes:
    """Build a complete ESP3 packet with both checksums.

    Raises:
        ValueError: If *data* or *optional* is too long for its length field.
    """
    if len(data) > 0xFFFF:
        raise ValueError("data too long: %d bytes, maximum is 65535" % len(data))
    if len(optional) > 0xFF:
        raise ValueError(
            "optional data too long: %d bytes, maximum is 255" % len(optional)
        )
    header = struct.pack(">HBB", len(data), len(optional), packet_type)
    body = bytes(data) + bytes(optional)
    return (
        bytes([ESP3_SYNC]) + header + bytes([crc8(header)])
        + body + bytes([crc8(body)])
    )


# -- Stream reading ----------------------------------------------------------


class FrameReader:
    """Pull validated packets out of an unreliable byte stream.

    Bytes before a sync marker are discarded.  A header whose CRC does
    not match costs only its sync byte; scanning resumes right after
    it, since the length fields are untrusted.  A packet whose data CRC
    does not match is dropped as a whole.

    Args:
        source: Object with ``read(size) -> bytes``.  An empty read is
            treated as a dead link.
    """

    def __init__(self, source):
        """Initialize the reader with an empty buffer."""
        self._source = source
        self._buffer = bytearray()
        self._stats = {
            "packets": 0,
            "header_crc_errors": 0,
            "data_crc_errors": 0,
            "discarded_bytes": 0,
        }

    def reset(self, source=None) -> None:
        """Forget any buffered bytes, e.g. after reconnecting.

        Counters are kept.  A new *source* replaces the old one.
        """
        if source is not None:
            self._source = source
        self._buffer.clear()

    def stats(self) -> dict[str, int]:
        """Return a copy of the reader's counters."""
        return dict(self._stats)

    def packets(self) -> Iterator[Packet]:
        """Yield packets forever; ends only by raising ``LinkError``."""
        while True:
            yield self.read_packet()

    def read_packet(self) -> Packet:
        """Return the next packet whose checksums both match.

        Raises:
            LinkError: If the source returns no data or fails.
        """
        while True:
            self._sync()
            try:
                return self._take_packet()
            except FramingError as exc:
                log.debug("discarding frame: %s", exc)

    def _sync(self) -> None:
        """Advance the buffer until it starts with a sync byte."""
        while True:
            self._fill(1)
            idx = self._buffer.find(ESP3_SYNC)
            if idx == 0:
                return
            skipped = len(self._buffer) if idx < 0 else idx
            del self._buffer[:skipped]
            self._stats["discarded_bytes"] += skipped

    def _take_packet(self) -> Packet:
        """Parse the packet at the head of the buffer.

        Raises:
            FramingError: On a checksum mismatch, after removing the
                offending bytes from the buffer.
        """
        header_end = 1 + ESP3_HEADER_LEN
        self._fill(header_end + 1)
        header = bytes(self._buffer[1:header_end])
        if crc8(header) != self._buffer[header_end]:
            self._stats["header_crc_errors"] += 1
            self._stats["discarded_bytes"] += 1
            received = self._buffer[header_end]
            del self._buffer[0]
            raise FramingError(
                "header CRC mismatch: received 0x{:02X}, computed 0x{:02X}".format(
                    received, crc8(header)
                )
            )

        data_len, opt_len, packet_type = struct.unpack(">HBB", header)
        body_start = header_end + 1
        body_end = body_start + data_len + opt_len
        self._fill(body_end + 1)
        body = bytes(self._buffer[body_start:body_end])
        received = self._buffer[body_end]
        del self._buffer[:body_end + 1]

        if crc8(body) != received:
            self._stats["data_crc_errors"] += 1
            self._stats["discarded_bytes"] += body_end + 1
            raise FramingError(
                "data CRC mismatch: received 0x{:02X}, computed 0x{:02X}".format(
                    received, crc8(body)
                )
            )

        self._stats["packets"] += 1
        return Packet(
            packet_type=packet_type,
            data=body[:data_len],
            optional=body[data_len:],
        )

    def _fill(self, size: int) -> None:
        """Read from the source until the buffer holds *size* bytes."""
        while len(self._buffer) < size:
            chunk = self._source.read(size - len(self._buffer))
            if not chunk:
                raise LinkError("no data from byte source")
            self._buffer.extend(chunk)
