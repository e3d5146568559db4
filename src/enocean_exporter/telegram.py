"""Radio telegram decoding for ESP3 RADIO_ERP1 packets.

Only 4BS telegrams (RORG 0xA5) are decoded.  A 4BS data field is::

    RORG(0xA5) | DB3 | DB2 | DB1 | DB0 | SENDER_ID(u32 BE) | STATUS

The optional data of a RADIO_ERP1 packet, when the transceiver sends
it, is::

    SUB_TEL_NUM | DESTINATION_ID(u32 BE) | DBM | SECURITY_LEVEL

Example:
    >>> import io
    >>> from enocean_exporter.esp3 import FrameReader
    >>> from enocean_exporter.telegram import (
    ...     decode_telegram, encode_4bs, format_address)
    >>> frame = encode_4bs(0x01234567, bytes([0x00, 0x00, 0xFF, 0x08]))
    >>> packet = FrameReader(io.BytesIO(frame)).read_packet()
    >>> telegram = decode_telegram(packet)
    >>> format_address(telegram.sender)
    '01234567'
"""

import logging
import re
import struct
from dataclasses import dataclass

from enocean_exporter.esp3 import (
    PACKET_TYPE_NAMES,
    PACKET_TYPE_RADIO_ERP1,
    Packet,
    encode_packet,
)

log = logging.getLogger(__name__)

RORG_RPS = 0xF6
RORG_1BS = 0xD5
RORG_4BS = 0xA5

_RORG_NAMES = {RORG_RPS: "RPS", RORG_1BS: "1BS", RORG_4BS: "4BS"}

# RORG + 4 data bytes + 4 sender bytes + status.
RADIO_4BS_DATA_LEN = 10
RADIO_OPTIONAL_LEN = 7

# Destination used by broadcast telegrams.
BROADCAST_ID = 0xFFFFFFFF

_ADDRESS_RE = re.compile(r"^[0-9A-Fa-f]{8}$")


@dataclass(frozen=True)
class Telegram:
    """Decoded 4BS radio telegram.

    ``data`` holds DB3..DB0 in wire order.  ``dbm`` is the received
    signal strength (negative), or None if the transceiver sent no
    optional data.
    """

    rorg: int
    data: bytes
    sender: int
    status: int
    dbm: int | None = None


def format_address(address: int) -> str:
    """Render a 32-bit device address as 8 uppercase hex digits.

    Example:
        >>> format_address(0x01234567)
        '01234567'
    """
    return "%08X" % address


def parse_address(text: str) -> int:
    """Parse an 8-hex-digit device address.

    Raises:
        ValueError: If *text* is not exactly 8 hex digits.
    """
    if not isinstance(text, str) or not _ADDRESS_RE.match(text):
        raise ValueError("device address must be 8 hex digits, got %r" % (text,))
    return int(text, 16)


def decode_telegram(packet: Packet) -> Telegram | None:
    """Decode a 4BS telegram from *packet*.

    Returns None for anything that is not a well-formed 4BS radio
    telegram.  That is not an error: the receiver also reports events,
    responses, and telegrams of other radio families.
    """
    if packet.packet_type != PACKET_TYPE_RADIO_ERP1:
        log.debug(
            "skipping %s packet",
            PACKET_TYPE_NAMES.get(packet.packet_type, "0x%02X" % packet.packet_type),
        )
        return None

    data = packet.data
    if not data:
        log.debug("skipping empty radio telegram")
        return None

    rorg = data[0]
    if rorg != RORG_4BS:
        log.debug("skipping %s telegram",
                  _RORG_NAMES.get(rorg, "RORG 0x%02X" % rorg))
        return None

    if len(data) != RADIO_4BS_DATA_LEN:
        log.debug("skipping 4BS telegram with %d data bytes", len(data))
        return None

    sender, status = struct.unpack_from(">IB", data, 5)

    dbm = None
    if len(packet.optional) >= RADIO_OPTIONAL_LEN:
        dbm = -packet.optional[5]

    return Telegram(
        rorg=rorg,
        data=bytes(data[1:5]),
        sender=sender,
        status=status,
        dbm=dbm,
    )


def encode_4bs(sender: int, data: bytes, status: int = 0,
               dbm: int | None = None) -> bytes:
    """Build a complete ESP3 frame carrying a 4BS telegram.

    *data* is DB3..DB0.  When *dbm* is given, optional data for a
    broadcast telegram with that signal strength is appended.

    Raises:
        ValueError: If *data* is not 4 bytes or *sender* is not 32-bit.
    """
    if len(data) != 4:
        raise ValueError("4BS data must be 4 bytes, got %d" % len(data))
    if not 0 <= sender <= 0xFFFFFFFF:
        raise ValueError("sender must be a 32-bit address, got %r" % sender)

    payload = bytes([RORG_4BS]) + bytes(data) + struct.pack(">IB", sender, status)
    optional = b""
    if dbm is not None:
        optional = struct.pack(">BIBB", 0x01, BROADCAST_ID, abs(dbm), 0x00)
    return encode_packet(PACKET_TYPE_RADIO_ERP1, payload, optional)
