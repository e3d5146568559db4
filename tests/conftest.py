"""Shared helpers and test doubles for enocean_exporter tests."""

import threading

from enocean_exporter.serial_link import LinkError
from enocean_exporter.telegram import encode_4bs

# 4BS telegram from 0180A2F3, DB1 = 0xFF, no optional data.  Checksums
# worked out by hand: header 00 0A 00 01 -> 0x80, data -> 0x8D.
REFERENCE_FRAME = bytes.fromhex(
    "55" "000A0001" "80" "A5" "0000FF08" "0180A2F3" "00" "8D"
)
REFERENCE_ADDRESS = 0x0180A2F3


def make_4bs(address: int, raw: int, dbm: int | None = None) -> bytes:
    """Build an A5-02-05 frame with *raw* as the temperature byte (DB1)."""
    return encode_4bs(address, bytes([0x00, 0x00, raw, 0x08]), dbm=dbm)


class FakeLink:
    """Test double for SerialLink: serves canned bytes, then b"".

    Args:
        data: Bytes returned by successive reads.
        chunk: Maximum bytes per read, to exercise partial reads.
    """

    def __init__(self, data: bytes, chunk: int | None = None):
        """Initialize with canned data."""
        self._data = bytearray(data)
        self._chunk = chunk
        self.closed = False
        self.reads = 0

    def read(self, size: int) -> bytes:
        """Return up to *size* canned bytes; b"" once exhausted."""
        if self.closed:
            raise LinkError("link closed")
        self.reads += 1
        if self._chunk is not None:
            size = min(size, self._chunk)
        out = bytes(self._data[:size])
        del self._data[:size]
        return out

    def close(self) -> None:
        """Mark the link closed."""
        self.closed = True


class BlockingLink:
    """Test double: serves canned bytes, then blocks until closed."""

    def __init__(self, data: bytes = b""):
        """Initialize with canned data served before blocking."""
        self._data = bytearray(data)
        self._closed = threading.Event()
        self.blocked = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def read(self, size: int) -> bytes:
        """Return canned bytes, then wait for close() and return b""."""
        if self._data:
            out = bytes(self._data[:size])
            del self._data[:size]
            return out
        self.blocked.set()
        self._closed.wait(5.0)
        return b""

    def close(self) -> None:
        """Unblock a pending read."""
        self._closed.set()


class FakeOpener:
    """Test double for open_link: returns or raises items in order.

    Once the items run out, every call raises LinkError.
    """

    def __init__(self, items: list):
        """Initialize with links and/or exceptions to hand out."""
        self._items = list(items)
        self.calls = []

    def __call__(self, port: str, timeout):
        """Record the call and return the next link."""
        self.calls.append((port, timeout))
        if not self._items:
            raise LinkError("cannot open %s" % port)
        item = self._items.pop(0)
        if isinstance(item, Exception):
            raise item
        return item
