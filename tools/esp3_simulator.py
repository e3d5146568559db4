#!/usr/bin/env python3
"""Virtual EnOcean receiver for the exporter.

Writes ESP3 frames carrying A5-02-05 telegrams to a serial port
(typically one end of a socat PTY pair), as a USB300 stick would.
A handful of fake sensors each report a slowly drifting temperature.
Roughly one frame in twenty is sent with a damaged checksum, and some
noise bytes are mixed in, to exercise resynchronization.

Usage:
    socat -d -d pty,raw,echo=0,link=/tmp/enocean-rx pty,raw,echo=0,link=/tmp/enocean-tx
    python esp3_simulator.py /tmp/enocean-tx [interval]

Args:
    port: Serial port path (e.g. /tmp/enocean-tx).
    interval: Seconds between telegrams (default 1.0).
"""

import random
import sys
import time

# Add parent src to path so we can import enocean_exporter
sys.path.insert(0, str(__import__("pathlib").Path(__file__).resolve().parents[1] / "src"))

import serial

from enocean_exporter.serial_link import ESP3_BAUDRATE
from enocean_exporter.telegram import encode_4bs, format_address

SENDERS = [0x0180A2F3, 0x0181B004, 0x0182C115]


def run(port: str, interval: float) -> None:
    """Run the simulator loop until interrupted.

    Each sender starts at a random raw byte and drifts by -2..2 per
    telegram.  The raw value is written to DB1, inverted scale (255
    is 0 C).
    """
    ser = serial.Serial(port, ESP3_BAUDRATE)
    raw = {sender: random.randint(80, 180) for sender in SENDERS}

    print("esp3_simulator: writing to {}".format(port), flush=True)

    try:
        while True:
            sender = random.choice(SENDERS)
            raw[sender] = min(255, max(0, raw[sender] + random.randint(-2, 2)))
            frame = bytearray(encode_4bs(
                sender,
                bytes([0x00, 0x00, raw[sender], 0x08]),
                dbm=-random.randint(40, 90),
            ))

            if random.random() < 0.05:
                frame[-1] ^= 0xFF
            if random.random() < 0.05:
                ser.write(bytes(random.randint(0, 0x54) for _ in range(5)))

            ser.write(bytes(frame))
            print("{} raw={}".format(format_address(sender), raw[sender]),
                  flush=True)
            time.sleep(interval)
    except KeyboardInterrupt:
        pass
    finally:
        ser.close()


if __name__ == "__main__":
    if len(sys.argv) not in (2, 3):
        print("usage: esp3_simulator.py <port> [interval]", file=sys.stderr)
        sys.exit(1)
    run(sys.argv[1], float(sys.argv[2]) if len(sys.argv) == 3 else 1.0)
