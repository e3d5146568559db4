"""EnOcean Equipment Profile (EEP) calibration.

Each supported profile maps a decoded telegram to a temperature in
degrees Celsius.  Only A5-02-05 is registered; the exporter is told
which profile its sensors use and does not negotiate it over the air.
"""

from dataclasses import dataclass
from typing import Callable

from enocean_exporter.telegram import RORG_4BS, Telegram

# A5-02-05 covers 0..40 C, with 255 at the cold end.
A5_02_05_MAX_C = 40.0

DEFAULT_PROFILE = "A5-02-05"


def calibrate_a5_02_05(raw: int) -> float:
    """Convert an A5-02-05 temperature byte to degrees Celsius.

    The scale is inverted: 255 is 0 C and 0 is 40 C.

    Example:
        >>> calibrate_a5_02_05(255)
        0.0
        >>> calibrate_a5_02_05(0)
        40.0

    Raises:
        ValueError: If *raw* is outside 0-255.
    """
    if not 0 <= raw <= 255:
        raise ValueError("raw byte must be 0-255, got %r" % raw)
    return A5_02_05_MAX_C * (255 - raw) / 255.0


def _convert_a5_02_05(telegram: Telegram) -> float:
    # Temperature sits in DB1; DB3 and DB2 are unused by this profile.
    return calibrate_a5_02_05(telegram.data[2])


@dataclass(frozen=True)
class Profile:
    """A registered EEP: identity plus telegram-to-Celsius conversion."""

    eep: str
    rorg: int
    description: str
    convert: Callable[[Telegram], float]


PROFILES: dict[str, Profile] = {
    "A5-02-05": Profile(
        eep="A5-02-05",
        rorg=RORG_4BS,
        description="Temperature sensor, range 0 C to +40 C",
        convert=_convert_a5_02_05,
    ),
}


def get_profile(eep: str) -> Profile:
    """Look up a registered profile by its EEP identifier.

    Raises:
        ValueError: If *eep* is not registered.
    """
    try:
        return PROFILES[eep.upper()]
    except KeyError:
        raise ValueError(
            "unsupported profile %r (supported: %s)"
            % (eep, ", ".join(sorted(PROFILES)))
        ) from None
