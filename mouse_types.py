"""Shared enums and the error hierarchy for the mouse configuration core."""
from __future__ import annotations

import enum


class Profile(enum.IntEnum):
    PROFILE_1 = 0
    PROFILE_2 = 1
    PROFILE_3 = 2
    PROFILE_4 = 3
    PROFILE_5 = 4


class LightMode(enum.Enum):
    BREATHING = "breathing"
    RAINBOW = "rainbow"
    STATIC = "static"
    WAVE = "wave"
    ALTERNATING = "alternating"
    REACTIVE = "reactive"
    FLASHING = "flashing"
    OFF = "off"
    # Only present on some models
    RANDOM = "random"
    REACTIVE_BUTTON = "reactive_button"
    BREATHING_RAINBOW = "breathing_rainbow"


class ReportRate(enum.IntEnum):
    R_125HZ = 125
    R_250HZ = 250
    R_500HZ = 500
    R_1000HZ = 1000

    def __str__(self) -> str:
        return f"{self.value}Hz"


PROFILE_COUNT = 5
DPI_LEVEL_COUNT = 5
MACRO_COUNT = 15
MACRO_SIZE = 256


class MouseError(Exception):
    """Base class for every error raised by the configuration core."""


class UnknownMapping(MouseError, LookupError):
    """A 4-byte button mapping code matched none of the code tables."""


class UnknownButtonName(MouseError, LookupError):
    """A symbolic button mapping string could not be parsed."""


class InvalidLightMode(MouseError, LookupError):
    """A light mode code or name is not supported by the model."""


class InvalidReportRate(MouseError, LookupError):
    """A report rate byte has no entry in the model's table."""


class RangeError(MouseError, ValueError):
    """A value or index lies outside the model's declared bounds."""


class TransferError(MouseError, IOError):
    """The transport failed to complete a send or receive."""


def coerce_profile(profile: int | Profile) -> Profile:
    """Return ``profile`` as a :class:`Profile`, raising RangeError if invalid."""
    try:
        return Profile(profile)
    except ValueError:
        raise RangeError(f"profile must be 0-4, got {profile!r}") from None


def coerce_lightmode(lightmode: str | LightMode) -> LightMode:
    if isinstance(lightmode, LightMode):
        return lightmode
    try:
        return LightMode(lightmode)
    except ValueError:
        raise InvalidLightMode(f"unknown light mode {lightmode!r}") from None


def coerce_report_rate(rate: int | str | ReportRate) -> ReportRate:
    if isinstance(rate, str):
        rate = rate.strip().lower()
        if rate.endswith("hz"):
            rate = rate[:-2]
        try:
            rate = int(rate)
        except ValueError:
            raise InvalidReportRate(f"unknown report rate {rate!r}") from None
    try:
        return ReportRate(rate)
    except ValueError:
        raise InvalidReportRate(f"unknown report rate {rate!r}") from None
