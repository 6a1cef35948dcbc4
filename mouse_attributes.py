"""Light mode, report rate and DPI codecs."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

import mouse_keycodes as kc
from mouse_types import (InvalidLightMode, InvalidReportRate, LightMode, RangeError,
                         ReportRate, coerce_lightmode, coerce_report_rate)


def decode_lightmode(code: bytes, table: Mapping[LightMode, bytes] = kc.LIGHTMODE_VALUES) -> LightMode:
    code = bytes(code)
    for mode, value in table.items():
        if value == code:
            return mode
    raise InvalidLightMode(f"unknown light mode code {code.hex()}")


def encode_lightmode(lightmode: str | LightMode,
                     table: Mapping[LightMode, bytes] = kc.LIGHTMODE_VALUES) -> bytes:
    mode = coerce_lightmode(lightmode)
    try:
        return bytes(table[mode])
    except KeyError:
        raise InvalidLightMode(f"light mode {mode.value!r} not supported") from None


def decode_report_rate(code: int, table: Mapping[ReportRate, int] = kc.REPORT_RATE_VALUES) -> ReportRate:
    for rate, value in table.items():
        if value == code:
            return rate
    raise InvalidReportRate(f"unknown report rate code 0x{code:02x}")


def encode_report_rate(rate: int | str | ReportRate,
                       table: Mapping[ReportRate, int] = kc.REPORT_RATE_VALUES) -> int:
    return table[coerce_report_rate(rate)]


def is_injective(table: Mapping) -> bool:
    """True if no two entries of ``table`` share a code."""
    values = [bytes(v) if isinstance(v, (bytes, bytearray)) else v for v in table.values()]
    return len(set(values)) == len(values)


# -- DPI --

def decode_dpi_raw(dpi_bytes: bytes) -> str:
    """Render raw DPI bytes as hex, e.g. ``0x0400``. No validation."""
    return "0x" + bytes(dpi_bytes).hex()


def encode_dpi_raw(text: str, dpi_min: int, dpi_max: int,
                   dpi_2_min: int, dpi_2_max: int) -> bytes:
    """Parse ``0xHHHH`` (or ``0xHH``) into 2 raw DPI bytes.

    Byte 0 must lie in ``dpi_min..dpi_max`` and byte 1 in ``dpi_2_min..dpi_2_max``.
    """
    value = str(text).strip().lower()
    if value.startswith("0x"):
        value = value[2:]
    if len(value) == 2:
        value += "00"
    try:
        raw = bytes.fromhex(value)
    except ValueError:
        raise RangeError(f"raw DPI must be hex like 0x0400, got {text!r}") from None
    if len(raw) != 2:
        raise RangeError(f"raw DPI must be 2 bytes, got {text!r}")
    if not dpi_min <= raw[0] <= dpi_max or not dpi_2_min <= raw[1] <= dpi_2_max:
        raise RangeError(
            f"raw DPI {text!r} outside 0x{dpi_min:02x}{dpi_2_min:02x}-0x{dpi_max:02x}{dpi_2_max:02x}")
    return raw

@dataclass(frozen=True)
class DpiScale:
    """Linear DPI encoding: ``raw = dpi // step`` in byte 0, byte 1 zero."""
    minimum: int
    maximum: int
    step: int

    def check(self, dpi: int | str) -> int:
        try:
            value = int(str(dpi).strip(), 10)
        except ValueError:
            raise RangeError(f"DPI must be a number, got {dpi!r}") from None
        if not self.minimum <= value <= self.maximum:
            raise RangeError(f"DPI must be {self.minimum}-{self.maximum}, got {value}")
        if value % self.step:
            raise RangeError(f"DPI must be a multiple of {self.step}, got {value}")
        return value

    def encode(self, dpi: int | str) -> bytes:
        return bytes([(self.check(dpi) // self.step) & 0xFF, 0x00])

    def decode(self, dpi_bytes: bytes) -> int:
        return bytes(dpi_bytes)[0] * self.step


@dataclass(frozen=True)
class SensorDpiScale(DpiScale):
    """Single byte sensor value, piecewise linear through known DPI points.

    ``points`` are ``(dpi, value)`` pairs sorted by DPI. Between two points
    the value is interpolated; outside them the nearest segment is extended.
    Every point round-trips exactly.
    """
    points: tuple[tuple[int, int], ...] = ()

    def _segment(self, key: int, index: int) -> tuple[tuple[int, int], tuple[int, int]]:
        points = self.points
        for low, high in zip(points, points[1:]):
            if key <= high[index]:
                return low, high
        return points[-2], points[-1]

    def encode(self, dpi: int | str) -> bytes:
        value = self.check(dpi)
        (d0, v0), (d1, v1) = self._segment(value, 0)
        raw = round(v0 + (value - d0) * (v1 - v0) / (d1 - d0))
        return bytes([max(1, min(0xFF, raw)), 0x00])

    def decode(self, dpi_bytes: bytes) -> int:
        raw = bytes(dpi_bytes)[0]
        (d0, v0), (d1, v1) = self._segment(raw, 1)
        dpi = d0 + (raw - v0) * (d1 - d0) / (v1 - v0)
        return int(round(dpi / self.step) * self.step)
