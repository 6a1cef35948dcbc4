"""M913 support.

The M913 is built on the UtechSmart Venus controller, not Holtek. It uses
fixed 17-byte feature reports on HID interface 1:

    [0x08, cmd, payload(14), checksum]     checksum = (0x55 - sum) & 0xFF

Flash writes (cmd 0x07) carry at most 10 bytes:

    08 07 00 [page] [offset] [len] [data x10] [checksum]

Flash reads (cmd 0x08) answer on the interrupt endpoint with report 0x09:

    09 08 00 [page] [offset] [len] [data...]

Most values are stored with a check byte so that the record sums to 0x55.

Per profile page (0x00, 0x20, 0x40, 0x60, 0x80):

    0x00  [report_rate, 0x55 - report_rate]
    0x04  [active_profile, 0x55 - active_profile]     (page 0x00 only)
    0x08  [scrollspeed, 0x55 - scrollspeed]
    0x0C  5 x [value, value, 0x00, check]             sensor DPI value
    0x54  [R, G, B, style, effect, 0x55 - effect, B1, 0x55 - B1]
    0x60  16 x [type, d1, d2, d3] button bindings

The LED style byte is 0x56 for steady light and 0x57 for animated effects;
B1 is the brightness percentage times three, capped at 255.

Button binding types:

    00 00 00 55            disabled
    01 <bit> 00 <check>    mouse button
    02 <fn> 00 50          DPI loop (1), up (2), down (3)
    04 <ms> <repeat> 00    fire key on the left button
    05 <mods> <key> 00     keyboard key
    06 <slot> <mode> <check>  macro; mode is the repeat count, FE hold, FF toggle
    07 00 00 00            report rate toggle
    08 00 00 00            LED toggle

Macro slots are 384 bytes starting at page 0x03, 1.5 pages each:
``[name_len, name (UTF-16LE, 30 bytes), event_count]`` and then the timed
key events of macro_codec.
"""
from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Iterable, TextIO

import button_mapping as bm
import macro_codec
import mouse_keycodes as kc
from mouse_attributes import SensorDpiScale
from mouse_transport import HidTransport, Transport
from mouse_types import (DPI_LEVEL_COUNT, MACRO_COUNT, LightMode, Profile, RangeError, ReportRate,
                         TransferError)
from rd_mouse import RdMouse, Region, SettingsPackets
from settings_state import SettingsState

log = logging.getLogger(__name__)


VENDOR_ID = 0x25A7
PRODUCT_IDS = (0xFA07, 0xFA08)

REPORT_ID = 0x08
RESPONSE_ID = 0x09
REPORT_LEN = 17
CHECKSUM_BASE = 0x55

CMD_HANDSHAKE = 0x03
CMD_PREPARE = 0x04
CMD_WRITE = 0x07
CMD_READ = 0x08

WRITE_CHUNK = 10
READ_CHUNK = 8
READ_ATTEMPTS = 8

PROFILE_PAGES = (0x00, 0x20, 0x40, 0x60, 0x80)
OFF_REPORT_RATE = 0x00
OFF_ACTIVE_PROFILE = 0x04
OFF_SCROLL = 0x08
OFF_DPI = 0x0C
OFF_LED = 0x54
OFF_KEYS = 0x60

LED_STEADY = 0x56
LED_ANIMATED = 0x57
BRIGHTNESS_SCALE = 3

MACRO_FIRST_PAGE = 0x03
MACRO_HEADER = macro_codec.EVENT_HEADER_LEN
MACRO_NAME_LEN = 30

BUTTON_TYPE_DISABLED = 0x00
BUTTON_TYPE_MOUSE = 0x01
BUTTON_TYPE_DPI = 0x02
BUTTON_TYPE_FIRE = 0x04
BUTTON_TYPE_KEYBOARD = 0x05
BUTTON_TYPE_MACRO = 0x06
BUTTON_TYPE_POLL_RATE = 0x07
BUTTON_TYPE_RGB_TOGGLE = 0x08
DPI_CHECK = 0x50
MACRO_REPEAT_ONCE = 0x01

# Effect pair at LED offset 4
M913_LIGHTMODE_VALUES = MappingProxyType({
    LightMode.OFF: bytes([0x00, 0x55]),
    LightMode.STATIC: bytes([0x01, 0x54]),
    LightMode.RAINBOW: bytes([0x02, 0x53]),
    LightMode.BREATHING: bytes([0x03, 0x52]),
})

# code = log2(1000 / rate)
M913_REPORT_RATE_VALUES = MappingProxyType({
    ReportRate.R_125HZ: 0x04,
    ReportRate.R_250HZ: 0x02,
    ReportRate.R_500HZ: 0x01,
    ReportRate.R_1000HZ: 0x00,
})

# Sensor values measured at these DPI settings
DPI_PRESETS = ((1600, 0x12), (2400, 0x1B), (4900, 0x3A), (8900, 0x6A), (14100, 0xA8))


def calc_checksum(prefix: Iterable[int]) -> int:
    return (CHECKSUM_BASE - (sum(prefix) & 0xFF)) & 0xFF


def complement(value: int) -> int:
    return (CHECKSUM_BASE - value) & 0xFF


def _binding(kind: int, d1: int = 0x00, d2: int = 0x00, d3: int | None = None) -> bytes:
    """A 4-byte button binding; ``d3`` defaults to the check byte."""
    if d3 is None:
        d3 = calc_checksum([kind, d1, d2])
    return bytes([kind, d1, d2, d3])


def macro_binding(index: int, mode: int = MACRO_REPEAT_ONCE) -> bytes:
    return _binding(BUTTON_TYPE_MACRO, index, mode)


def _special_codes() -> dict[str, bytes]:
    codes = {
        "none": _binding(BUTTON_TYPE_DISABLED),
        "dpi-cycle": _binding(BUTTON_TYPE_DPI, 0x01, d3=DPI_CHECK),
        "dpi+": _binding(BUTTON_TYPE_DPI, 0x02, d3=DPI_CHECK),
        "dpi-": _binding(BUTTON_TYPE_DPI, 0x03, d3=DPI_CHECK),
        "report_rate-cycle": _binding(BUTTON_TYPE_POLL_RATE, d3=0x00),
        "led_toggle": _binding(BUTTON_TYPE_RGB_TOGGLE, d3=0x00),
    }
    for n in range(1, MACRO_COUNT + 1):
        codes[f"macro{n}"] = macro_binding(n - 1)
    return codes


M913_BUTTON_TABLES = bm.ButtonTables(
    special=MappingProxyType(_special_codes()),
    mouse=MappingProxyType({name: _binding(BUTTON_TYPE_MOUSE, bit)
                            for name, bit in kc.MOUSE_BUTTON_BITS.items()}),
    fire_buttons=("left",),
    keyboard_type=BUTTON_TYPE_KEYBOARD,
    fire_type=BUTTON_TYPE_FIRE,
    fire_layout=("delay", "repeat", "zero"),
    snipe_type=None,
)


def build_report(command: int, payload: bytes) -> bytes:
    if len(payload) != 14:
        raise ValueError(f"payload must be 14 bytes, got {len(payload)}")
    data = bytearray([REPORT_ID, command, *payload])
    data.append(calc_checksum(data))
    return bytes(data)


def build_simple(command: int) -> bytes:
    return build_report(command, bytes(14))


def build_flash_write(page: int, offset: int, data: bytes) -> bytes:
    if len(data) > WRITE_CHUNK:
        raise ValueError(f"flash write must be <= {WRITE_CHUNK} bytes")
    padded = bytes(data).ljust(WRITE_CHUNK, b"\x00")
    return build_report(CMD_WRITE, bytes([0x00, page & 0xFF, offset & 0xFF, len(data), *padded]))


def build_flash_read(page: int, offset: int, length: int) -> bytes:
    """Build a flash read request; the answer arrives as report 0x09."""
    return build_report(CMD_READ, bytes([0x00, page & 0xFF, offset & 0xFF, length & 0xFF]) + bytes(10))


def get_macro_slot_info(index: int) -> tuple[int, int]:
    """Start page and offset of 0-based macro slot ``index``."""
    page = MACRO_FIRST_PAGE + (index * 3) // 2
    offset = 0x80 if index % 2 else 0x00
    return page, offset


def encode_brightness(percent: int) -> int:
    return max(1, min(0xFF, percent * BRIGHTNESS_SCALE))


def decode_brightness(value: int) -> int:
    # everything from 85 % up is stored as 0xFF
    if value == 0xFF:
        return 100
    return max(1, value // BRIGHTNESS_SCALE)


def _address(page: int, offset: int) -> int:
    return (page << 8) | offset


def _chunks(address: int, data: bytes, size: int):
    """Split a region into chunks that never cross a page boundary."""
    pos = 0
    while pos < len(data):
        addr = address + pos
        n = min(size, len(data) - pos, 0x100 - (addr & 0xFF))
        yield addr, data[pos:pos + n]
        pos += n


class MouseM913(RdMouse):
    """Redragon M913 Impact Elite, wired and through its receiver.

    The light effect speed and the DPI level switches have no place in the
    Venus memory, they stay in the host side state.
    """

    name = "m913"
    ids = tuple((VENDOR_ID, pid) for pid in PRODUCT_IDS)
    usb_interface = 1

    brightness_min = 1
    brightness_max = 100
    speed_min = 0x01
    speed_max = 0x05
    scrollspeed_max = 0x0A
    dpi_scale = SensorDpiScale(100, 16000, 100, points=DPI_PRESETS)
    default_dpi = ("800", "1600", "2400", "3200", "4800")

    button_tables = M913_BUTTON_TABLES
    lightmode_table = M913_LIGHTMODE_VALUES
    report_rate_table = M913_REPORT_RATE_VALUES

    # in binding order, slot k lives at OFF_KEYS + 4k
    button_names = (
        "button_1", "button_2", "button_3", "button_4", "button_5", "button_6",
        "right", "left", "button_7", "button_8", "middle", "fire",
        "button_9", "button_10", "button_11", "button_12",
    )
    default_key_mapping = (
        "1", "2", "3", "4", "5", "6", "right", "left", "7", "8", "middle", "fire:left:3:40",
        "9", "0", "minus", "equal",
    )

    macro_offset = MACRO_HEADER

    def _default_transport(self) -> Transport:
        if self._vid is None or self._pid is None:
            raise TransferError("m913 is not bound to a device")
        return HidTransport(vendor_id=self._vid, product_id=self._pid, interface=self.usb_interface)

    # -- codecs --

    @classmethod
    def decode_macro(cls, data: bytes, output: TextIO, prefix: str = "", offset: int | None = None) -> int:
        return macro_codec.decode_event_macro(data, output, prefix, cls.macro_offset if offset is None else offset)

    @classmethod
    def encode_macro(cls, source: str | Iterable[str], offset: int | None = None) -> macro_codec.MacroEncodeResult:
        return macro_codec.encode_event_macro(source, cls.macro_offset if offset is None else offset)

    def set_dpi_enable(self, profile: int | Profile, level: int, enabled: bool) -> None:
        if not enabled:
            raise RangeError("the m913 cannot switch off single DPI levels")
        super().set_dpi_enable(profile, level, enabled)

    # -- memory layout --

    def _profile_region(self, state: SettingsState) -> Region:
        p = int(state.profile)
        return Region(_address(PROFILE_PAGES[0], OFF_ACTIVE_PROFILE), bytes([p, complement(p)]))

    def _appearance_regions(self, state: SettingsState, profile: int) -> list[Region]:
        s = state.profiles[profile]
        page = PROFILE_PAGES[profile]
        rate = self.encode_report_rate(s.report_rate)
        style = LED_STEADY if s.lightmode in (LightMode.OFF, LightMode.STATIC) else LED_ANIMATED
        level = encode_brightness(s.brightness)
        led = bytes([*s.color, style, *self.encode_lightmode(s.lightmode), level, complement(level)])
        return [Region(_address(page, OFF_REPORT_RATE), bytes([rate, complement(rate)])),
                Region(_address(page, OFF_SCROLL), bytes([s.scrollspeed, complement(s.scrollspeed)])),
                Region(_address(page, OFF_LED), led)]

    def _dpi_regions(self, state: SettingsState, profile: int) -> list[Region]:
        data = bytearray()
        for raw in state.profiles[profile].dpi:
            entry = [raw[0], raw[0], 0x00]
            data.extend([*entry, calc_checksum(entry)])
        return [Region(_address(PROFILE_PAGES[profile], OFF_DPI), bytes(data))]

    def _keymap_regions(self, state: SettingsState, profile: int) -> list[Region]:
        codes = []
        for code in state.profiles[profile].key_mapping:
            if code[0] == BUTTON_TYPE_MACRO and code[1] < MACRO_COUNT:
                code = macro_binding(code[1], state.macro_repeat[code[1]])
            codes.append(code)
        return [Region(_address(PROFILE_PAGES[profile], OFF_KEYS), b"".join(codes))]

    def _rate_packets(self, state: SettingsState) -> list[bytes]:
        return []

    def _rate_code(self, packet: bytes) -> int | None:
        return None

    def _macro_regions(self, state: SettingsState, index: int) -> tuple[Region, Region, Region]:
        """Event data, the name header and an empty repeat region.

        The repeat count is part of every button binding that runs the macro.
        """
        start = _address(*get_macro_slot_info(index))
        name = f"Macro {index + 1}".encode("utf-16-le")
        header = bytes([len(name)]) + name.ljust(MACRO_NAME_LEN, b"\x00")
        tape = state.macros[index]
        return (Region(start + len(header), tape[len(header):]),
                Region(start, header),
                Region(start, b""))

    def _apply_appearance(self, state: SettingsState, profile: int, image: bytes,
                          warnings: list[str]) -> None:
        s = state.profiles[profile]
        page = PROFILE_PAGES[profile]
        rate = self._checked_pair(image, _address(page, OFF_REPORT_RATE), profile, "report_rate", warnings)
        scroll = self._checked_pair(image, _address(page, OFF_SCROLL), profile, "scrollspeed", warnings)
        led = image[_address(page, OFF_LED):_address(page, OFF_LED) + 8]
        s.report_rate = self._decode_field(warnings, profile, "report_rate", self.decode_report_rate,
                                           rate, s.report_rate)
        s.scrollspeed = scroll
        s.color = (led[0], led[1], led[2])
        s.lightmode = self._decode_field(warnings, profile, "lightmode", self.decode_lightmode,
                                         bytes(led[4:6]), s.lightmode)
        s.brightness = decode_brightness(self._checked_pair(image, _address(page, OFF_LED + 6),
                                                            profile, "brightness", warnings))

    def _apply_dpi(self, state: SettingsState, profile: int, image: bytes, warnings: list[str]) -> None:
        s = state.profiles[profile]
        base = _address(PROFILE_PAGES[profile], OFF_DPI)
        for level in range(DPI_LEVEL_COUNT):
            entry = image[base + 4 * level:base + 4 * level + 4]
            if entry[0] != entry[1] or calc_checksum(entry[:3]) != entry[3]:
                warnings.append(f"profile {profile + 1}: DPI level {level + 1}: bad check byte")
            s.dpi[level] = bytes([entry[0], 0x00])

    def _apply_keymap(self, state: SettingsState, profile: int, image: bytes, warnings: list[str]) -> None:
        base = _address(PROFILE_PAGES[profile], OFF_KEYS)
        codes = []
        for k in range(state.key_count):
            code = bytes(image[base + 4 * k:base + 4 * k + 4])
            if code[0] == BUTTON_TYPE_MACRO and code[1] < MACRO_COUNT and code == macro_binding(code[1], code[2]):
                state.macro_repeat[code[1]] = code[2] or MACRO_REPEAT_ONCE
                code = macro_binding(code[1])
            codes.append(code)
        state.profiles[profile].key_mapping = codes

    def _apply_macro(self, state: SettingsState, index: int, image: bytes) -> None:
        payload, _, _ = self._macro_regions(state, index)
        data = image[payload.address:payload.address + len(payload.data)]
        state.macros[index] = bytes(MACRO_HEADER - 1) + bytes(data)

    def _keep_unreadable(self, old: SettingsState, new: SettingsState) -> None:
        for before, after in zip(old.profiles, new.profiles):
            after.speed = before.speed
            after.dpi_enabled = list(before.dpi_enabled)

    def _decode_profile(self, data: bytes, warnings: list[str]) -> Profile:
        if len(data) > 1 and complement(data[0]) != data[1]:
            warnings.append("active profile: bad complement byte")
        return super()._decode_profile(data, warnings)

    def _checked_pair(self, image: bytes, address: int, profile: int, field: str,
                      warnings: list[str]) -> int:
        value, check = image[address], image[address + 1]
        if complement(value) != check:
            warnings.append(f"profile {profile + 1}: {field}: bad complement byte")
        return value

    # -- framing --

    def _write_packets(self, region: Region) -> list[bytes]:
        return [build_flash_write(addr >> 8, addr & 0xFF, chunk)
                for addr, chunk in _chunks(region.address, region.data, WRITE_CHUNK)]

    def _unframe(self, packet: bytes) -> Region | None:
        if len(packet) < 6:
            return None
        if (packet[0], packet[1]) not in ((REPORT_ID, CMD_WRITE), (RESPONSE_ID, CMD_READ)):
            return None
        length = packet[5]
        return Region(_address(packet[3], packet[4]), bytes(packet[6:6 + length]))

    def _read_region(self, transport: Transport, address: int, length: int) -> bytes:
        data = bytearray()
        for addr, chunk in _chunks(address, bytes(length), READ_CHUNK):
            page, offset = addr >> 8, addr & 0xFF
            transport.send(build_flash_read(page, offset, len(chunk)))
            for _ in range(READ_ATTEMPTS):
                resp = transport.receive(64)
                region = self._unframe(resp)
                if resp[0] == RESPONSE_ID and region is not None and region.address == addr:
                    break
                log.debug("ignoring stray report %s", bytes(resp).hex())
            else:
                raise TransferError(f"flash read timeout at page 0x{page:02X} offset 0x{offset:02X}")
            if len(region.data) < len(chunk):
                raise TransferError(f"short flash read at page 0x{page:02X} offset 0x{offset:02X}")
            data.extend(region.data[:len(chunk)])
        return bytes(data)

    def _settings_sequence(self, profile: list[bytes], banks: SettingsPackets) -> list[bytes]:
        return [build_simple(CMD_HANDSHAKE), *profile, *banks.appearance, *banks.dpi, *banks.keymap,
                build_simple(CMD_PREPARE)]

    def _wrap_sequence(self, packets: list[bytes], commit: int | None = None) -> list[bytes]:
        return [build_simple(CMD_HANDSHAKE), *packets, build_simple(CMD_PREPARE)]

    # -- macros --

    def write_macro_repeat(self, index: int) -> None:
        """Rewrite the button bindings, which carry the macro repeat counts."""
        self.state.check_macro(index)
        self._send_all(self._wrap_sequence(self.build_settings_packets().keymap))

    def read_macro(self, index: int) -> None:
        transport = self._require_transport()
        self.state.check_macro(index)
        payload, _, _ = self._macro_regions(self.state, index)
        data = self._read_region(transport, payload.address, len(payload.data))
        self.state.macros[index] = bytes(MACRO_HEADER - 1) + data
