"""Base class shared by every supported mouse, plus the Holtek packet layout.

Most models are Holtek based (VID 04D9) and share one memory layout written
with F3 feature reports. Data starts at byte 8 of every report; the report
size follows the data length:

    0x02  16 bytes   up to 8 data bytes
    0x03  64 bytes   up to 56 data bytes
    0x04  256 bytes  up to 248 data bytes (macros, button maps)

    [RID, F3, addr_lo, addr_hi, length, 0x00, 0x00, 0x00, data...]

F3 writes only take effect after the category commit (F1 02 <mask>), so
every write sequence is wrapped in enter/commit/exit control reports.

Memory map (per profile p):

    0x003D                        active profile
    PROFILE_BASE_ADDRS[p]         [enabled_levels, 0, current_level, 0]
    PROFILE_BASE_ADDRS[p] + 4     5 DPI entries [enabled, dpi // 200, 0, 0, 0, 0]
    PROFILE_BASE_ADDRS[p] + 0x40  u16le key count, then 4 bytes per key
    0x0448 + 8p                   [0x80, R, G, B, effect, brightness, speed, 0x03]
    0x0700 + 4i                   macro i info [addr_lo, addr_hi, commands, 0]
    0x0740 + i                    macro i repeat count
    0x0800 + 0x100 i              macro i tape

Reads use F2 requests; the answer carries the data at byte 8 with the same
report size as the matching write.

The report rate is not part of the memory map. It is one device wide value
set with [0x02, F5, code], which applies at once without a commit. Scroll
speed has no Holtek address at all and only lives in the host side state.
"""
from __future__ import annotations

import io
import logging
from typing import ClassVar, Iterable, Mapping, NamedTuple, Optional, TextIO

import button_mapping as bm
import macro_codec
import mouse_attributes as attrs
import mouse_keycodes as kc
import settings_report
from mouse_attributes import DpiScale
from mouse_transport import Transport, UsbTransport
from mouse_types import (DPI_LEVEL_COUNT, MACRO_COUNT, PROFILE_COUNT, InvalidLightMode,
                         InvalidReportRate, LightMode, Profile, RangeError, ReportRate,
                         TransferError, coerce_lightmode, coerce_profile, coerce_report_rate)
from settings_state import SettingsState

log = logging.getLogger(__name__)


# -- Report framing --
RID_SHORT = 0x02   # 16 bytes total
RID_LONG = 0x03    # 64 bytes total
RID_MACRO = 0x04   # 256 bytes total

REPORT_SIZES = {RID_SHORT: 16, RID_LONG: 64, RID_MACRO: 256}
HEADER_LEN = 8

CMD_WRITE_CTRL = 0xF1
CMD_READ = 0xF2
CMD_WRITE_DATA = 0xF3
CMD_POLLING = 0xF5

# F1 02 <mask> categories
CTRL_ENTER_WRITE = 0x01
CTRL_COMMIT_BTN = 0x02
CTRL_COMMIT_DPI = 0x04
CTRL_COMMIT_LED = 0x08
CTRL_EXIT_WRITE = 0x10

# -- Memory addresses --
ADDR_ACTIVE_PROFILE = 0x003D
PROFILE_BASE_ADDRS = (0x0040, 0x0100, 0x01B0, 0x0260, 0x0310)
DPI_OFFSET = 0x04
DPI_ENTRY_SIZE = 6
KEYMAP_OFFSET = 0x40
ADDR_LED_PROFILE = tuple(0x0448 + p * 8 for p in range(PROFILE_COUNT))
LED_ENABLED = 0x80
LED_TRAILER = 0x03
ADDR_MACRO_INFO = 0x0700
ADDR_MACRO_REPEAT = 0x0740
ADDR_MACRO_DATA = 0x0800
MACRO_STRIDE = 0x100

MEMORY_SIZE = 0x10000


class Region(NamedTuple):
    address: int
    data: bytes


class SettingsPackets(NamedTuple):
    appearance: list[bytes]
    dpi: list[bytes]
    keymap: list[bytes]


class MacroPackets(NamedTuple):
    payload: list[bytes]
    metadata: list[bytes]
    repeat: list[bytes]


def build_write(address: int, data: bytes) -> bytes:
    """Build an F3 write report, picking the smallest report that fits."""
    for rid in (RID_SHORT, RID_LONG, RID_MACRO):
        size = REPORT_SIZES[rid]
        if len(data) <= size - HEADER_LEN:
            break
    else:
        raise ValueError(f"data too long for one report: {len(data)} bytes")
    pkt = bytearray(size)
    pkt[0] = rid
    pkt[1] = CMD_WRITE_DATA
    pkt[2] = address & 0xFF
    pkt[3] = (address >> 8) & 0xFF
    pkt[4] = len(data)
    # pkt[5:8] must stay 0x00
    pkt[HEADER_LEN:HEADER_LEN + len(data)] = data
    return bytes(pkt)


def build_control(mask: int) -> bytes:
    pkt = bytearray(REPORT_SIZES[RID_SHORT])
    pkt[0:4] = bytes([RID_SHORT, CMD_WRITE_CTRL, 0x02, mask])
    return bytes(pkt)


def build_read(address: int, length: int) -> bytes:
    pkt = bytearray(REPORT_SIZES[RID_SHORT])
    pkt[0:5] = bytes([RID_SHORT, CMD_READ, address & 0xFF, (address >> 8) & 0xFF, length & 0xFF])
    return bytes(pkt)


def build_polling(code: int) -> bytes:
    """Build the F5 report rate report."""
    pkt = bytearray(REPORT_SIZES[RID_SHORT])
    pkt[0:3] = bytes([RID_SHORT, CMD_POLLING, code & 0xFF])
    return bytes(pkt)


def response_report_id(length: int) -> int:
    if length <= 8:
        return RID_SHORT
    if length <= 56:
        return RID_LONG
    return RID_MACRO


class RdMouse:
    """Behaviour shared by all models.

    Subclasses set the class attributes below; most never override methods.
    The general procedure when changing settings on the mouse is:

    1. ``open()`` or ``open_bus_device()``
    2. ``set_*`` (only changes ``self.state``)
    3. ``write_*`` (sends ``self.state`` to the mouse)
    4. ``close()``
    """

    name: ClassVar[str] = ""
    ids: ClassVar[tuple[tuple[int, int], ...]] = ()
    usb_interface: ClassVar[int] = 2

    # setting min and max values
    scrollspeed_min: ClassVar[int] = 0x01
    scrollspeed_max: ClassVar[int] = 0x3F
    brightness_min: ClassVar[int] = 0x01
    brightness_max: ClassVar[int] = 0x03
    speed_min: ClassVar[int] = 0x01
    speed_max: ClassVar[int] = 0x08
    level_min: ClassVar[int] = 0
    level_max: ClassVar[int] = DPI_LEVEL_COUNT - 1
    dpi_min: ClassVar[int] = 0x04
    dpi_max: ClassVar[int] = 0x8C
    dpi_2_min: ClassVar[int] = 0x00
    dpi_2_max: ClassVar[int] = 0x00
    dpi_scale: ClassVar[Optional[DpiScale]] = None

    # code tables
    button_tables: ClassVar[bm.ButtonTables] = bm.BASE_BUTTON_TABLES
    lightmode_table: ClassVar[Mapping[LightMode, bytes]] = kc.LIGHTMODE_VALUES
    report_rate_table: ClassVar[Mapping[ReportRate, int]] = kc.REPORT_RATE_VALUES

    # button slots and their factory mappings
    button_names: ClassVar[tuple[str, ...]] = tuple(f"button_{n}" for n in range(1, 21))
    default_key_mapping: ClassVar[tuple[str, ...]] = (
        "left", "right", "middle", "backward", "forward", "dpi+", "dpi-", "dpi-cycle",
        "kp_1", "kp_2", "kp_3", "kp_4", "kp_5", "kp_6",
        "kp_7", "kp_8", "kp_9", "kp_0", "kp_minus", "kp_plus",
    )
    default_dpi: ClassVar[tuple[str, ...]] = ("0x0400", "0x0800", "0x1000", "0x2000", "0x4000")

    macro_offset: ClassVar[int] = HEADER_LEN

    def __init__(self, state: SettingsState | None = None, *,
                 vid: int | None = None, pid: int | None = None,
                 bus: int | None = None, address: int | None = None):
        self.state = state if state is not None else self.new_state()
        self._vid = vid
        self._pid = pid
        if vid is None and pid is None and self.ids:
            self._vid, self._pid = self.ids[0]
        self.bus = bus
        self.address = address
        self._detach_kernel_driver = True
        self._transport: Transport | None = None

    def __repr__(self) -> str:
        ids = f"{self._vid:04x}:{self._pid:04x}" if self._vid is not None else "unbound"
        return f"<{type(self).__name__} {self.name!r} {ids}>"

    # -- identity --

    @classmethod
    def get_name(cls) -> str:
        return cls.name

    @classmethod
    def has_vid_pid(cls, vid: int, pid: int) -> bool:
        return (vid, pid) in cls.ids

    @property
    def vid(self) -> int | None:
        return self._vid

    @property
    def pid(self) -> int | None:
        return self._pid

    def set_vid(self, vid: int) -> None:
        self._vid = vid

    def set_pid(self, pid: int) -> None:
        self._pid = pid

    @classmethod
    def new_state(cls) -> SettingsState:
        """Return a settings state holding this model's factory defaults."""
        state = SettingsState(key_count=len(cls.button_names))
        keymap = [cls.encode_button_mapping(m) for m in cls.default_key_mapping]
        dpi = [cls.encode_dpi(v) for v in cls.default_dpi]
        for settings in state.profiles:
            settings.scrollspeed = cls.scrollspeed_min
            settings.brightness = cls.brightness_max
            settings.speed = cls.speed_min
            settings.dpi = list(dpi)
            settings.key_mapping = list(keymap)
        return state

    # -- codecs --

    @classmethod
    def decode_button_mapping(cls, code: bytes) -> str:
        return bm.decode_button_mapping(code, cls.button_tables)

    @classmethod
    def encode_button_mapping(cls, mapping: str) -> bytes:
        return bm.encode_button_mapping(mapping, cls.button_tables)

    @classmethod
    def decode_lightmode(cls, code: bytes) -> LightMode:
        return attrs.decode_lightmode(code, cls.lightmode_table)

    @classmethod
    def encode_lightmode(cls, lightmode: str | LightMode) -> bytes:
        return attrs.encode_lightmode(lightmode, cls.lightmode_table)

    @classmethod
    def decode_report_rate(cls, code: int) -> ReportRate:
        return attrs.decode_report_rate(code, cls.report_rate_table)

    @classmethod
    def encode_report_rate(cls, rate: int | str | ReportRate) -> int:
        return attrs.encode_report_rate(rate, cls.report_rate_table)

    @classmethod
    def decode_dpi(cls, dpi_bytes: bytes) -> str:
        """DPI as text: real DPI when the encoding is known, else raw hex."""
        if cls.dpi_scale is not None:
            return str(cls.dpi_scale.decode(dpi_bytes))
        return attrs.decode_dpi_raw(dpi_bytes)

    @classmethod
    def encode_dpi(cls, dpi: int | str) -> bytes:
        if cls.dpi_scale is not None:
            return cls.dpi_scale.encode(dpi)
        return attrs.encode_dpi_raw(str(dpi), cls.dpi_min, cls.dpi_max, cls.dpi_2_min, cls.dpi_2_max)

    @classmethod
    def decode_macro(cls, data: bytes, output: TextIO, prefix: str = "", offset: int | None = None) -> int:
        return macro_codec.decode_macro(data, output, prefix, cls.macro_offset if offset is None else offset)

    @classmethod
    def encode_macro(cls, source: str | Iterable[str], offset: int | None = None) -> macro_codec.MacroEncodeResult:
        return macro_codec.encode_macro(source, cls.macro_offset if offset is None else offset)

    @classmethod
    def lightmode_strings(cls) -> dict[LightMode, str]:
        return {mode: kc.LIGHTMODE_STRINGS[mode] for mode in cls.lightmode_table}

    @classmethod
    def report_rate_strings(cls) -> dict[ReportRate, str]:
        return {rate: kc.REPORT_RATE_STRINGS[rate] for rate in cls.report_rate_table}

    # -- setters --

    def set_profile(self, profile: int | Profile) -> None:
        self.state.profile = coerce_profile(profile)

    def set_scrollspeed(self, profile: int | Profile, speed: int) -> None:
        settings = self.state[profile]
        _check_range("scroll speed", speed, self.scrollspeed_min, self.scrollspeed_max)
        settings.scrollspeed = speed

    def set_lightmode(self, profile: int | Profile, lightmode: str | LightMode) -> None:
        settings = self.state[profile]
        mode = coerce_lightmode(lightmode)
        self.encode_lightmode(mode)
        settings.lightmode = mode

    def set_color(self, profile: int | Profile, color: tuple[int, int, int] | str) -> None:
        settings = self.state[profile]
        if isinstance(color, str):
            try:
                color = tuple(bytes.fromhex(color.removeprefix("#")))
            except ValueError:
                raise RangeError(f"color must be RRGGBB, got {color!r}") from None
        if len(color) != 3:
            raise RangeError(f"color needs 3 components, got {len(color)}")
        for component in color:
            _check_range("color component", component, 0x00, 0xFF)
        settings.color = tuple(color)

    def set_brightness(self, profile: int | Profile, brightness: int) -> None:
        settings = self.state[profile]
        _check_range("brightness", brightness, self.brightness_min, self.brightness_max)
        settings.brightness = brightness

    def set_speed(self, profile: int | Profile, speed: int) -> None:
        settings = self.state[profile]
        _check_range("speed", speed, self.speed_min, self.speed_max)
        settings.speed = speed

    def set_dpi_enable(self, profile: int | Profile, level: int, enabled: bool) -> None:
        _check_range("DPI level", level, self.level_min, self.level_max)
        self.state.set_dpi_enable(profile, level, enabled)

    def set_dpi(self, profile: int | Profile, level: int, dpi: int | str) -> None:
        coerce_profile(profile)
        _check_range("DPI level", level, self.level_min, self.level_max)
        self.state.set_dpi(profile, level, self.encode_dpi(dpi))

    def set_key_mapping(self, profile: int | Profile, key: int | str, mapping: str | bytes) -> None:
        coerce_profile(profile)
        slot = self.key_index(key)
        code = bytes(mapping) if isinstance(mapping, (bytes, bytearray)) else self.encode_button_mapping(mapping)
        self.state.set_key_mapping(profile, slot, code)

    def set_report_rate(self, profile: int | Profile, rate: int | str | ReportRate) -> None:
        settings = self.state[profile]
        rate = coerce_report_rate(rate)
        self.encode_report_rate(rate)
        settings.report_rate = rate

    def set_macro(self, index: int, source: str | Iterable[str]) -> macro_codec.MacroEncodeResult:
        """Encode a macro script into slot ``index``.

        A ``repeat <n>`` line in the script also sets the repeat count.
        """
        self.state.check_macro(index)
        result = self.encode_macro(source)
        self.state.set_macro(index, result.data)
        if result.repeat is not None:
            self.state.set_macro_repeat(index, result.repeat)
        return result

    def set_macro_repeat(self, index: int, repeat: int) -> None:
        self.state.set_macro_repeat(index, repeat)

    def set_detach_kernel_driver(self, detach_kernel_driver: bool) -> None:
        self._detach_kernel_driver = detach_kernel_driver

    def key_index(self, key: int | str) -> int:
        if isinstance(key, str):
            try:
                return self.button_names.index(key)
            except ValueError:
                raise RangeError(f"{self.name or 'this model'} has no button {key!r}") from None
        return self.state.check_key(key)

    # -- getters --

    def get_profile(self) -> Profile:
        return self.state.profile

    def get_scrollspeed(self, profile: int | Profile) -> int:
        return self.state[profile].scrollspeed

    def get_lightmode(self, profile: int | Profile) -> LightMode:
        return self.state[profile].lightmode

    def get_color(self, profile: int | Profile) -> tuple[int, int, int]:
        return self.state[profile].color

    def get_brightness(self, profile: int | Profile) -> int:
        return self.state[profile].brightness

    def get_speed(self, profile: int | Profile) -> int:
        return self.state[profile].speed

    def get_dpi_enable(self, profile: int | Profile, level: int) -> bool:
        return self.state[profile].dpi_enabled[self.state.check_level(level)]

    def get_dpi(self, profile: int | Profile, level: int) -> str:
        return self.decode_dpi(self.state[profile].dpi[self.state.check_level(level)])

    def get_key_mapping(self, profile: int | Profile, key: int | str) -> str:
        return self.decode_button_mapping(self.state[profile].key_mapping[self.key_index(key)])

    def get_report_rate(self, profile: int | Profile) -> ReportRate:
        return self.state[profile].report_rate

    def get_macro(self, index: int) -> str:
        out = io.StringIO()
        self.decode_macro(self.state.macros[self.state.check_macro(index)], out)
        return out.getvalue()

    def get_macro_repeat(self, index: int) -> int:
        return self.state.macro_repeat[self.state.check_macro(index)]

    def get_detach_kernel_driver(self) -> bool:
        return self._detach_kernel_driver

    # -- memory layout (override for other layouts) --

    def _profile_region(self, state: SettingsState) -> Region:
        return Region(ADDR_ACTIVE_PROFILE, bytes([int(state.profile)]))

    def _appearance_regions(self, state: SettingsState, profile: int) -> list[Region]:
        s = state.profiles[profile]
        effect = self.encode_lightmode(s.lightmode)[0]
        led = bytes([LED_ENABLED, *s.color, effect, s.brightness, s.speed, LED_TRAILER])
        return [Region(ADDR_LED_PROFILE[profile], led)]

    def _dpi_regions(self, state: SettingsState, profile: int) -> list[Region]:
        s = state.profiles[profile]
        # the mouse starts at the first level after every write
        header = bytes([sum(s.dpi_enabled), 0x00, 0x00, 0x00])
        entries = bytearray()
        for enabled, raw in zip(s.dpi_enabled, s.dpi):
            entries.extend([int(enabled), raw[0], raw[1], 0x00, 0x00, 0x00])
        return [Region(PROFILE_BASE_ADDRS[profile], header),
                Region(PROFILE_BASE_ADDRS[profile] + DPI_OFFSET, bytes(entries))]

    def _rate_packets(self, state: SettingsState) -> list[bytes]:
        """Report rate packets; the Holtek rate is device wide, so the active profile's wins."""
        return [build_polling(self.encode_report_rate(state[state.profile].report_rate))]

    def _rate_code(self, packet: bytes) -> int | None:
        if len(packet) < 3 or packet[0] != RID_SHORT or packet[1] != CMD_POLLING:
            return None
        return packet[2]

    def _keymap_regions(self, state: SettingsState, profile: int) -> list[Region]:
        s = state.profiles[profile]
        data = bytearray(state.key_count.to_bytes(2, "little"))
        for code in s.key_mapping:
            data.extend(code)
        return [Region(PROFILE_BASE_ADDRS[profile] + KEYMAP_OFFSET, bytes(data))]

    def _macro_regions(self, state: SettingsState, index: int) -> tuple[Region, Region, Region]:
        tape = state.macros[index]
        address = ADDR_MACRO_DATA + index * MACRO_STRIDE
        commands, _ = macro_codec.parse_macro(tape, self.macro_offset)
        info = bytes([address & 0xFF, (address >> 8) & 0xFF, len(commands), 0x00])
        return (Region(address, tape[self.macro_offset:]),
                Region(ADDR_MACRO_INFO + index * 4, info),
                Region(ADDR_MACRO_REPEAT + index, bytes([state.macro_repeat[index]])))

    def _apply_appearance(self, state: SettingsState, profile: int, image: bytes,
                          warnings: list[str]) -> None:
        s = state.profiles[profile]
        led = _slice(image, ADDR_LED_PROFILE[profile], 8)
        if led[0] != LED_ENABLED:
            warnings.append(f"profile {profile + 1}: LED record starts with 0x{led[0]:02x}")
        s.color = (led[1], led[2], led[3])
        s.lightmode = self._decode_field(warnings, profile, "lightmode", self.decode_lightmode,
                                         bytes([led[4], 0x00]), s.lightmode)
        s.brightness = led[5]
        s.speed = led[6]

    def _apply_dpi(self, state: SettingsState, profile: int, image: bytes, warnings: list[str]) -> None:
        s = state.profiles[profile]
        entries = _slice(image, PROFILE_BASE_ADDRS[profile] + DPI_OFFSET, DPI_LEVEL_COUNT * DPI_ENTRY_SIZE)
        for level in range(DPI_LEVEL_COUNT):
            entry = entries[level * DPI_ENTRY_SIZE:(level + 1) * DPI_ENTRY_SIZE]
            s.dpi_enabled[level] = bool(entry[0])
            s.dpi[level] = bytes(entry[1:3])

    def _apply_keymap(self, state: SettingsState, profile: int, image: bytes, warnings: list[str]) -> None:
        s = state.profiles[profile]
        data = _slice(image, PROFILE_BASE_ADDRS[profile] + KEYMAP_OFFSET, 2 + 4 * state.key_count)
        stored = int.from_bytes(data[0:2], "little")
        if stored != state.key_count:
            warnings.append(f"profile {profile + 1}: device reports {stored} keys, expected {state.key_count}")
        s.key_mapping = [bytes(data[2 + 4 * k:6 + 4 * k]) for k in range(state.key_count)]

    def _apply_macro(self, state: SettingsState, index: int, image: bytes) -> None:
        payload, _, repeat = self._macro_regions(state, index)
        tape = bytes(self.macro_offset) + _slice(image, payload.address, len(payload.data))
        state.macros[index] = tape
        state.macro_repeat[index] = _slice(image, repeat.address, 1)[0] or 0x01

    def _keep_unreadable(self, old: SettingsState, new: SettingsState) -> None:
        """Carry over the values a memory read cannot return (F5 rate, scroll speed)."""
        for before, after in zip(old.profiles, new.profiles):
            after.report_rate = before.report_rate
            after.scrollspeed = before.scrollspeed

    @staticmethod
    def _decode_field(warnings, profile, field, decoder, raw, fallback):
        try:
            return decoder(raw)
        except (InvalidLightMode, InvalidReportRate) as exc:
            warnings.append(f"profile {profile + 1}: {field}: {exc}")
            log.warning("profile %d: %s: %s", profile + 1, field, exc)
            return fallback

    # -- framing (override for other report formats) --

    def _write_packets(self, region: Region) -> list[bytes]:
        return [build_write(region.address, region.data)]

    def _unframe(self, packet: bytes) -> Region | None:
        """Return the region carried by a write/read report, None for control reports."""
        if len(packet) < HEADER_LEN or packet[1] != CMD_WRITE_DATA:
            return None
        length = packet[4]
        return Region(packet[2] | (packet[3] << 8), bytes(packet[HEADER_LEN:HEADER_LEN + length]))

    def _read_region(self, transport: Transport, address: int, length: int) -> bytes:
        transport.send(build_read(address, length))
        rid = response_report_id(length)
        resp = transport.receive(REPORT_SIZES[rid], rid)
        if len(resp) < HEADER_LEN + length:
            raise TransferError(f"short response at 0x{address:04X} ({len(resp)} bytes)")
        return bytes(resp[HEADER_LEN:HEADER_LEN + length])

    def _settings_sequence(self, profile: list[bytes], banks: SettingsPackets) -> list[bytes]:
        return [build_control(CTRL_ENTER_WRITE), *profile,
                *banks.appearance, build_control(CTRL_COMMIT_LED),
                *banks.dpi, build_control(CTRL_COMMIT_DPI),
                *banks.keymap, build_control(CTRL_COMMIT_BTN),
                build_control(CTRL_EXIT_WRITE)]

    def _wrap_sequence(self, packets: list[bytes], commit: int | None = None) -> list[bytes]:
        tail = [build_control(commit)] if commit is not None else []
        return [build_control(CTRL_ENTER_WRITE), *packets, *tail, build_control(CTRL_EXIT_WRITE)]

    # -- packet builder --

    def build_profile_packets(self) -> list[bytes]:
        return self._write_packets(self._profile_region(self.state))

    def build_settings_packets(self) -> SettingsPackets:
        """Serialize all five profiles into the three settings banks."""
        appearance: list[bytes] = []
        dpi: list[bytes] = []
        keymap: list[bytes] = []
        for profile in range(PROFILE_COUNT):
            for region in self._appearance_regions(self.state, profile):
                appearance.extend(self._write_packets(region))
            for region in self._dpi_regions(self.state, profile):
                dpi.extend(self._write_packets(region))
            for region in self._keymap_regions(self.state, profile):
                keymap.extend(self._write_packets(region))
        appearance.extend(self._rate_packets(self.state))
        return SettingsPackets(appearance, dpi, keymap)

    def build_macro_packets(self, index: int) -> MacroPackets:
        self.state.check_macro(index)
        payload, metadata, repeat = self._macro_regions(self.state, index)
        return MacroPackets(self._write_packets(payload),
                            self._write_packets(metadata),
                            self._write_packets(repeat))

    def parse_packets(self, packets: Iterable[bytes]) -> tuple[SettingsState, list[str]]:
        """Rebuild a settings state from write (or read) reports.

        Fields that cannot be decoded keep their default and are reported in
        the returned warning list.
        """
        image = bytearray(MEMORY_SIZE)
        rate_code = None
        for packet in packets:
            code = self._rate_code(packet)
            if code is not None:
                rate_code = code
                continue
            region = self._unframe(packet)
            if region is not None:
                image[region.address:region.address + len(region.data)] = region.data
        state, warnings = self._state_from_image(bytes(image))
        if rate_code is not None:
            rate = self._decode_field(warnings, int(state.profile), "report_rate", self.decode_report_rate,
                                      rate_code, None)
            if rate is not None:
                for settings in state.profiles:
                    settings.report_rate = rate
        return state, warnings

    def _state_from_image(self, image: bytes, macros: bool = True) -> tuple[SettingsState, list[str]]:
        state = self.new_state()
        warnings: list[str] = []
        state.profile = self._decode_profile(_slice(image, *self._region_span(self._profile_region(state))),
                                             warnings)
        for profile in range(PROFILE_COUNT):
            self._apply_appearance(state, profile, image, warnings)
            self._apply_dpi(state, profile, image, warnings)
            self._apply_keymap(state, profile, image, warnings)
        if macros:
            for index in range(MACRO_COUNT):
                self._apply_macro(state, index, image)
        return state, warnings

    def _decode_profile(self, data: bytes, warnings: list[str]) -> Profile:
        try:
            return Profile(data[0])
        except ValueError:
            warnings.append(f"active profile byte 0x{data[0]:02x} out of range")
            return Profile.PROFILE_1

    @staticmethod
    def _region_span(region: Region) -> tuple[int, int]:
        return region.address, len(region.data)

    # -- session --

    def open(self, transport: Transport | None = None) -> None:
        """Open the mouse, by default over USB with this object's vid/pid."""
        if transport is None:
            transport = self._default_transport()
        transport.open()
        self._transport = transport

    def open_bus_device(self, bus: int, device: int) -> None:
        self.open(UsbTransport(bus=bus, address=device, interface=self.usb_interface,
                               detach_kernel_driver=self._detach_kernel_driver))

    def close(self) -> None:
        if self._transport is None:
            return
        transport, self._transport = self._transport, None
        transport.close()

    def _default_transport(self) -> Transport:
        if self.bus is not None and self.address is not None:
            return UsbTransport(bus=self.bus, address=self.address, interface=self.usb_interface,
                                detach_kernel_driver=self._detach_kernel_driver)
        if self._vid is None or self._pid is None:
            raise TransferError(f"{type(self).__name__} is not bound to a device")
        return UsbTransport(self._vid, self._pid, interface=self.usb_interface,
                            detach_kernel_driver=self._detach_kernel_driver)

    def _require_transport(self) -> Transport:
        if self._transport is None:
            raise TransferError("mouse not open")
        return self._transport

    def _send_all(self, packets: list[bytes]) -> None:
        transport = self._require_transport()
        for packet in packets:
            transport.send(packet)

    # -- writers --

    def write_profile(self) -> None:
        """Make the currently selected profile active on the mouse."""
        self._send_all(self._wrap_sequence(self.build_profile_packets()))

    def write_settings(self) -> None:
        """Send profile, appearance, DPI and button settings, in that order."""
        packets = self._settings_sequence(self.build_profile_packets(), self.build_settings_packets())
        log.info("%s: writing settings (%d reports)", self.name or "mouse", len(packets))
        self._send_all(packets)

    def write_macro(self, index: int) -> None:
        banks = self.build_macro_packets(index)
        self._send_all(self._wrap_sequence([*banks.payload, *banks.metadata], CTRL_COMMIT_BTN))

    def write_macro_repeat(self, index: int) -> None:
        banks = self.build_macro_packets(index)
        self._send_all(self._wrap_sequence(banks.repeat, CTRL_COMMIT_BTN))

    # -- readers --

    def read_settings(self, macros: bool = False) -> list[str]:
        """Read all settings from the mouse into ``self.state``.

        ``self.state`` is only replaced once every read succeeded. Returns
        warnings for fields that could not be decoded.
        Values the mouse cannot report back keep their current setting.
        """
        transport = self._require_transport()
        template = self.new_state()
        regions = [self._profile_region(template)]
        for profile in range(PROFILE_COUNT):
            regions += self._appearance_regions(template, profile)
            regions += self._dpi_regions(template, profile)
            regions += self._keymap_regions(template, profile)
        if macros:
            for index in range(MACRO_COUNT):
                payload, _, repeat = self._macro_regions(template, index)
                regions += [payload, repeat]

        image = bytearray(MEMORY_SIZE)
        for region in regions:
            data = self._read_region(transport, region.address, len(region.data))
            image[region.address:region.address + len(data)] = data

        state, warnings = self._state_from_image(bytes(image), macros=macros)
        if not macros:
            state.macros = list(self.state.macros)
            state.macro_repeat = list(self.state.macro_repeat)
        self._keep_unreadable(self.state, state)
        self.state = state
        return warnings

    def read_macro(self, index: int) -> None:
        """Read one macro tape and its repeat count into ``self.state``."""
        transport = self._require_transport()
        self.state.check_macro(index)
        payload, _, repeat = self._macro_regions(self.state, index)
        data = self._read_region(transport, payload.address, len(payload.data))
        count = self._read_region(transport, repeat.address, 1)
        self.state.macros[index] = bytes(self.macro_offset) + data
        self.state.macro_repeat[index] = count[0] or 0x01

    # -- reports --

    def print_settings(self, output: TextIO) -> None:
        settings_report.print_settings(self, output)


def _check_range(what: str, value: int, minimum: int, maximum: int) -> None:
    if not isinstance(value, int) or not minimum <= value <= maximum:
        raise RangeError(f"{what} must be {minimum}-{maximum}, got {value!r}")


def _slice(image: bytes, address: int, length: int) -> bytes:
    return bytes(image[address:address + length])
