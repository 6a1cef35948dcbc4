"""In-memory settings for all five profiles and all fifteen macros.

The state only checks indices. Value ranges depend on the model and are
checked by the model's setters before anything here is touched.
"""
from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field

from mouse_types import (DPI_LEVEL_COUNT, MACRO_COUNT, MACRO_SIZE, PROFILE_COUNT,
                         LightMode, Profile, RangeError, ReportRate, coerce_profile)


@dataclass
class ProfileSettings:
    scrollspeed: int = 0x01
    lightmode: LightMode = LightMode.STATIC
    color: tuple[int, int, int] = (0xFF, 0xFF, 0xFF)
    brightness: int = 0x01
    speed: int = 0x01
    dpi_enabled: list[bool] = field(default_factory=lambda: [True] * DPI_LEVEL_COUNT)
    dpi: list[bytes] = field(default_factory=lambda: [bytes(2)] * DPI_LEVEL_COUNT)
    key_mapping: list[bytes] = field(default_factory=list)
    report_rate: ReportRate = ReportRate.R_1000HZ


@dataclass
class SettingsState:
    key_count: int = 20
    profile: Profile = Profile.PROFILE_1
    profiles: list[ProfileSettings] = field(default_factory=list)
    macros: list[bytes] = field(default_factory=lambda: [bytes(MACRO_SIZE)] * MACRO_COUNT)
    macro_repeat: list[int] = field(default_factory=lambda: [0x01] * MACRO_COUNT)

    def __post_init__(self) -> None:
        if not self.profiles:
            self.profiles = [
                ProfileSettings(key_mapping=[bytes(4)] * self.key_count)
                for _ in range(PROFILE_COUNT)
            ]
        if len(self.profiles) != PROFILE_COUNT:
            raise RangeError(f"expected {PROFILE_COUNT} profiles, got {len(self.profiles)}")

    def __getitem__(self, profile: int | Profile) -> ProfileSettings:
        return self.profiles[coerce_profile(profile)]

    def copy(self) -> SettingsState:
        return deepcopy(self)

    # -- index checks --

    @staticmethod
    def check_level(level: int) -> int:
        if not 0 <= level < DPI_LEVEL_COUNT:
            raise RangeError(f"DPI level must be 0-{DPI_LEVEL_COUNT - 1}, got {level}")
        return level

    def check_key(self, key: int) -> int:
        if not 0 <= key < self.key_count:
            raise RangeError(f"key slot must be 0-{self.key_count - 1}, got {key}")
        return key

    @staticmethod
    def check_macro(index: int) -> int:
        if not 0 <= index < MACRO_COUNT:
            raise RangeError(f"macro index must be 0-{MACRO_COUNT - 1}, got {index}")
        return index

    # -- raw setters, values already validated by the caller --

    def set_dpi(self, profile: int | Profile, level: int, raw: bytes) -> None:
        settings = self[profile]
        self.check_level(level)
        if len(raw) != 2:
            raise RangeError(f"raw DPI must be 2 bytes, got {len(raw)}")
        settings.dpi[level] = bytes(raw)

    def set_dpi_enable(self, profile: int | Profile, level: int, enabled: bool) -> None:
        settings = self[profile]
        self.check_level(level)
        if not enabled and sum(settings.dpi_enabled) == 1 and settings.dpi_enabled[level]:
            raise RangeError("at least one DPI level must stay enabled")
        settings.dpi_enabled[level] = bool(enabled)

    def set_key_mapping(self, profile: int | Profile, key: int, code: bytes) -> None:
        settings = self[profile]
        self.check_key(key)
        if len(code) != 4:
            raise RangeError(f"button mapping must be 4 bytes, got {len(code)}")
        settings.key_mapping[key] = bytes(code)

    def set_macro(self, index: int, data: bytes) -> None:
        self.check_macro(index)
        if len(data) != MACRO_SIZE:
            raise RangeError(f"macro must be {MACRO_SIZE} bytes, got {len(data)}")
        self.macros[index] = bytes(data)

    def set_macro_repeat(self, index: int, repeat: int) -> None:
        self.check_macro(index)
        if not 0x01 <= repeat <= 0xFF:
            raise RangeError(f"macro repeat must be 1-255, got {repeat}")
        self.macro_repeat[index] = repeat
