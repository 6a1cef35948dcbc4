"""Static code tables for the Holtek based models.

Button mapping codes are 4 bytes wide. The first byte selects the action
type, the meaning of the rest depends on it:

    00 00 00 00            disabled ("none")
    81..85 00 00 00        left, right, middle, backward, forward
    89 00 00 00            DPI down
    8a 00 00 00            DPI up
    8d 00 00 00            profile switch
    90 <mods> <key> 00     keyboard key with modifier bits
    92 <rep> <bits> <ms>   fire key: click <bits> <rep> times, <ms> apart

The codes above were read back from a factory-default M908 class device.
These ones have not been seen in a capture yet:

    86 00 00 00            LED toggle
    87 00 00 00            report rate cycle
    88 00 00 00            DPI cycle
    8b <raw> 00 00         snipe button, <raw> from SNIPE_DPI_VALUES
    8e <lo> <hi> 00        media key, HID consumer usage (little endian)
    8f <n> 00 00           run macro n (1-15)

Every table is read-only; models that need different codes build their own
tables instead of changing these (see mouse_m913).
"""
from __future__ import annotations

from types import MappingProxyType

from mouse_types import LightMode, ReportRate


BTN_DISABLED = 0x00
BTN_LMB = 0x81
BTN_RMB = 0x82
BTN_MMB = 0x83
BTN_BACK = 0x84
BTN_FORWARD = 0x85
BTN_LED = 0x86
BTN_REPORT_RATE = 0x87
BTN_DPI_CYCLE = 0x88
BTN_DPI_DOWN = 0x89
BTN_DPI_UP = 0x8A
BTN_SNIPE = 0x8B
BTN_PROFILE = 0x8D
BTN_MEDIA = 0x8E
BTN_MACRO = 0x8F
BTN_KEYBOARD = 0x90
BTN_FIRE = 0x92


# Standard HID mouse button bits, used by fire keys and macros
MOUSE_BUTTON_BITS = MappingProxyType({
    "left": 0x01,
    "right": 0x02,
    "middle": 0x04,
    "backward": 0x08,
    "forward": 0x10,
})

MOUSE_BUTTON_CODES = MappingProxyType({
    "left": bytes([BTN_LMB, 0x00, 0x00, 0x00]),
    "right": bytes([BTN_RMB, 0x00, 0x00, 0x00]),
    "middle": bytes([BTN_MMB, 0x00, 0x00, 0x00]),
    "backward": bytes([BTN_BACK, 0x00, 0x00, 0x00]),
    "forward": bytes([BTN_FORWARD, 0x00, 0x00, 0x00]),
})

# HID Consumer Page usages
MEDIA_USAGES = MappingProxyType({
    "media_play": 0x00CD,
    "media_stop": 0x00B7,
    "media_next": 0x00B5,
    "media_prev": 0x00B6,
    "media_mute": 0x00E2,
    "media_vol_up": 0x00E9,
    "media_vol_down": 0x00EA,
    "media_player": 0x0183,
    "media_email": 0x018A,
    "media_calculator": 0x0192,
    "media_computer": 0x0194,
    "media_browser": 0x0223,
})


def _special_codes() -> dict[str, bytes]:
    codes = {
        "none": bytes([BTN_DISABLED, 0x00, 0x00, 0x00]),
        "dpi-cycle": bytes([BTN_DPI_CYCLE, 0x00, 0x00, 0x00]),
        "dpi-": bytes([BTN_DPI_DOWN, 0x00, 0x00, 0x00]),
        "dpi+": bytes([BTN_DPI_UP, 0x00, 0x00, 0x00]),
        "report_rate-cycle": bytes([BTN_REPORT_RATE, 0x00, 0x00, 0x00]),
        "led_toggle": bytes([BTN_LED, 0x00, 0x00, 0x00]),
        "profile_switch": bytes([BTN_PROFILE, 0x00, 0x00, 0x00]),
    }
    for name, usage in MEDIA_USAGES.items():
        codes[name] = bytes([BTN_MEDIA, usage & 0xFF, (usage >> 8) & 0xFF, 0x00])
    for n in range(1, 16):
        codes[f"macro{n}"] = bytes([BTN_MACRO, n, 0x00, 0x00])
    return codes


SPECIAL_CODES = MappingProxyType(_special_codes())


# Modifier bits in the order they appear in canonical mapping strings
KEYBOARD_MODIFIER_VALUES = MappingProxyType({
    "ctrl_l": 0x01,
    "shift_l": 0x02,
    "alt_l": 0x04,
    "super_l": 0x08,
    "ctrl_r": 0x10,
    "shift_r": 0x20,
    "alt_r": 0x40,
    "super_r": 0x80,
})


def _keyboard_keys() -> dict[str, int]:
    keys = {chr(ord("a") + i): 0x04 + i for i in range(26)}
    keys.update({str(n): 0x1E + (n - 1) for n in range(1, 10)})
    keys["0"] = 0x27
    keys.update({
        "enter": 0x28, "escape": 0x29, "backspace": 0x2A, "tab": 0x2B, "space": 0x2C,
        "minus": 0x2D, "equal": 0x2E, "bracket_l": 0x2F, "bracket_r": 0x30,
        "backslash": 0x31, "semicolon": 0x33, "apostrophe": 0x34, "grave": 0x35,
        "comma": 0x36, "period": 0x37, "slash": 0x38, "caps_lock": 0x39,
    })
    keys.update({f"F{n}": 0x3A + (n - 1) for n in range(1, 13)})
    keys.update({
        "print_screen": 0x46, "scroll_lock": 0x47, "pause": 0x48,
        "insert": 0x49, "home": 0x4A, "page_up": 0x4B,
        "delete": 0x4C, "end": 0x4D, "page_down": 0x4E,
        "arrow_right": 0x4F, "arrow_left": 0x50, "arrow_down": 0x51, "arrow_up": 0x52,
        "num_lock": 0x53, "kp_slash": 0x54, "kp_asterisk": 0x55, "kp_minus": 0x56,
        "kp_plus": 0x57, "kp_enter": 0x58,
    })
    keys.update({f"kp_{n}": 0x59 + (n - 1) for n in range(1, 10)})
    keys.update({"kp_0": 0x62, "kp_period": 0x63, "menu": 0x65})
    # Modifier keys as plain keys, needed by macros
    keys.update({name: 0xE0 + i for i, name in enumerate(KEYBOARD_MODIFIER_VALUES)})
    return keys


KEYBOARD_KEY_VALUES = MappingProxyType(_keyboard_keys())
KEYBOARD_KEY_NAMES = MappingProxyType({v: k for k, v in KEYBOARD_KEY_VALUES.items()})


# Snipe button DPI values and their raw bytes
SNIPE_DPI_VALUES = MappingProxyType({
    200: 0x02, 400: 0x04, 600: 0x06, 800: 0x08, 1000: 0x0A, 1200: 0x0C,
    1600: 0x10, 2000: 0x14, 2400: 0x18, 3200: 0x20, 4000: 0x28, 4800: 0x30,
})


# Light mode codes; the Holtek LED record only stores byte 0 (the effect)
LIGHTMODE_VALUES = MappingProxyType({
    LightMode.OFF: bytes([0x00, 0x00]),
    LightMode.STATIC: bytes([0x01, 0x00]),
    LightMode.BREATHING: bytes([0x02, 0x00]),
    LightMode.RAINBOW: bytes([0x03, 0x00]),
    LightMode.WAVE: bytes([0x04, 0x00]),
    LightMode.ALTERNATING: bytes([0x05, 0x00]),
    LightMode.REACTIVE: bytes([0x06, 0x00]),
    LightMode.FLASHING: bytes([0x07, 0x00]),
})

# Extra effects found on the RGB-heavy models
LIGHTMODE_EXTENDED_VALUES = MappingProxyType({
    **LIGHTMODE_VALUES,
    LightMode.RANDOM: bytes([0x08, 0x00]),
    LightMode.REACTIVE_BUTTON: bytes([0x09, 0x00]),
    LightMode.BREATHING_RAINBOW: bytes([0x0A, 0x00]),
})

# F5 polling codes (the polling interval in milliseconds)
REPORT_RATE_VALUES = MappingProxyType({
    ReportRate.R_125HZ: 0x08,
    ReportRate.R_250HZ: 0x04,
    ReportRate.R_500HZ: 0x02,
    ReportRate.R_1000HZ: 0x01,
})

LIGHTMODE_STRINGS = MappingProxyType({mode: mode.value for mode in LightMode})
REPORT_RATE_STRINGS = MappingProxyType({rate: str(rate) for rate in ReportRate})
