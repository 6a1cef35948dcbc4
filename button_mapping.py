"""Conversion between 4-byte button mapping codes and mapping strings.

Decoding checks the special function table first, then the mouse buttons,
then keyboard keys with modifiers. Encoding is the exact inverse, so
``decode(encode(s)) == s`` for every canonical string and
``encode(decode(b)) == b`` for every code ``encode`` can produce.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from functools import cached_property
from typing import Mapping, Optional

import mouse_keycodes as kc
from mouse_types import UnknownButtonName, UnknownMapping



@dataclass(frozen=True)
class ButtonTables:
    """The code tables one model uses for button mappings.

    ``fire_layout`` names what bytes 1-3 of a fire code hold. A layout
    without ``"button"`` only fires the first of ``fire_buttons``.
    ``snipe_type`` is None on models without a snipe button.
    """
    special: Mapping[str, bytes] = field(default_factory=lambda: kc.SPECIAL_CODES)
    mouse: Mapping[str, bytes] = field(default_factory=lambda: kc.MOUSE_BUTTON_CODES)
    modifiers: Mapping[str, int] = field(default_factory=lambda: kc.KEYBOARD_MODIFIER_VALUES)
    keys: Mapping[str, int] = field(default_factory=lambda: kc.KEYBOARD_KEY_VALUES)
    snipe: Mapping[int, int] = field(default_factory=lambda: kc.SNIPE_DPI_VALUES)
    fire_buttons: tuple[str, ...] = field(default=("left", "right", "middle"))
    keyboard_type: int = kc.BTN_KEYBOARD
    fire_type: int = kc.BTN_FIRE
    fire_layout: tuple[str, str, str] = ("repeat", "button", "delay")
    snipe_type: Optional[int] = kc.BTN_SNIPE

    @cached_property
    def special_names(self) -> dict[bytes, str]:
        return {code: name for name, code in self.special.items()}

    @cached_property
    def mouse_names(self) -> dict[bytes, str]:
        return {code: name for name, code in self.mouse.items()}

    @cached_property
    def key_names(self) -> dict[int, str]:
        return {value: name for name, value in self.keys.items()}

    @cached_property
    def key_folded(self) -> dict[str, str]:
        return {name.lower(): name for name in self.keys}

    @cached_property
    def snipe_dpis(self) -> dict[int, int]:
        return {raw: dpi for dpi, raw in self.snipe.items()}

    def vocabulary(self) -> list[str]:
        """Return every fixed mapping name (fire/snipe/keyboard combos excluded)."""
        return [*self.special, *self.mouse, *self.keys]


BASE_BUTTON_TABLES = ButtonTables()


def decode_button_mapping(code: bytes, tables: ButtonTables = BASE_BUTTON_TABLES) -> str:
    """Decode a 4-byte mapping code into its canonical mapping string.

    Raises:
        UnknownMapping: no table matches ``code``.
    """
    code = bytes(code)
    if len(code) != 4:
        raise UnknownMapping(f"button mapping must be 4 bytes, got {len(code)}")

    name = tables.special_names.get(code)
    if name is not None:
        return name

    if code[0] == tables.fire_type:
        fire = _decode_fire(code, tables)
        if fire is not None:
            return fire

    if tables.snipe_type is not None and code[0] == tables.snipe_type and code[2:] == b"\x00\x00":
        dpi = tables.snipe_dpis.get(code[1])
        if dpi is not None:
            return f"snipe:{dpi}"

    name = tables.mouse_names.get(code)
    if name is not None:
        return name

    if code[0] == tables.keyboard_type and code[3] == 0x00:
        key = tables.key_names.get(code[2])
        if key is not None:
            mods = [mod for mod, bit in tables.modifiers.items() if code[1] & bit]
            return "+".join([*mods, key])

    raise UnknownMapping(f"unknown button mapping {code.hex()}")


def encode_button_mapping(mapping: str, tables: ButtonTables = BASE_BUTTON_TABLES) -> bytes:
    """Encode a mapping string into its 4-byte code.

    Accepted forms: a special function name, ``fire:<button>:<repeat>:<delay>``,
    ``snipe:<dpi>``, a mouse button name, or ``[modifier+...+]key``.

    Raises:
        UnknownButtonName: a token is not in the model's tables.
    """
    text = mapping.strip()
    if not text:
        raise UnknownButtonName("empty button mapping")

    if text in tables.special:
        return bytes(tables.special[text])

    if text.startswith("fire:"):
        return _encode_fire(text, tables)

    if text.startswith("snipe:"):
        dpi = _parse_int(text[len("snipe:"):], text)
        if tables.snipe_type is None or dpi not in tables.snipe:
            raise UnknownButtonName(f"unsupported snipe DPI in {text!r}")
        return bytes([tables.snipe_type, tables.snipe[dpi], 0x00, 0x00])

    if text in tables.mouse:
        return bytes(tables.mouse[text])

    *mod_names, key_name = text.split("+")
    key = tables.key_folded.get(key_name.lower())
    if key is None:
        raise UnknownButtonName(f"unknown key {key_name!r} in {text!r}")
    mods = 0
    for mod in mod_names:
        bit = tables.modifiers.get(mod.lower())
        if bit is None:
            raise UnknownButtonName(f"unknown modifier {mod!r} in {text!r}")
        mods |= bit
    return bytes([tables.keyboard_type, mods, tables.keys[key], 0x00])


def _decode_fire(code: bytes, tables: ButtonTables) -> str | None:
    values = dict(zip(tables.fire_layout, code[1:]))
    if values.get("zero", 0) != 0x00:
        return None
    if "button" in values:
        button = _fire_button_name(values["button"], tables)
        if button is None:
            return None
    else:
        button = tables.fire_buttons[0]
    return f"fire:{button}:{values['repeat']}:{values['delay']}"


def _fire_button_name(bits: int, tables: ButtonTables) -> str | None:
    for name in tables.fire_buttons:
        if kc.MOUSE_BUTTON_BITS[name] == bits:
            return name
    return None


def _encode_fire(text: str, tables: ButtonTables) -> bytes:
    parts = text.split(":")
    if len(parts) != 4:
        raise UnknownButtonName(f"expected fire:<button>:<repeat>:<delay>, got {text!r}")
    _, button, repeat, delay = parts
    if button not in tables.fire_buttons:
        raise UnknownButtonName(f"unknown fire button {button!r}")
    values = {
        "repeat": _parse_int(repeat, text),
        "delay": _parse_int(delay, text),
        "button": kc.MOUSE_BUTTON_BITS[button],
        "zero": 0x00,
    }
    for value in (values["repeat"], values["delay"]):
        if not 0 <= value <= 0xFF:
            raise UnknownButtonName(f"fire parameters must be 0-255 in {text!r}")
    return bytes([tables.fire_type, *(values[name] for name in tables.fire_layout)])


def _parse_int(token: str, text: str) -> int:
    try:
        return int(token, 10)
    except ValueError:
        raise UnknownButtonName(f"expected a number in {text!r}") from None
