"""Holtek based models.

All of them share the memory layout in rd_mouse; they differ in product id,
button count, value ranges and the code tables they accept.
"""
from __future__ import annotations

from types import MappingProxyType

import mouse_keycodes as kc
from mouse_attributes import DpiScale
from mouse_types import LightMode
from rd_mouse import RdMouse

HOLTEK_VID = 0x04D9


def _side_buttons(count: int) -> tuple[str, ...]:
    return tuple(f"side_{n}" for n in range(1, count + 1))


class MouseM607(RdMouse):
    name = "m607"
    ids = ((HOLTEK_VID, 0xFC38),)
    button_names = ("left", "right", "middle", "backward", "forward", "dpi+", "dpi-")
    default_key_mapping = ("left", "right", "middle", "backward", "forward", "dpi+", "dpi-")
    lightmode_table = MappingProxyType({m: kc.LIGHTMODE_VALUES[m] for m in (
        LightMode.OFF, LightMode.STATIC, LightMode.BREATHING, LightMode.RAINBOW)})


class MouseM709(RdMouse):
    name = "m709"
    ids = ((HOLTEK_VID, 0xFC2A),)
    button_names = ("left", "right", "middle", "backward", "forward", "dpi+", "dpi-", "fire")
    default_key_mapping = ("left", "right", "middle", "backward", "forward", "dpi+", "dpi-",
                           "fire:left:3:40")


class MouseM711(RdMouse):
    name = "m711"
    ids = ((HOLTEK_VID, 0xFC30),)
    button_names = ("left", "right", "middle", "backward", "forward", "dpi+", "dpi-", "led")
    default_key_mapping = ("left", "right", "middle", "backward", "forward", "dpi+", "dpi-",
                           "led_toggle")
    dpi_scale = DpiScale(200, 10000, 200)
    default_dpi = ("400", "800", "1600", "3200", "6400")


class MouseM715(MouseM711):
    name = "m715"
    ids = ((HOLTEK_VID, 0xFC39),)
    dpi_scale = DpiScale(200, 7200, 200)
    default_dpi = ("400", "800", "1600", "3200", "7200")


class MouseM719(MouseM711):
    name = "m719"
    ids = ((HOLTEK_VID, 0xFC4F),)
    button_names = ("left", "right", "middle", "backward", "forward", "dpi+", "dpi-", "profile")
    default_key_mapping = ("left", "right", "middle", "backward", "forward", "dpi+", "dpi-",
                           "profile_switch")


class MouseM721(MouseM711):
    name = "m721"
    ids = ((HOLTEK_VID, 0xFC5C),)
    button_names = ("left", "right", "middle", "backward", "forward", "dpi+", "dpi-",
                    "fire", "side_1", "side_2")
    default_key_mapping = ("left", "right", "middle", "backward", "forward", "dpi+", "dpi-",
                           "fire:left:3:40", "kp_1", "kp_2")
    dpi_scale = DpiScale(200, 12400, 200)
    default_dpi = ("400", "800", "1600", "3200", "6400")


class MouseM908(RdMouse):
    """Redragon M908 Impact, 12 side buttons."""
    name = "m908"
    ids = ((HOLTEK_VID, 0xFC4D),)
    button_names = ("left", "right", "middle", "backward", "forward", "dpi+", "dpi-", "fire",
                    *_side_buttons(12))
    dpi_scale = DpiScale(200, 12400, 200)
    default_dpi = ("400", "800", "1600", "3200", "6400")


class MouseM990(RdMouse):
    name = "m990"
    ids = ((HOLTEK_VID, 0xFC58),)
    button_names = ("left", "right", "middle", "backward", "forward", "dpi+", "dpi-",
                    *_side_buttons(11))
    default_key_mapping = ("left", "right", "middle", "backward", "forward", "dpi+", "dpi-",
                           "kp_1", "kp_2", "kp_3", "kp_4", "kp_5", "kp_6",
                           "kp_7", "kp_8", "kp_9", "kp_0", "kp_minus")
    dpi_scale = DpiScale(200, 16000, 200)
    default_dpi = ("400", "800", "1600", "3200", "6400")


class MouseM990Chroma(MouseM990):
    name = "m990chroma"
    ids = ((HOLTEK_VID, 0xFC59),)
    lightmode_table = kc.LIGHTMODE_EXTENDED_VALUES


class GenericMouse(RdMouse):
    """Any Holtek mouse without its own class; uses the shared layout and raw DPI."""
    name = "generic"

    @classmethod
    def has_vid_pid(cls, vid: int, pid: int) -> bool:
        return vid == HOLTEK_VID


class EmptyMouse(RdMouse):
    """Placeholder returned when no model matched."""
    name = ""

    @classmethod
    def has_vid_pid(cls, vid: int, pid: int) -> bool:
        return False
