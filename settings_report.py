"""Text reports: the ini-style settings dump and packet hexdumps."""
from __future__ import annotations

from typing import Iterable, TextIO

from mouse_types import MACRO_COUNT, PROFILE_COUNT, MouseError


def print_settings(mouse, output: TextIO) -> None:
    """Write the mouse's current state as an ini file.

    Values that cannot be decoded are written as comments holding the raw
    bytes, so the output can be fed back through the setters.
    """
    state = mouse.state
    output.write(f"# Configuration for {mouse.get_name() or 'unknown mouse'}\n")
    output.write(f"# active profile: {int(state.profile) + 1}\n")

    for profile in range(PROFILE_COUNT):
        s = state.profiles[profile]
        output.write(f"\n[profile{profile + 1}]\n")
        output.write(f"lightmode={s.lightmode.value}\n")
        output.write("color={:02x}{:02x}{:02x}\n".format(*s.color))
        output.write(f"brightness={s.brightness}\n")
        output.write(f"speed={s.speed}\n")
        output.write(f"scrollspeed={s.scrollspeed}\n")
        output.write(f"report_rate={s.report_rate.value}\n")

        for level in range(len(s.dpi)):
            output.write(f"dpi{level + 1}_enable={int(s.dpi_enabled[level])}\n")
            output.write(f"dpi{level + 1}={mouse.decode_dpi(s.dpi[level])}\n")

        for key, code in enumerate(s.key_mapping):
            slot = mouse.button_names[key] if key < len(mouse.button_names) else f"button_{key + 1}"
            try:
                output.write(f"{slot}={mouse.decode_button_mapping(code)}\n")
            except MouseError:
                output.write(f"# {slot}: unknown mapping {code.hex()}\n")

    for index in range(MACRO_COUNT):
        if not any(state.macros[index][mouse.macro_offset:]):
            continue
        output.write(f"\n# macro{index + 1}, repeat {state.macro_repeat[index]}\n")
        invalid = mouse.decode_macro(state.macros[index], output, prefix=";## ")
        if invalid:
            output.write(f"# macro{index + 1}: {invalid} invalid code(s)\n")


def hexdump_packets(packets: Iterable[bytes], output: TextIO, width: int = 16) -> int:
    """Write packets as hex lines, one blank line between packets.

    Returns the number of packets written.
    """
    count = 0
    for packet in packets:
        if count:
            output.write("\n")
        for pos in range(0, len(packet), width):
            row = packet[pos:pos + width]
            output.write(f"{pos:04x}  {' '.join(f'{b:02x}' for b in row)}\n")
        count += 1
    return count
