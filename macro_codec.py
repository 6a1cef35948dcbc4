"""Macro bytecode encoder/decoder.

A macro is a tape of 3-byte commands ``[opcode, operand, 0x00]`` inside a
256-byte buffer. A zero opcode ends the tape.

    84 <key> 00     key down (HID usage)
    04 <key> 00     key up
    81 <bits> 00    mouse button down
    01 <bits> 00    mouse button up
    06 <ms> 00      delay, 1-255 ms

The text form is one command per line and is the same for encoding and
decoding::

    down key a
    delay 50
    up key a
    down button left
    up button left
    repeat 3        # macro repeat count, not stored in the tape

Decoding stops at the first unknown opcode: the command length of an
unknown opcode is not known, so nothing after it can be trusted.

The Venus based M913 stores timed key events instead; that format is at
the end of this module and takes the same script text.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, NamedTuple, TextIO

import mouse_keycodes as kc
from mouse_types import MACRO_SIZE, RangeError

log = logging.getLogger(__name__)


OP_END = 0x00
OP_BUTTON_UP = 0x01
OP_KEY_UP = 0x04
OP_DELAY = 0x06
OP_BUTTON_DOWN = 0x81
OP_KEY_DOWN = 0x84

COMMAND_LEN = 3
MAX_DELAY_MS = 0xFF

_OPCODES = {
    OP_KEY_DOWN: ("down", "key"),
    OP_KEY_UP: ("up", "key"),
    OP_BUTTON_DOWN: ("down", "button"),
    OP_BUTTON_UP: ("up", "button"),
    OP_DELAY: ("delay", None),
}
_OPCODE_FOR = {names: op for op, names in _OPCODES.items()}

_BUTTON_NAMES = {bit: name for name, bit in kc.MOUSE_BUTTON_BITS.items()}
_KEY_FOLDED = {name.lower(): name for name in kc.KEYBOARD_KEY_VALUES}


@dataclass(frozen=True)
class MacroCommand:
    """One decoded macro command.

    ``value`` is a key or button name, the delay in ms, or the raw operand
    byte when the operand has no name.
    """
    action: str
    kind: str | None
    value: str | int

    def __str__(self) -> str:
        if self.kind is None:
            return f"{self.action} {self.value}"
        value = f"0x{self.value:02x}" if isinstance(self.value, int) else self.value
        return f"{self.action} {self.kind} {value}"

    def to_bytes(self) -> bytes:
        opcode = _OPCODE_FOR[(self.action, self.kind)]
        if self.kind == "key":
            operand = self.value if isinstance(self.value, int) else kc.KEYBOARD_KEY_VALUES[self.value]
        elif self.kind == "button":
            operand = self.value if isinstance(self.value, int) else kc.MOUSE_BUTTON_BITS[self.value]
        else:
            operand = int(self.value)
        return bytes([opcode, operand & 0xFF, 0x00])


class MacroEncodeResult(NamedTuple):
    data: bytes
    commands: int
    skipped: int
    truncated: bool
    repeat: int | None

    @property
    def ok(self) -> bool:
        return self.skipped == 0 and not self.truncated


def parse_macro(data: bytes, offset: int = 0) -> tuple[list[MacroCommand], int]:
    """Decode macro bytecode into commands.

    Returns the decoded commands and the number of invalid codes seen.
    ``offset`` is reset to 0 when it lies outside ``data``.
    """
    data = bytes(data)
    if offset >= len(data):
        offset = 0

    commands: list[MacroCommand] = []
    invalid = 0
    pos = offset
    while pos < len(data):
        opcode = data[pos]
        if opcode == OP_END:
            break
        if opcode not in _OPCODES:
            log.debug("invalid macro opcode 0x%02x at %d", opcode, pos)
            invalid += 1
            break
        if pos + COMMAND_LEN > len(data):
            log.debug("truncated macro command at %d", pos)
            invalid += 1
            break

        action, kind = _OPCODES[opcode]
        operand = data[pos + 1]
        if data[pos + 2] != 0x00:
            log.debug("macro command at %d has trailing byte 0x%02x", pos, data[pos + 2])
            invalid += 1
        if kind == "key":
            value = kc.KEYBOARD_KEY_NAMES.get(operand, operand)
        elif kind == "button":
            value = _BUTTON_NAMES.get(operand, operand)
        else:
            value = operand
        pos += COMMAND_LEN
        if kind is None and value == 0:
            # zero delays cannot be encoded again
            invalid += 1
            continue
        if kind is not None and isinstance(value, int):
            invalid += 1
        commands.append(MacroCommand(action, kind, value))
    return commands, invalid


def iter_macro(data: bytes, offset: int = 0) -> Iterator[MacroCommand]:
    """Yield the valid commands of a macro, stopping where decoding stops."""
    commands, _ = parse_macro(data, offset)
    yield from commands


def decode_macro(data: bytes, output: TextIO, prefix: str = "", offset: int = 0) -> int:
    """Write one line per macro command to ``output``.

    Args:
        data: macro bytecode.
        output: text stream, each line is written as ``prefix + command``.
        prefix: string written before each command.
        offset: first byte to decode, reset to 0 if outside ``data``.

    Returns:
        Number of invalid codes, 0 if the macro decoded cleanly.
    """
    commands, invalid = parse_macro(data, offset)
    for command in commands:
        output.write(f"{prefix}{command}\n")
    return invalid


def encode_macro(source: str | Iterable[str], offset: int = 0) -> MacroEncodeResult:
    """Encode macro script text into a 256-byte buffer.

    Args:
        source: script text, or any iterable of lines (an open file works).
        offset: number of leading buffer bytes to leave untouched (zero).

    Unrecognized lines are skipped and counted, encoding continues. When the
    buffer is full the remaining lines are dropped and ``truncated`` is set.
    """
    if not 0 <= offset < MACRO_SIZE:
        raise RangeError(f"macro offset must be 0-{MACRO_SIZE - 1}, got {offset}")
    if isinstance(source, str):
        source = source.splitlines()

    buffer = bytearray(MACRO_SIZE)
    pos = offset
    count = 0
    skipped = 0
    truncated = False
    repeat = None

    for lineno, line in enumerate(source, start=1):
        text = line.split("#", 1)[0].strip()
        if not text:
            continue
        tokens = text.split()

        if tokens[0].lower() == "repeat" and len(tokens) == 2 and tokens[1].isdigit():
            value = int(tokens[1])
            if 1 <= value <= 0xFF:
                repeat = value
                continue

        # one command more than fits is enough to detect truncation
        room = (MACRO_SIZE - pos) // COMMAND_LEN
        commands = _parse_line(tokens, room + 1)
        if commands is None:
            log.warning("macro line %d skipped: %r", lineno, line.rstrip("\n"))
            skipped += 1
            continue

        for command in commands:
            if pos + COMMAND_LEN > MACRO_SIZE:
                truncated = True
                break
            buffer[pos:pos + COMMAND_LEN] = command.to_bytes()
            pos += COMMAND_LEN
            count += 1
        if truncated:
            log.warning("macro buffer full at line %d, rest of the script dropped", lineno)
            break

    return MacroEncodeResult(bytes(buffer), count, skipped, truncated, repeat)


def _parse_line(tokens: list[str], limit: int = MACRO_SIZE // COMMAND_LEN) -> list[MacroCommand] | None:
    action = tokens[0].lower()
    if action == "delay" and len(tokens) == 2:
        try:
            ms = int(tokens[1], 10)
        except ValueError:
            return None
        if ms < 1:
            return None
        # Long delays become several delay commands, at most ``limit``
        commands = []
        while ms > 0 and len(commands) < limit:
            step = min(ms, MAX_DELAY_MS)
            commands.append(MacroCommand("delay", None, step))
            ms -= step
        return commands

    if action in ("down", "up") and len(tokens) == 3:
        kind = tokens[1].lower()
        if kind == "key":
            name = _KEY_FOLDED.get(tokens[2].lower())
        elif kind == "button":
            name = tokens[2].lower() if tokens[2].lower() in kc.MOUSE_BUTTON_BITS else None
        else:
            return None
        if name is None:
            return None
        return [MacroCommand(action, kind, name)]
    return None


# -- timed key events --
#
# The Venus controller stores macros as key events that carry their own
# delay, behind a 32-byte header whose last byte is the event count:
#
#     81 <key> 00 <ms_hi> <ms_lo>   key down, then wait
#     41 <key> 00 <ms_hi> <ms_lo>   key up, then wait
#     <check> 00 00 00              after the last event
#
# A delay line adds to the event before it. The last event always waits at
# least EVENT_TAIL_DELAY_MS, the mouse uses it as the end marker.

EVENT_HEADER_LEN = 0x20
EVENT_LEN = 5
EVENT_DOWN = 0x81
EVENT_UP = 0x41
EVENT_TAIL_DELAY_MS = 3
MAX_EVENT_DELAY_MS = 0xFFFF
TERMINATOR_LEN = 4

_EVENT_ACTIONS = {EVENT_DOWN: "down", EVENT_UP: "up"}
_EVENT_STATUS = {action: status for status, action in _EVENT_ACTIONS.items()}


def event_checksum(events: bytes, count: int) -> int:
    return (~sum(events) - count + 0x56) & 0xFF


def parse_event_macro(data: bytes, offset: int = EVENT_HEADER_LEN) -> tuple[list[MacroCommand], int]:
    """Decode a timed key event macro.

    ``data[offset - 1]`` is the event count and the events start at
    ``offset``; an offset outside ``data`` falls back to the 32-byte header.
    Returns the commands and the number of invalid codes, a wrong check
    byte included.
    """
    data = bytes(data)
    if not 0 < offset < len(data):
        offset = EVENT_HEADER_LEN
    count = data[offset - 1]

    commands: list[MacroCommand] = []
    invalid = 0
    pos = offset
    for n in range(count):
        if pos + EVENT_LEN > len(data):
            log.debug("macro holds %d of %d events", n, count)
            return commands, invalid + 1
        action = _EVENT_ACTIONS.get(data[pos])
        if action is None:
            log.debug("invalid macro event 0x%02x at %d", data[pos], pos)
            return commands, invalid + 1
        key, pad = data[pos + 1], data[pos + 2]
        delay = int.from_bytes(data[pos + 3:pos + 5], "big")
        if pad != 0x00:
            log.debug("macro event at %d has trailing byte 0x%02x", pos, pad)
            invalid += 1
        name = kc.KEYBOARD_KEY_NAMES.get(key)
        if name is None:
            invalid += 1
        commands.append(MacroCommand(action, "key", key if name is None else name))
        if delay:
            commands.append(MacroCommand("delay", None, delay))
        pos += EVENT_LEN

    if count and pos < len(data) and data[pos] != event_checksum(data[offset:pos], count):
        log.debug("macro check byte 0x%02x, expected 0x%02x", data[pos],
                  event_checksum(data[offset:pos], count))
        invalid += 1
    return commands, invalid


def decode_event_macro(data: bytes, output: TextIO, prefix: str = "",
                       offset: int = EVENT_HEADER_LEN) -> int:
    commands, invalid = parse_event_macro(data, offset)
    for command in commands:
        output.write(f"{prefix}{command}\n")
    return invalid


def encode_event_macro(source: str | Iterable[str], offset: int = EVENT_HEADER_LEN) -> MacroEncodeResult:
    """Encode macro script text into timed key events.

    Same script language as ``encode_macro``. Mouse button lines have no
    event form and are skipped, as are delays before the first key and
    delays that would push one event past 65535 ms.
    """
    if not 0 < offset <= MACRO_SIZE - TERMINATOR_LEN:
        raise RangeError(f"macro offset must be 1-{MACRO_SIZE - TERMINATOR_LEN}, got {offset}")
    if isinstance(source, str):
        source = source.splitlines()

    capacity = (MACRO_SIZE - offset - TERMINATOR_LEN) // EVENT_LEN
    events: list[list[int]] = []
    skipped = 0
    truncated = False
    repeat = None

    for lineno, line in enumerate(source, start=1):
        text = line.split("#", 1)[0].strip()
        if not text:
            continue
        tokens = text.split()

        if tokens[0].lower() == "repeat" and len(tokens) == 2 and tokens[1].isdigit():
            value = int(tokens[1])
            if 1 <= value <= 0xFF:
                repeat = value
                continue

        event = _parse_event_line(tokens)
        if event is not None and event[0] is None:
            if events and events[-1][2] + event[2] <= MAX_EVENT_DELAY_MS:
                events[-1][2] += event[2]
                continue
            event = None
        if event is None:
            log.warning("macro line %d skipped: %r", lineno, line.rstrip("\n"))
            skipped += 1
            continue
        if len(events) == capacity:
            truncated = True
            log.warning("macro buffer full at line %d, rest of the script dropped", lineno)
            break
        events.append(event)

    if events and events[-1][2] < EVENT_TAIL_DELAY_MS:
        events[-1][2] = EVENT_TAIL_DELAY_MS
    body = b"".join(bytes([status, key, 0x00, delay >> 8, delay & 0xFF]) for status, key, delay in events)

    buffer = bytearray(MACRO_SIZE)
    if events:
        buffer[offset - 1] = len(events)
        buffer[offset:offset + len(body)] = body
        buffer[offset + len(body)] = event_checksum(body, len(events))
    return MacroEncodeResult(bytes(buffer), len(events), skipped, truncated, repeat)


def _parse_event_line(tokens: list[str]) -> list | None:
    """Return ``[status, key, delay]``; status is None for a delay line."""
    if tokens[0].lower() == "delay" and len(tokens) == 2:
        try:
            ms = int(tokens[1], 10)
        except ValueError:
            return None
        return [None, 0, ms] if 1 <= ms <= MAX_EVENT_DELAY_MS else None
    commands = _parse_line(tokens)
    if not commands or commands[0].kind != "key":
        return None
    command = commands[0]
    return [_EVENT_STATUS[command.action], kc.KEYBOARD_KEY_VALUES[command.value], 0]
