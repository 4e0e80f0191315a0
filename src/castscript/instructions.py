from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from .errors import ConfigError

_CARET_CODES = "@ABCDEFGHIJKLMNOPQRSTUVWXYZ[\\]^_"


def control_byte(code: str) -> bytes:
    """Map a caret-notation character (``C`` in ``^C``) to its C0 byte."""

    if len(code) != 1:
        msg = f"control code must be a single character, got {code!r}"
        raise ValueError(msg)
    if code == "?":
        return b"\x7f"
    index = _CARET_CODES.find(code.upper())
    if index < 0:
        msg = f"{code!r} is not a valid control character"
        raise ValueError(msg)
    return bytes([index])


@dataclass(frozen=True, slots=True)
class SingleLine:
    text: str


@dataclass(frozen=True, slots=True)
class MultiLine:
    lines: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.lines:
            msg = "multiline command needs at least one line"
            raise ValueError(msg)


@dataclass(frozen=True, slots=True)
class Control:
    code: str

    def __post_init__(self) -> None:
        control_byte(self.code)


CommandText = SingleLine | MultiLine | Control


@dataclass(frozen=True, slots=True)
class CharKey:
    char: str


@dataclass(frozen=True, slots=True)
class StringKey:
    """Several characters, each sent as a separate key press."""

    text: str


@dataclass(frozen=True, slots=True)
class ControlKey:
    code: str

    def __post_init__(self) -> None:
        control_byte(self.code)


@dataclass(frozen=True, slots=True)
class WaitKey:
    seconds: float


Key = CharKey | StringKey | ControlKey | WaitKey


@dataclass(frozen=True, slots=True)
class Command:
    text: CommandText
    hidden: bool = False
    type_speed: float | None = None


@dataclass(frozen=True, slots=True)
class Interactive:
    text: CommandText
    keys: tuple[Key, ...] = field(default_factory=tuple)
    type_speed: float | None = None


@dataclass(frozen=True, slots=True)
class Wait:
    seconds: float


@dataclass(frozen=True, slots=True)
class Marker:
    label: str


@dataclass(frozen=True, slots=True)
class Clear:
    pass


Instruction = Command | Interactive | Wait | Marker | Clear


def transmission(text: CommandText) -> bytes:
    """Bytes written to the shell, in a single write, for a command."""

    if isinstance(text, SingleLine):
        return text.text.encode() + b"\n"
    if isinstance(text, MultiLine):
        return " ".join(text.lines).encode() + b"\n"
    if isinstance(text, Control):
        return control_byte(text.code)
    msg = f"Unsupported command text: {type(text)!r}"
    raise TypeError(msg)


def display_lines(text: CommandText) -> list[str]:
    """Lines typed into the recording for a command."""

    if isinstance(text, SingleLine):
        return [text.text]
    if isinstance(text, MultiLine):
        return list(text.lines)
    if isinstance(text, Control):
        return [f"^{text.code.upper()}"]
    msg = f"Unsupported command text: {type(text)!r}"
    raise TypeError(msg)


def key_presses(key: Key) -> list[bytes]:
    """Separate writes for a key; waits produce none."""

    if isinstance(key, CharKey):
        return [key.char.encode()]
    if isinstance(key, StringKey):
        return [char.encode() for char in key.text]
    if isinstance(key, ControlKey):
        return [control_byte(key.code)]
    if isinstance(key, WaitKey):
        return []
    msg = f"Unsupported key: {type(key)!r}"
    raise TypeError(msg)


def validate_instructions(instructions: Sequence[Instruction]) -> None:
    """Reject negative durations before anything is spawned."""

    for index, instruction in enumerate(instructions):
        durations: list[float] = []
        if isinstance(instruction, Wait):
            durations.append(instruction.seconds)
        elif isinstance(instruction, (Command, Interactive)):
            if instruction.type_speed is not None:
                durations.append(instruction.type_speed)
            if isinstance(instruction, Interactive):
                durations.extend(key.seconds for key in instruction.keys if isinstance(key, WaitKey))
        if any(value < 0 for value in durations):
            raise ConfigError("negative duration", index=index, instruction=instruction)
