from __future__ import annotations

import os
import shutil
from dataclasses import dataclass, replace
from typing import Mapping, Sequence

from .errors import ConfigError

DEFAULT_TYPE_SPEED = 0.1
DEFAULT_PROMPT = "$ "
DEFAULT_SECONDARY_PROMPT = "> "
DEFAULT_TIMEOUT = 30.0
DEFAULT_ENVIRONMENT_CAPTURE = ("TERM",)

BASH_PROMPT = "CASTSCRIPT_PROMPT"
_BASH_PROMPT_COMMAND = (
    f"PS1={BASH_PROMPT}; unset PROMPT_COMMAND; bind 'set enable-bracketed-paste off'"
)


@dataclass(frozen=True, slots=True)
class EnvVar:
    name: str
    value: str = ""

    @classmethod
    def parse(cls, text: str) -> "EnvVar":
        name, _, value = text.partition("=")
        return cls(name=name, value=value)


@dataclass(frozen=True, slots=True)
class ShellConfig:
    """How to start a shell and recognise that it is waiting for input.

    ``prompt`` is what the shell really prints; ``line_split`` is only used
    when drawing multiline commands in the recording.
    """

    program: str
    prompt: str
    line_split: str
    args: tuple[str, ...] = ()
    quit_command: str | None = None
    env: tuple[EnvVar, ...] = ()
    name: str | None = None

    @property
    def command(self) -> list[str]:
        return [self.program, *self.args]

    def describe(self) -> str:
        parts = [f'"{part}"' if any(ch.isspace() for ch in part) else part for part in self.command]
        return " ".join(parts)


BASH = ShellConfig(
    name="bash",
    program="bash",
    args=("--noprofile", "--norc"),
    prompt=BASH_PROMPT,
    line_split=" \\",
    quit_command="exit",
    env=(EnvVar("PS1", BASH_PROMPT), EnvVar("PROMPT_COMMAND", _BASH_PROMPT_COMMAND)),
)

PYTHON = ShellConfig(
    name="python",
    program="python3",
    prompt=">>> ",
    line_split=" \\",
    quit_command="exit()",
)

SHELL_PROFILES: dict[str, ShellConfig] = {"bash": BASH, "python": PYTHON}


def shell_profile(name: str) -> ShellConfig:
    try:
        return SHELL_PROFILES[name.lower()]
    except KeyError:
        supported = ", ".join(sorted(SHELL_PROFILES))
        msg = f"unsupported shell {name!r}, expected one of: {supported} or a custom shell"
        raise ConfigError(msg) from None


@dataclass(frozen=True, slots=True)
class Settings:
    width: int | None = None
    height: int | None = None
    title: str | None = None
    shell: ShellConfig = BASH
    environment: tuple[EnvVar, ...] = ()
    environment_capture: tuple[str, ...] = ()
    type_speed: float = DEFAULT_TYPE_SPEED
    prompt: str = DEFAULT_PROMPT
    secondary_prompt: str = DEFAULT_SECONDARY_PROMPT
    timeout: float = DEFAULT_TIMEOUT

    def merge(self, other: "Settings") -> "Settings":
        """Return settings with ``other`` layered on top.

        Lists are extended, optional values replace when set and the
        remaining scalars only replace when they differ from the defaults.
        """

        defaults = Settings()
        return replace(
            self,
            width=other.width if other.width is not None else self.width,
            height=other.height if other.height is not None else self.height,
            title=other.title if other.title is not None else self.title,
            shell=other.shell if other.shell != defaults.shell else self.shell,
            environment=self.environment + other.environment,
            environment_capture=self.environment_capture + other.environment_capture,
            type_speed=other.type_speed if other.type_speed != defaults.type_speed else self.type_speed,
            prompt=other.prompt if other.prompt != defaults.prompt else self.prompt,
            secondary_prompt=(
                other.secondary_prompt
                if other.secondary_prompt != defaults.secondary_prompt
                else self.secondary_prompt
            ),
            timeout=other.timeout if other.timeout != defaults.timeout else self.timeout,
        )

    def resolved(self) -> "Settings":
        """Fill in the terminal size and validate."""

        width, height = resolve_terminal_size(self.width, self.height)
        settings = replace(self, width=width, height=height)
        settings.validate()
        return settings

    def validate(self) -> None:
        for name in ("width", "height"):
            value = getattr(self, name)
            if value is None or value <= 0:
                raise ConfigError(f"terminal {name} must be a positive integer, got {value!r}")
        if not self.shell.program:
            raise ConfigError("shell program must not be empty")
        if not self.shell.prompt:
            raise ConfigError("shell prompt must not be empty")
        for name in ("type_speed", "timeout"):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must not be negative")


def resolve_terminal_size(width: int | None, height: int | None) -> tuple[int, int]:
    if width is not None and height is not None:
        return width, height
    size = shutil.get_terminal_size()
    return (width if width is not None else size.columns, height if height is not None else size.lines)


def compose_environment(settings: Settings, base: Mapping[str, str] | None = None) -> dict[str, str]:
    """Environment the shell is started with."""

    merged = dict(os.environ if base is None else base)
    for var in (*settings.shell.env, *settings.environment):
        merged[var.name] = var.value
    return merged


def captured_environment(settings: Settings, environ: Mapping[str, str]) -> dict[str, str]:
    """Environment map embedded in the recording header.

    Explicit pairs win over captured names; the last duplicate pair wins.
    """

    captured = {var.name: var.value for var in settings.environment}
    for name in settings.environment_capture:
        captured.setdefault(name, environ.get(name, ""))
    captured["SHELL"] = _resolve_program(settings.shell.program, environ)
    return captured


def _resolve_program(program: str, environ: Mapping[str, str]) -> str:
    return shutil.which(program, path=environ.get("PATH")) or program


def env_pairs(values: Sequence[str]) -> tuple[EnvVar, ...]:
    return tuple(EnvVar.parse(value) for value in values)
