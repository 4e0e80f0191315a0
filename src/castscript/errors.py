from __future__ import annotations

from typing import Any


class CastscriptError(Exception):
    """Base class for failures that abort a recording run."""

    def __init__(self, message: str, *, index: int | None = None, instruction: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.index = index
        self.instruction = instruction

    def locate(self, index: int, instruction: Any) -> "CastscriptError":
        """Attach the position of the instruction that was running."""

        if self.index is None:
            self.index = index
            self.instruction = instruction
        return self

    def __str__(self) -> str:
        if self.index is None:
            return self.message
        return f"instruction {self.index} ({self.instruction!r}): {self.message}"


class SpawnError(CastscriptError):
    """The shell could not be started under a pty."""


class PromptTimeout(CastscriptError, TimeoutError):
    """The shell did not become ready within the configured timeout."""


class ProcessExited(CastscriptError):
    """The shell terminated while an instruction was still waiting on it."""


class SessionIOError(CastscriptError, OSError):
    """Reading from or writing to the pty failed."""


class ConfigError(CastscriptError, ValueError):
    """Resolved settings are inconsistent."""


class ScriptError(CastscriptError, ValueError):
    """A script value could not be interpreted."""


class PtyEof(Exception):
    """End of the pty output stream."""
