from __future__ import annotations

from dataclasses import dataclass, replace

from ..instructions import Instruction, validate_instructions
from ..settings import DEFAULT_ENVIRONMENT_CAPTURE, Settings
from .model import Script


@dataclass(slots=True)
class PlannedRun:
    settings: Settings
    instructions: list[Instruction]


def build_settings(script: Script, overrides: Settings | None = None) -> Settings:
    """Layer command-line overrides over the script and resolve them."""

    settings = script.settings
    if overrides is not None:
        settings = settings.merge(overrides)
    if not settings.environment_capture:
        settings = replace(settings, environment_capture=DEFAULT_ENVIRONMENT_CAPTURE)
    return settings.resolved()


def build_instructions(script: Script) -> list[Instruction]:
    instructions = list(script.instructions)
    validate_instructions(instructions)
    return instructions


def plan_run(script: Script, overrides: Settings | None = None) -> PlannedRun:
    return PlannedRun(
        settings=build_settings(script, overrides),
        instructions=build_instructions(script),
    )
