from __future__ import annotations

from .model import Script, ScriptLoader, load_script
from .planner import PlannedRun, build_instructions, build_settings, plan_run
from .schema import SCRIPT_SCHEMA, validate_script

__all__ = [
    "PlannedRun",
    "Script",
    "ScriptLoader",
    "build_instructions",
    "build_settings",
    "load_script",
    "plan_run",
    "SCRIPT_SCHEMA",
    "validate_script",
]
