from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .asciicast import write_recording_file
from .dsl import load_script, plan_run
from .dsl.model import Script
from .recording import Timeline
from .script import ScriptDriver
from .settings import Settings, compose_environment

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ExecutionResult:
    script: Script
    settings: Settings
    timeline: Timeline
    path: Path


class ExecutionOrchestrator:
    """High-level runner that ties script loading, recording and output."""

    def execute(
        self,
        source: Path | str | dict[str, Any],
        out_path: Path,
        *,
        overrides: Settings | None = None,
        overwrite: bool = False,
    ) -> ExecutionResult:
        if out_path.exists() and not overwrite:
            msg = f"{out_path} already exists, use --overwrite to replace it"
            raise FileExistsError(msg)

        script = load_script(source)
        logger.info("Recording %s to %s", script.source or "script", out_path)
        planned = plan_run(script, overrides)
        timeline = ScriptDriver(planned.settings).run(planned.instructions)
        path = write_recording_file(
            out_path,
            timeline,
            planned.settings,
            overwrite=overwrite,
            environ=compose_environment(planned.settings),
        )
        return ExecutionResult(script=script, settings=planned.settings, timeline=timeline, path=path)
