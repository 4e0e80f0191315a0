from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import jsonschema
import pytest

from castscript import (
    CharKey,
    Clear,
    Command,
    Control,
    ControlKey,
    EnvVar,
    Interactive,
    Marker,
    MultiLine,
    Settings,
    SingleLine,
    StringKey,
    Wait,
    WaitKey,
    load_recording,
)
from castscript.cli import log_level, main
from castscript.dsl import build_settings, load_script
from castscript.errors import ScriptError
from castscript.orchestrator import ExecutionOrchestrator
from castscript.settings import BASH, PYTHON

FULL_SCRIPT = r"""
settings:
  width: 80
  height: 24
  title: full example
  shell:
    program: bash
    args: [--norc]
    prompt: CASTSCRIPT_PROMPT
    line_split: ' \'
    quit_command: exit
  environment:
    - name: HELLO
      value: Hello!
  environment_capture:
    - LANG
  type_speed: 50ms
  prompt: "> $ "
  secondary_prompt: ".. "
  timeout: 10s

instructions:
  - !Command
    command: echo $HELLO
    hidden: true
    type_speed: 20ms
  - !Command
    command: |
      echo multiline &&
      echo command
  - !Command
    command: !MultiLine
      - echo one
      - echo two
  - !Command
    command: ^C
  - !Command
    command: !Control d
  - !Command
    command: !SingleLine "# comment"
  - !Interactive
    command: nano
    keys:
      - h
      - !Char i
      - !Str there
      - 2s
      - !Wait 500ms
      - ^X
      - !Control n
      - 7
  - !Wait 3s
  - !Marker Hello world
  - !Clear
"""


def test_load_tagged_yaml_script() -> None:
    script = load_script(FULL_SCRIPT)
    settings = script.settings

    assert settings.width == 80 and settings.height == 24
    assert settings.title == "full example"
    assert settings.shell.program == "bash"
    assert settings.shell.args == ("--norc",)
    assert settings.shell.line_split == " \\"
    assert settings.environment == (EnvVar("HELLO", "Hello!"),)
    assert settings.environment_capture == ("LANG",)
    assert settings.type_speed == pytest.approx(0.05)
    assert settings.timeout == pytest.approx(10.0)
    assert settings.prompt == "> $ "

    assert script.instructions == [
        Command(SingleLine("echo $HELLO"), hidden=True, type_speed=pytest.approx(0.02)),
        Command(MultiLine(("echo multiline &&", "echo command"))),
        Command(MultiLine(("echo one", "echo two"))),
        Command(Control("C")),
        Command(Control("d")),
        Command(SingleLine("# comment")),
        Interactive(
            text=SingleLine("nano"),
            keys=(
                CharKey("h"),
                CharKey("i"),
                StringKey("there"),
                WaitKey(2.0),
                WaitKey(0.5),
                ControlKey("X"),
                ControlKey("n"),
                CharKey("7"),
            ),
        ),
        Wait(3.0),
        Marker("Hello world"),
        Clear(),
    ]


def test_builtin_shell_names() -> None:
    for text, expected in (("bash", BASH), ("Python", PYTHON), ("!Bash", BASH), ("!Python", PYTHON)):
        script = load_script(f"settings:\n  shell: {text}\ninstructions: []\n")
        assert script.settings.shell == expected


def test_plain_mapping_form_is_accepted() -> None:
    script = load_script(
        {
            "instructions": [
                {"type": "command", "command": ["a", "b"]},
                {"type": "interactive", "command": "vi", "keys": [{"type": "wait", "duration": "1s"}, "^["]},
                {"type": "clear"},
            ]
        }
    )
    assert script.instructions[0] == Command(MultiLine(("a", "b")))
    assert script.instructions[1] == Interactive(SingleLine("vi"), keys=(WaitKey(1.0), ControlKey("[")))
    assert script.settings == Settings()


@pytest.mark.parametrize(
    "document",
    [
        {"settings": {}, "steps": []},
        {"instructions": [{"type": "launch"}]},
        {"instructions": [{"type": "wait", "duration": "soon"}]},
        {"settings": {"shell": {"program": "sh"}}, "instructions": []},
        {"settings": {"width": 0}, "instructions": []},
    ],
)
def test_invalid_scripts_fail_validation(document: dict) -> None:
    with pytest.raises(jsonschema.ValidationError):
        load_script(document)


@pytest.mark.parametrize(
    "text",
    [
        "instructions:\n  - !Command\n    command: ^1\n",
        "instructions:\n  - !Interactive\n    command: vi\n    keys: [later]\n",
        "instructions:\n  - !Command\n    command: !SingleLine \"a\\nb\"\n",
        "settings:\n  shell: fish\ninstructions: []\n",
    ],
)
def test_bad_values_raise_script_error(text: str) -> None:
    with pytest.raises(ScriptError):
        load_script(text)


def test_build_settings_merges_overrides() -> None:
    script = load_script(FULL_SCRIPT)
    overrides = Settings(
        width=120,
        environment=(EnvVar("EXTRA", "1"),),
        environment_capture=("HOME",),
        timeout=2.0,
    )
    settings = build_settings(script, overrides)

    assert settings.width == 120
    assert settings.height == 24
    assert settings.title == "full example"
    assert settings.shell.program == "bash"
    assert settings.environment == (EnvVar("HELLO", "Hello!"), EnvVar("EXTRA", "1"))
    assert settings.environment_capture == ("LANG", "HOME")
    assert settings.timeout == pytest.approx(2.0)
    assert settings.type_speed == pytest.approx(0.05)


def test_build_settings_captures_term_by_default() -> None:
    script = load_script("settings:\n  width: 10\n  height: 5\ninstructions: []\n")
    assert build_settings(script).environment_capture == ("TERM",)


def _fake_script(fake_shell: Path, instructions: str) -> str:
    return (
        "settings:\n"
        "  width: 90\n"
        "  height: 20\n"
        "  title: fake run\n"
        "  type_speed: 10ms\n"
        "  timeout: 5s\n"
        "  shell:\n"
        f"    program: {json.dumps(sys.executable)}\n"
        f"    args: [{json.dumps(str(fake_shell))}]\n"
        "    prompt: 'fake$ '\n"
        "    line_split: ' \\'\n"
        "    quit_command: exit\n"
        "instructions:\n" + instructions
    )


def test_orchestrator_writes_recording(fake_shell: Path, artifact_dir: Path) -> None:
    source = _fake_script(fake_shell, "  - !Marker Start\n  - !Command\n    command: echo hello\n")
    out_path = artifact_dir / "run.cast"

    result = ExecutionOrchestrator().execute(source, out_path)

    assert result.path == out_path
    header, events = load_recording(out_path)
    assert header["width"] == 90
    assert header["title"] == "fake run"
    assert header["env"]["SHELL"] == sys.executable
    assert events[0].data == "Start"
    assert "hello\r\n" in "".join(event.data for event in events)


def test_cli_runs_a_script(fake_shell: Path, artifact_dir: Path) -> None:
    in_file = artifact_dir / "script.yaml"
    in_file.write_text(_fake_script(fake_shell, "  - !Command\n    command: echo from-cli\n"), encoding="utf-8")
    out_file = artifact_dir / "out.cast"

    assert main([str(in_file), str(out_file), "--title", "override", "-e", "A=B"]) == 0
    header, events = load_recording(out_file)
    assert header["title"] == "override"
    assert header["env"]["A"] == "B"

    # Existing output is kept unless --overwrite is given.
    assert main([str(in_file), str(out_file)]) == 1
    assert main([str(in_file), str(out_file), "--overwrite"]) == 0


def test_cli_reports_failures_without_artifact(fake_shell: Path, artifact_dir: Path) -> None:
    in_file = artifact_dir / "script.yaml"
    in_file.write_text(_fake_script(fake_shell, "  - !Command\n    command: hang\n"), encoding="utf-8")
    out_file = artifact_dir / "out.cast"

    assert main([str(in_file), str(out_file), "--timeout", "500ms"]) == 1
    assert not out_file.exists()

    in_file.write_text("instructions: 3\n", encoding="utf-8")
    assert main([str(in_file), str(out_file)]) == 1


@pytest.mark.parametrize(
    ("verbosity", "interactive", "expected"),
    [
        (0, False, logging.WARNING),
        (0, True, logging.INFO),
        (1, False, logging.INFO),
        (2, True, logging.DEBUG),
    ],
)
def test_cli_log_level(verbosity: int, interactive: bool, expected: int) -> None:
    assert log_level(verbosity, interactive) == expected
