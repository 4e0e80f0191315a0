from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from ..errors import ConfigError, ScriptError
from ..instructions import (
    CharKey,
    Clear,
    Command,
    CommandText,
    Control,
    ControlKey,
    Instruction,
    Interactive,
    Key,
    Marker,
    MultiLine,
    SingleLine,
    StringKey,
    Wait,
    WaitKey,
    control_byte,
)
from ..settings import EnvVar, Settings, ShellConfig, shell_profile
from ..timing import DurationError, parse_duration
from .schema import validate_script


class ScriptLoader(yaml.SafeLoader):
    """YAML loader that turns the script tags into plain mappings."""


def _expect(node: yaml.Node, node_type: type, tag: str) -> None:
    if not isinstance(node, node_type):
        kind = {yaml.ScalarNode: "scalar", yaml.SequenceNode: "sequence", yaml.MappingNode: "mapping"}[node_type]
        raise yaml.constructor.ConstructorError(
            None, None, f"{tag} expects a {kind}", node.start_mark
        )


def _instruction_mapping(kind: str):
    def construct(loader: ScriptLoader, node: yaml.Node) -> dict[str, Any]:
        _expect(node, yaml.MappingNode, node.tag)
        return {"type": kind, **loader.construct_mapping(node, deep=True)}

    return construct


def _scalar(key: str, **extra: Any):
    def construct(loader: ScriptLoader, node: yaml.Node) -> dict[str, Any]:
        _expect(node, yaml.ScalarNode, node.tag)
        return {**extra, key: loader.construct_scalar(node)}

    return construct


def _construct_clear(loader: ScriptLoader, node: yaml.Node) -> dict[str, Any]:
    return {"type": "clear"}


def _construct_multi_line(loader: ScriptLoader, node: yaml.Node) -> dict[str, Any]:
    _expect(node, yaml.SequenceNode, node.tag)
    return {"multi_line": loader.construct_sequence(node, deep=True)}


def _construct_custom_shell(loader: ScriptLoader, node: yaml.Node) -> dict[str, Any]:
    _expect(node, yaml.MappingNode, node.tag)
    return loader.construct_mapping(node, deep=True)


ScriptLoader.add_constructor("!Command", _instruction_mapping("command"))
ScriptLoader.add_constructor("!Interactive", _instruction_mapping("interactive"))
ScriptLoader.add_constructor("!Wait", _scalar("duration", type="wait"))
ScriptLoader.add_constructor("!Marker", _scalar("label", type="marker"))
ScriptLoader.add_constructor("!Clear", _construct_clear)
ScriptLoader.add_constructor("!SingleLine", _scalar("single_line"))
ScriptLoader.add_constructor("!MultiLine", _construct_multi_line)
ScriptLoader.add_constructor("!Control", _scalar("control"))
ScriptLoader.add_constructor("!Char", _scalar("char"))
ScriptLoader.add_constructor("!Str", _scalar("string"))
ScriptLoader.add_constructor("!Bash", lambda loader, node: "bash")
ScriptLoader.add_constructor("!Python", lambda loader, node: "python")
ScriptLoader.add_constructor("!Custom", _construct_custom_shell)


@dataclass(slots=True)
class Script:
    settings: Settings
    instructions: list[Instruction]
    source: Path | None = None
    raw: dict[str, Any] = field(default_factory=dict)


def load_script(source: Path | str | dict[str, Any]) -> Script:
    path: Path | None = None
    if isinstance(source, Path):
        path = source
        data = yaml.load(source.read_text(encoding="utf-8"), Loader=ScriptLoader)
    elif isinstance(source, str):
        data = yaml.load(source, Loader=ScriptLoader)
    else:
        data = source
    if data is None:
        data = {}
    validate_script(data)

    settings = _parse_settings(data.get("settings", {}))
    instructions = [
        _parse_instruction(raw, index)
        for index, raw in enumerate(data["instructions"])
    ]
    return Script(settings=settings, instructions=instructions, source=path, raw=data)


def _parse_settings(raw: dict[str, Any]) -> Settings:
    values: dict[str, Any] = {}
    for name in ("width", "height", "title", "prompt", "secondary_prompt"):
        if name in raw:
            values[name] = raw[name]
    if "shell" in raw:
        values["shell"] = _parse_shell(raw["shell"])
    if "environment" in raw:
        values["environment"] = tuple(EnvVar(item["name"], item["value"]) for item in raw["environment"])
    if "environment_capture" in raw:
        values["environment_capture"] = tuple(raw["environment_capture"])
    for name in ("type_speed", "timeout"):
        if name in raw:
            values[name] = _duration(raw[name], f"settings.{name}")
    return Settings(**values)


def _parse_shell(raw: str | dict[str, Any]) -> ShellConfig:
    if isinstance(raw, str):
        try:
            return shell_profile(raw)
        except ConfigError as exc:
            raise ScriptError(exc.message) from exc
    return ShellConfig(
        program=raw["program"],
        args=tuple(raw.get("args", ())),
        prompt=raw["prompt"],
        line_split=raw["line_split"],
        quit_command=raw.get("quit_command"),
    )


def _parse_instruction(payload: dict[str, Any], index: int) -> Instruction:
    kind = payload["type"]
    try:
        if kind == "command":
            return Command(
                text=_parse_command_text(payload["command"]),
                hidden=bool(payload.get("hidden", False)),
                type_speed=_optional_duration(payload.get("type_speed"), "type_speed"),
            )
        if kind == "interactive":
            return Interactive(
                text=_parse_command_text(payload["command"]),
                keys=tuple(_parse_key(key) for key in payload["keys"]),
                type_speed=_optional_duration(payload.get("type_speed"), "type_speed"),
            )
        if kind == "wait":
            return Wait(seconds=_duration(payload["duration"], "wait"))
        if kind == "marker":
            return Marker(label=payload["label"])
        if kind == "clear":
            return Clear()
    except ScriptError as exc:
        raise exc.locate(index, payload)
    msg = f"Unsupported instruction kind: {kind}"
    raise ScriptError(msg, index=index, instruction=payload)


def _parse_command_text(raw: str | list[str] | dict[str, Any]) -> CommandText:
    if isinstance(raw, str):
        if raw.startswith("^"):
            return Control(_control_code(raw[1:]))
        if "\n" in raw:
            return MultiLine(tuple(raw.splitlines()))
        return SingleLine(raw)
    if isinstance(raw, list):
        return MultiLine(tuple(raw))
    if "single_line" in raw:
        line = raw["single_line"]
        if "\n" in line:
            raise ScriptError(f"{line!r} is not a single line string")
        return SingleLine(line)
    if "multi_line" in raw:
        return MultiLine(tuple(raw["multi_line"]))
    return Control(_control_code(raw["control"]))


def _parse_key(raw: str | int | dict[str, Any]) -> Key:
    if isinstance(raw, int):
        return CharKey(str(raw))
    if isinstance(raw, str):
        if raw.startswith("^") and len(raw) > 1:
            return ControlKey(_control_code(raw[1:]))
        if len(raw) == 1:
            return CharKey(raw)
        try:
            return WaitKey(parse_duration(raw))
        except DurationError as exc:
            msg = f"key {raw!r} is not a character, control code or duration"
            raise ScriptError(msg) from exc
    if "char" in raw:
        return CharKey(raw["char"])
    if "string" in raw:
        return StringKey(raw["string"])
    if "control" in raw:
        return ControlKey(_control_code(raw["control"]))
    return WaitKey(_duration(raw["duration"], "key"))


def _control_code(code: str) -> str:
    try:
        control_byte(code)
    except ValueError as exc:
        raise ScriptError(f"^{code} is not a valid control character") from exc
    return code


def _duration(text: str, where: str) -> float:
    try:
        return parse_duration(text)
    except DurationError as exc:
        raise ScriptError(f"{where}: {exc}") from exc


def _optional_duration(text: str | None, where: str) -> float | None:
    if text is None:
        return None
    return _duration(text, where)
