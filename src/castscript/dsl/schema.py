from __future__ import annotations

from typing import Any

import jsonschema

_DURATION = {"type": "string", "pattern": r"^\s*[0-9]+(s|ms|us)\s*$"}

SCRIPT_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["instructions"],
    "properties": {
        "settings": {
            "type": "object",
            "properties": {
                "width": {"type": "integer", "minimum": 1},
                "height": {"type": "integer", "minimum": 1},
                "title": {"type": ["string", "null"]},
                "shell": {"$ref": "#/definitions/shell"},
                "environment": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "required": ["name", "value"],
                        "properties": {
                            "name": {"type": "string", "minLength": 1},
                            "value": {"type": "string"},
                        },
                        "additionalProperties": False,
                    },
                },
                "environment_capture": {"type": "array", "items": {"type": "string"}},
                "type_speed": _DURATION,
                "prompt": {"type": "string"},
                "secondary_prompt": {"type": "string"},
                "timeout": _DURATION,
            },
            "additionalProperties": False,
        },
        "instructions": {
            "type": "array",
            "items": {
                "oneOf": [
                    {
                        "type": "object",
                        "required": ["type", "command"],
                        "properties": {
                            "type": {"const": "command"},
                            "command": {"$ref": "#/definitions/command"},
                            "hidden": {"type": "boolean"},
                            "type_speed": {"anyOf": [_DURATION, {"type": "null"}]},
                        },
                        "additionalProperties": False,
                    },
                    {
                        "type": "object",
                        "required": ["type", "command", "keys"],
                        "properties": {
                            "type": {"const": "interactive"},
                            "command": {"$ref": "#/definitions/command"},
                            "keys": {"type": "array", "items": {"$ref": "#/definitions/key"}},
                            "type_speed": {"anyOf": [_DURATION, {"type": "null"}]},
                        },
                        "additionalProperties": False,
                    },
                    {
                        "type": "object",
                        "required": ["type", "duration"],
                        "properties": {
                            "type": {"const": "wait"},
                            "duration": _DURATION,
                        },
                        "additionalProperties": False,
                    },
                    {
                        "type": "object",
                        "required": ["type", "label"],
                        "properties": {
                            "type": {"const": "marker"},
                            "label": {"type": "string"},
                        },
                        "additionalProperties": False,
                    },
                    {
                        "type": "object",
                        "required": ["type"],
                        "properties": {"type": {"const": "clear"}},
                        "additionalProperties": False,
                    },
                ]
            },
        },
    },
    "additionalProperties": False,
    "definitions": {
        "shell": {
            "oneOf": [
                {"type": "string"},
                {
                    "type": "object",
                    "required": ["program", "prompt", "line_split"],
                    "properties": {
                        "program": {"type": "string", "minLength": 1},
                        "args": {"type": "array", "items": {"type": "string"}},
                        "prompt": {"type": "string", "minLength": 1},
                        "line_split": {"type": "string"},
                        "quit_command": {"type": ["string", "null"]},
                    },
                    "additionalProperties": False,
                },
            ]
        },
        "command": {
            "oneOf": [
                {"type": "string"},
                {"type": "array", "items": {"type": "string"}, "minItems": 1},
                {
                    "type": "object",
                    "required": ["single_line"],
                    "properties": {"single_line": {"type": "string"}},
                    "additionalProperties": False,
                },
                {
                    "type": "object",
                    "required": ["multi_line"],
                    "properties": {
                        "multi_line": {"type": "array", "items": {"type": "string"}, "minItems": 1}
                    },
                    "additionalProperties": False,
                },
                {"$ref": "#/definitions/control"},
            ]
        },
        "control": {
            "type": "object",
            "required": ["control"],
            "properties": {"control": {"type": "string", "minLength": 1, "maxLength": 1}},
            "additionalProperties": False,
        },
        "key": {
            "oneOf": [
                {"type": "string", "minLength": 1},
                {"type": "integer", "minimum": 0, "maximum": 9},
                {
                    "type": "object",
                    "required": ["char"],
                    "properties": {"char": {"type": "string", "minLength": 1, "maxLength": 1}},
                    "additionalProperties": False,
                },
                {
                    "type": "object",
                    "required": ["string"],
                    "properties": {"string": {"type": "string"}},
                    "additionalProperties": False,
                },
                {"$ref": "#/definitions/control"},
                {
                    "type": "object",
                    "required": ["type", "duration"],
                    "properties": {"type": {"const": "wait"}, "duration": _DURATION},
                    "additionalProperties": False,
                },
            ]
        },
    },
}


def validate_script(payload: dict[str, Any]) -> None:
    jsonschema.validate(instance=payload, schema=SCRIPT_SCHEMA)
