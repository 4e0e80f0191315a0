from __future__ import annotations

import io
import json
from pathlib import Path

import pytest

from castscript import (
    AsciicastWriter,
    EnvVar,
    EventKind,
    Header,
    RecordingFormatError,
    Settings,
    ShellConfig,
    Timeline,
    TimelineEvent,
    dump_recording,
    load_recording,
    write_recording_file,
)
from castscript.recording import CLEAR_PAYLOAD


@pytest.fixture()
def settings() -> Settings:
    shell = ShellConfig(program="castscript-no-such-shell", prompt="$ ", line_split=" \\")
    return Settings(
        width=100,
        height=30,
        title="demo",
        shell=shell,
        environment=(EnvVar("HELLO", "world"), EnvVar("TERM", "dumb")),
        environment_capture=("TERM", "LANG", "MISSING"),
    )


@pytest.fixture()
def timeline() -> Timeline:
    return Timeline(
        events=(
            TimelineEvent(0.1, EventKind.OUTPUT, "$ "),
            TimelineEvent(0.2, EventKind.OUTPUT, "héllo\r\n"),
            TimelineEvent(1.5, EventKind.CLEAR, CLEAR_PAYLOAD),
            TimelineEvent(1.5, EventKind.MARKER, "Chapter"),
        )
    )


def test_header_matches_asciinema_layout() -> None:
    header = Header(width=80, height=24, timestamp=1700000000, duration=1.25, title="t", env={"TERM": "xterm"})
    assert header.to_json() == (
        '{"version": 2, "width": 80, "height": 24, "timestamp": 1700000000, '
        '"duration": 1.250000, "title": "t", "env": {"TERM": "xterm"}}'
    )
    assert Header(width=80, height=24).to_json() == '{"version": 2, "width": 80, "height": 24}'


def test_events_are_written_one_per_line(settings: Settings, timeline: Timeline) -> None:
    sink = io.StringIO()
    dump_recording(timeline, settings, sink, environ={"LANG": "C.UTF-8"}, timestamp=42)

    lines = sink.getvalue().splitlines()
    assert len(lines) == 1 + len(timeline)
    header = json.loads(lines[0])
    assert header["duration"] == pytest.approx(1.5)
    assert header["timestamp"] == 42
    assert header["title"] == "demo"
    assert lines[1] == '[0.100000, "o", "$ "]'
    assert lines[2] == '[0.200000, "o", "héllo\\r\\n"]'
    assert lines[4] == '[1.500000, "m", "Chapter"]'


def test_header_environment_prefers_explicit_pairs(settings: Settings, timeline: Timeline) -> None:
    header = Header.for_run(settings, timeline, environ={"TERM": "xterm", "LANG": "C"}, timestamp=0)

    assert header.env["HELLO"] == "world"
    assert header.env["TERM"] == "dumb"
    assert header.env["LANG"] == "C"
    assert header.env["MISSING"] == ""
    assert header.env["SHELL"] == "castscript-no-such-shell"


def test_round_trip_preserves_events(settings: Settings, timeline: Timeline) -> None:
    sink = io.StringIO()
    dump_recording(timeline, settings, sink, environ={}, timestamp=0)

    header, events = load_recording(sink.getvalue())
    assert header["width"] == 100
    assert [(event.kind, event.data) for event in events] == [(event.kind, event.data) for event in timeline]
    assert [event.time for event in events] == pytest.approx([event.time for event in timeline])


def test_writer_requires_header_first() -> None:
    writer = AsciicastWriter(io.StringIO())
    with pytest.raises(RuntimeError):
        writer.write_event(TimelineEvent(0.0, EventKind.OUTPUT, "x"))


@pytest.mark.parametrize(
    "content",
    ["", '{"version": 1, "width": 1, "height": 1}', '{"version": 2, "width": 1, "height": 1}\n[0.1, "x", "y"]', "not json"],
)
def test_load_recording_rejects_malformed_input(content: str) -> None:
    with pytest.raises(RecordingFormatError):
        load_recording(content)


def test_write_recording_file_replaces_atomically(
    artifact_dir: Path, settings: Settings, timeline: Timeline
) -> None:
    target = artifact_dir / "demo.cast"
    write_recording_file(target, timeline, settings, environ={})

    header, events = load_recording(target)
    assert header["title"] == "demo"
    assert len(events) == len(timeline)
    assert [path.name for path in artifact_dir.iterdir()] == ["demo.cast"]

    with pytest.raises(FileExistsError):
        write_recording_file(target, timeline, settings, environ={})
    write_recording_file(target, Timeline(events=()), settings, overwrite=True, environ={})
    assert load_recording(target)[1] == []
