"""Asciicast v2 output, the format played back by asciinema."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any, Iterable, Mapping

from .recording import CLEAR_PAYLOAD, EventKind, Timeline, TimelineEvent
from .settings import Settings, captured_environment, compose_environment

logger = logging.getLogger(__name__)

VERSION = 2


class RecordingFormatError(ValueError):
    """Raised when an asciicast file cannot be parsed."""


@dataclass(slots=True)
class Header:
    width: int
    height: int
    timestamp: int | None = None
    duration: float | None = None
    title: str | None = None
    env: dict[str, str] = field(default_factory=dict)

    def to_json(self) -> str:
        parts = [
            f'"version": {VERSION}',
            f'"width": {self.width}',
            f'"height": {self.height}',
        ]
        if self.timestamp is not None:
            parts.append(f'"timestamp": {self.timestamp}')
        if self.duration is not None:
            parts.append(f'"duration": {_number(self.duration)}')
        if self.title is not None:
            parts.append(f'"title": {_string(self.title)}')
        if self.env:
            parts.append(f'"env": {json.dumps(self.env, ensure_ascii=False)}')
        return "{" + ", ".join(parts) + "}"

    @classmethod
    def for_run(
        cls,
        settings: Settings,
        timeline: Timeline,
        *,
        environ: Mapping[str, str] | None = None,
        timestamp: int | None = None,
    ) -> "Header":
        if settings.width is None or settings.height is None:
            msg = "Terminal size must be resolved before writing a recording"
            raise ValueError(msg)
        environ = compose_environment(settings) if environ is None else environ
        return cls(
            width=settings.width,
            height=settings.height,
            timestamp=int(time.time()) if timestamp is None else timestamp,
            duration=timeline.duration,
            title=settings.title,
            env=captured_environment(settings, environ),
        )


def event_to_json(event: TimelineEvent) -> str:
    return f"[{_number(event.time)}, {_string(event.kind.code)}, {_string(event.data)}]"


def _number(value: float) -> str:
    return f"{value:.6f}"


def _string(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


class AsciicastWriter:
    """Stream a header and events to a text sink, one JSON value per line."""

    def __init__(self, sink: IO[str]) -> None:
        self._sink = sink
        self._header_written = False
        self._count = 0

    @property
    def count(self) -> int:
        return self._count

    def write_header(self, header: Header) -> None:
        if self._header_written:
            msg = "Header already written"
            raise RuntimeError(msg)
        self._sink.write(header.to_json() + "\n")
        self._header_written = True

    def write_event(self, event: TimelineEvent) -> None:
        if not self._header_written:
            msg = "Header must be written before events"
            raise RuntimeError(msg)
        self._sink.write(event_to_json(event) + "\n")
        self._count += 1

    def write(self, header: Header, events: Iterable[TimelineEvent]) -> None:
        self.write_header(header)
        for event in events:
            self.write_event(event)
        self._sink.flush()


def dump_recording(
    timeline: Timeline,
    settings: Settings,
    sink: IO[str],
    *,
    environ: Mapping[str, str] | None = None,
    timestamp: int | None = None,
) -> Header:
    header = Header.for_run(settings, timeline, environ=environ, timestamp=timestamp)
    AsciicastWriter(sink).write(header, timeline)
    return header


def write_recording_file(
    path: Path,
    timeline: Timeline,
    settings: Settings,
    *,
    overwrite: bool = False,
    environ: Mapping[str, str] | None = None,
) -> Path:
    """Write the recording next to ``path`` and move it into place.

    Nothing is left at ``path`` if writing fails.
    """

    if path.exists() and not overwrite:
        msg = f"{path} already exists, pass overwrite to replace it"
        raise FileExistsError(msg)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as handle:
            dump_recording(timeline, settings, handle, environ=environ)
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    logger.info("Wrote %d events to %s", len(timeline), path)
    return path


def load_recording(source: Path | str | Iterable[str]) -> tuple[dict[str, Any], list[TimelineEvent]]:
    """Parse an asciicast v2 recording into its header and events."""

    if isinstance(source, Path):
        lines: Iterable[str] = source.read_text(encoding="utf-8").splitlines()
    elif isinstance(source, str):
        lines = source.splitlines()
    else:
        lines = source

    header: dict[str, Any] | None = None
    events: list[TimelineEvent] = []
    for number, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            value = json.loads(line)
        except json.JSONDecodeError as exc:
            raise RecordingFormatError(f"line {number}: {exc}") from exc
        if header is None:
            if not isinstance(value, dict) or value.get("version") != VERSION:
                raise RecordingFormatError(f"line {number}: expected an asciicast v{VERSION} header")
            header = value
            continue
        events.append(_parse_event(value, number))

    if header is None:
        raise RecordingFormatError("recording is empty")
    return header, events


def _parse_event(value: Any, number: int) -> TimelineEvent:
    if not (isinstance(value, list) and len(value) == 3):
        raise RecordingFormatError(f"line {number}: expected [time, code, data]")
    when, code, data = value
    if not isinstance(when, (int, float)) or not isinstance(data, str):
        raise RecordingFormatError(f"line {number}: malformed event")
    if code == "m":
        kind = EventKind.MARKER
    elif code == "o":
        kind = EventKind.CLEAR if data == CLEAR_PAYLOAD else EventKind.OUTPUT
    else:
        raise RecordingFormatError(f"line {number}: unsupported event code {code!r}")
    return TimelineEvent(time=float(when), kind=kind, data=data)
