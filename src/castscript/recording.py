from __future__ import annotations

import codecs
import enum
import logging
import threading
from dataclasses import dataclass
from typing import Iterator, Sequence

from .settings import Settings
from .timing import VirtualClock

logger = logging.getLogger(__name__)

CLEAR_PAYLOAD = "\r\x1b[H\x1b[2J\x1b[3J"
NEWLINE = "\r\n"


class EventKind(enum.Enum):
    OUTPUT = "output"
    MARKER = "marker"
    CLEAR = "clear"

    @property
    def code(self) -> str:
        """Asciicast event code; a clear is drawn as ordinary output."""

        return "m" if self is EventKind.MARKER else "o"


@dataclass(frozen=True, slots=True)
class TimelineEvent:
    time: float
    kind: EventKind
    data: str


@dataclass(frozen=True, slots=True)
class Timeline:
    events: tuple[TimelineEvent, ...]

    @property
    def duration(self) -> float | None:
        return self.events[-1].time if self.events else None

    def __iter__(self) -> Iterator[TimelineEvent]:
        return iter(self.events)

    def __len__(self) -> int:
        return len(self.events)


class EventRecorder:
    """Collect recorded events on a virtual timeline.

    Output captured from the shell is stamped with the instant it was read;
    scripted waits and virtual typing only move the clock's offset, so they
    show up in the recording without slowing the run down.
    """

    def __init__(self, settings: Settings, clock: VirtualClock | None = None) -> None:
        self._settings = settings
        self._clock = clock or VirtualClock()
        self._events: list[TimelineEvent] = []
        self._last_time = 0.0
        self._finished = False
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._lock = threading.Lock()

    @property
    def clock(self) -> VirtualClock:
        return self._clock

    @property
    def events(self) -> list[TimelineEvent]:
        return list(self._events)

    def begin(self) -> None:
        self._clock.start()

    def record_output(self, data: bytes, captured_at: float, *, hidden: bool = False) -> None:
        if hidden or not data:
            # Dropped, but the real time it took still shows in later events.
            return
        self.begin()
        text = self._decoder.decode(data)
        if not text:
            return
        self._append(self._clock.virtual_time(captured_at), EventKind.OUTPUT, text)

    def record_typing(self, lines: Sequence[str], type_speed: float | None = None) -> None:
        """Draw a command being typed at the display prompt."""

        self.begin()
        speed = self._settings.type_speed if type_speed is None else type_speed
        self._type(self._settings.prompt, speed)
        last = len(lines) - 1
        for number, line in enumerate(lines):
            if number:
                self._type(self._settings.secondary_prompt, speed)
            text = line + self._settings.shell.line_split if number < last else line
            for char in text:
                self._type(char, speed)
            self._type(NEWLINE, speed)

    def record_wait(self, seconds: float) -> None:
        self.begin()
        self._clock.advance(seconds)

    def record_marker(self, label: str) -> None:
        self.begin()
        self._append(self._clock.now(), EventKind.MARKER, label)

    def record_clear(self) -> None:
        self.begin()
        self._append(self._clock.now(), EventKind.CLEAR, CLEAR_PAYLOAD)

    def record_prompt(self) -> None:
        """Show the idle prompt at the current instant, without typing delay."""

        self.begin()
        self._append(self._clock.now(), EventKind.OUTPUT, self._settings.prompt)

    def finish(self) -> Timeline:
        # A multibyte sequence cut off by the end of the run still shows up.
        tail = self._decoder.decode(b"", final=True)
        if tail:
            self._append(self._last_time, EventKind.OUTPUT, tail)
        with self._lock:
            self._finished = True
            logger.debug("Timeline closed with %d events", len(self._events))
            return Timeline(events=tuple(self._events))

    def _type(self, text: str, speed: float) -> None:
        self._clock.advance(speed)
        self._append(self._clock.now(), EventKind.OUTPUT, text)

    def _append(self, when: float, kind: EventKind, data: str) -> None:
        with self._lock:
            if self._finished:
                msg = "Recorder is already finished"
                raise RuntimeError(msg)
            # Output read before a synthetic delay can map to an earlier
            # virtual time than the last event; the timeline never goes back.
            when = max(when, self._last_time)
            self._last_time = when
            self._events.append(TimelineEvent(time=when, kind=kind, data=data))
