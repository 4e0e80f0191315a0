from __future__ import annotations

import enum
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Sequence

from .errors import CastscriptError, ProcessExited, PromptTimeout, PtyEof
from .instructions import (
    Clear,
    Command,
    Instruction,
    Interactive,
    Marker,
    Wait,
    WaitKey,
    display_lines,
    key_presses,
    transmission,
    validate_instructions,
)
from .pty_runner import PtySessionRunner, PtySize
from .recording import EventRecorder, Timeline
from .settings import Settings, compose_environment
from .timing import VirtualClock

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class OutputChunk:
    data: bytes
    captured_at: float


class ChunkBuffer:
    """Thread-safe FIFO handing PTY output from the pump to the driver."""

    def __init__(self) -> None:
        self._chunks: deque[OutputChunk] = deque()
        self._closed = False
        self._condition = threading.Condition()

    def append(self, chunk: OutputChunk) -> None:
        if not chunk.data:
            return
        with self._condition:
            self._chunks.append(chunk)
            self._condition.notify_all()

    def close(self) -> None:
        with self._condition:
            self._closed = True
            self._condition.notify_all()

    @property
    def closed(self) -> bool:
        with self._condition:
            return self._closed

    def get(self, deadline: float) -> OutputChunk | None:
        """Next chunk, or ``None`` if the deadline passes first.

        Raises :class:`PtyEof` once the buffer is closed and empty.
        """

        with self._condition:
            while True:
                if self._chunks:
                    return self._chunks.popleft()
                if self._closed:
                    raise PtyEof
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                self._condition.wait(timeout=remaining)

    def drain(self) -> list[OutputChunk]:
        with self._condition:
            chunks = list(self._chunks)
            self._chunks.clear()
            return chunks


class OutputPump(threading.Thread):
    """Background thread that drains PTY output into the chunk buffer."""

    def __init__(self, runner: PtySessionRunner, buffer: ChunkBuffer, poll_interval: float = 0.05) -> None:
        super().__init__(daemon=True, name="castscript-pump")
        self._runner = runner
        self._buffer = buffer
        self._poll_interval = poll_interval
        self._stop_event = threading.Event()
        self.error: BaseException | None = None

    def run(self) -> None:  # noqa: D401 - standard thread run
        try:
            while not self._stop_event.is_set():
                data = self._runner.read_available(time.monotonic() + self._poll_interval)
                if data:
                    self._buffer.append(OutputChunk(data=data, captured_at=time.monotonic()))
        except PtyEof:
            logger.debug("PTY output stream ended")
        except CastscriptError as exc:
            self.error = exc
        finally:
            self._buffer.close()

    def stop(self) -> None:
        self._stop_event.set()


class PromptMatcher:
    """Detect the prompt at the tail of the output stream.

    Bytes that might be the beginning of the prompt are held back until the
    next chunk shows whether they are, so the prompt never leaks into the
    recorded output.
    """

    def __init__(self, prompt: str) -> None:
        if not prompt:
            msg = "Prompt must not be empty"
            raise ValueError(msg)
        self._prompt = prompt.encode()
        self._pending = b""

    @property
    def pending(self) -> bytes:
        return self._pending

    def reset(self) -> None:
        self._pending = b""

    def feed(self, data: bytes) -> tuple[bytes, bool]:
        """Return ``(recordable_bytes, prompt_seen)``."""

        data = self._pending + data
        self._pending = b""
        if data.endswith(self._prompt):
            return data[: -len(self._prompt)], True
        hold = self._partial_suffix(data)
        if hold:
            self._pending = data[-hold:]
            data = data[:-hold]
        return data, False

    def flush(self) -> bytes:
        data, self._pending = self._pending, b""
        return data

    def _partial_suffix(self, data: bytes) -> int:
        for size in range(min(len(self._prompt) - 1, len(data)), 0, -1):
            if data.endswith(self._prompt[:size]):
                return size
        return 0


class InstructionState(enum.Enum):
    IDLE = "idle"
    SENDING = "sending"
    DRAINING = "draining"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    PROCESS_EXITED = "process_exited"


class ScriptDriver:
    """Run instructions against a live shell and record what it prints."""

    def __init__(
        self,
        settings: Settings,
        recorder: EventRecorder | None = None,
        clock: VirtualClock | None = None,
    ) -> None:
        settings.validate()
        if recorder is not None and clock is not None and recorder.clock is not clock:
            msg = "clock must be the recorder's clock when both are given"
            raise ValueError(msg)
        self._settings = settings
        self._recorder = recorder or EventRecorder(settings, clock=clock)
        self._matcher = PromptMatcher(settings.shell.prompt)
        self._buffer = ChunkBuffer()
        self._session: PtySessionRunner | None = None
        self._pump: OutputPump | None = None
        self._state = InstructionState.IDLE
        self._last_hidden = False
        self._used = False

    @property
    def recorder(self) -> EventRecorder:
        return self._recorder

    @property
    def state(self) -> InstructionState:
        return self._state

    def run(self, instructions: Sequence[Instruction]) -> Timeline:
        if self._used:
            msg = "ScriptDriver.run can only be called once, create a new driver"
            raise RuntimeError(msg)
        self._used = True
        validate_instructions(instructions)
        settings = self._settings
        env = compose_environment(settings)
        size = PtySize(rows=settings.height, cols=settings.width)

        logger.info("Starting %s", settings.shell.describe())
        with PtySessionRunner(settings.shell.command, env=env, size=size) as session:
            self._session = session
            pump = self._pump = OutputPump(session, self._buffer)
            pump.start()
            try:
                self._wait_for_prompt(self._deadline(), hidden=True, on_exit_ok=False)
                self._recorder.begin()
                self._execute_all(instructions)
                self._record_stray_output()
                self._recorder.record_prompt()
                self._quit()
            finally:
                pump.stop()
                pump.join(timeout=2)
                self._session = None
            self._raise_pump_error()
        return self._recorder.finish()

    def _execute_all(self, instructions: Sequence[Instruction]) -> None:
        total = len(instructions)
        exits_shell = self._settings.shell.quit_command is None
        for index, instruction in enumerate(instructions):
            logger.info("Instruction %d/%d: %r", index + 1, total, instruction)
            final = exits_shell and index == total - 1
            try:
                self._record_stray_output()
                self._execute(instruction, final=final)
            except CastscriptError as exc:
                raise exc.locate(index, instruction)
            self._transition(InstructionState.COMPLETED)
            self._transition(InstructionState.IDLE)

    def _execute(self, instruction: Instruction, *, final: bool) -> None:
        if isinstance(instruction, Command):
            self._run_command(instruction, final=final)
        elif isinstance(instruction, Interactive):
            self._run_interactive(instruction, final=final)
        elif isinstance(instruction, Wait):
            self._recorder.record_wait(instruction.seconds)
        elif isinstance(instruction, Marker):
            self._recorder.record_marker(instruction.label)
        elif isinstance(instruction, Clear):
            self._recorder.record_clear()
        else:  # pragma: no cover - unreachable
            msg = f"Unsupported instruction type: {type(instruction)!r}"
            raise TypeError(msg)

    def _run_command(self, instruction: Command, *, final: bool) -> None:
        self._last_hidden = instruction.hidden
        if not instruction.hidden:
            self._recorder.record_typing(display_lines(instruction.text), instruction.type_speed)
        self._send(transmission(instruction.text))
        self._wait_for_prompt(self._deadline(), hidden=instruction.hidden, on_exit_ok=final)

    def _run_interactive(self, instruction: Interactive, *, final: bool) -> None:
        self._last_hidden = False
        speed = self._type_speed(instruction.type_speed)
        self._recorder.record_typing(display_lines(instruction.text), speed)
        self._send(transmission(instruction.text))

        next_key = time.monotonic() + speed
        for position, key in enumerate(instruction.keys):
            if self._drain_until(next_key):
                skipped = len(instruction.keys) - position
                logger.warning("Prompt returned early, skipping %d remaining key(s)", skipped)
                return
            for press in key_presses(key):
                self._session_or_fail().write(press)
            if isinstance(key, WaitKey):
                next_key += key.seconds
            next_key += speed

        self._wait_for_prompt(self._deadline(), hidden=False, on_exit_ok=final)

    def _drain_until(self, until: float) -> bool:
        """Record output in real time until ``until``; report prompt sightings."""

        self._transition(InstructionState.DRAINING)
        while True:
            try:
                chunk = self._buffer.get(until)
            except PtyEof:
                self._raise_pump_error()
                self._transition(InstructionState.PROCESS_EXITED)
                raise ProcessExited("shell exited while keys were being sent") from None
            if chunk is None:
                return False
            data, matched = self._matcher.feed(chunk.data)
            self._recorder.record_output(data, chunk.captured_at)
            if matched:
                return True

    def _wait_for_prompt(self, deadline: float, *, hidden: bool, on_exit_ok: bool) -> None:
        self._transition(InstructionState.DRAINING)
        while True:
            try:
                chunk = self._buffer.get(deadline)
            except PtyEof:
                self._raise_pump_error()
                leftover = self._matcher.flush()
                if leftover:
                    self._recorder.record_output(leftover, time.monotonic(), hidden=hidden)
                if on_exit_ok:
                    logger.debug("Shell exited after the final instruction")
                    return
                self._transition(InstructionState.PROCESS_EXITED)
                raise ProcessExited("shell exited before the prompt reappeared") from None
            if chunk is None:
                self._transition(InstructionState.TIMED_OUT)
                tail = self._matcher.pending.decode("utf-8", errors="replace")
                msg = f"prompt {self._settings.shell.prompt!r} not seen within {self._settings.timeout}s"
                if tail:
                    msg += f", output tail: {tail!r}"
                raise PromptTimeout(msg)
            data, matched = self._matcher.feed(chunk.data)
            self._recorder.record_output(data, chunk.captured_at, hidden=hidden)
            if matched:
                return

    def _record_stray_output(self) -> None:
        for chunk in self._buffer.drain():
            data, _ = self._matcher.feed(chunk.data)
            self._recorder.record_output(data, chunk.captured_at, hidden=self._last_hidden)

    def _quit(self) -> None:
        session = self._session_or_fail()
        quit_command = self._settings.shell.quit_command
        if quit_command is not None:
            logger.info("Sending quit command %r", quit_command)
            self._send((quit_command + "\n").encode())
        try:
            status = session.wait(timeout=self._settings.timeout)
        except TimeoutError as exc:
            msg = f"shell did not exit within {self._settings.timeout}s"
            raise PromptTimeout(msg) from exc
        self._buffer.drain()
        self._matcher.reset()
        if status.succeeded:
            logger.info("Shell exited cleanly")
        elif status.signal is not None:
            logger.warning("Shell killed by signal %d", status.signal)
        else:
            logger.warning("Shell exited with status %s", status.returncode)

    def _raise_pump_error(self) -> None:
        if self._pump is not None and self._pump.error is not None:
            raise self._pump.error

    def _send(self, data: bytes) -> None:
        self._transition(InstructionState.SENDING)
        self._session_or_fail().write(data)

    def _session_or_fail(self) -> PtySessionRunner:
        if self._session is None:
            msg = "Session is not running"
            raise RuntimeError(msg)
        return self._session

    def _type_speed(self, override: float | None) -> float:
        return self._settings.type_speed if override is None else override

    def _deadline(self) -> float:
        return time.monotonic() + self._settings.timeout

    def _transition(self, state: InstructionState) -> None:
        if state is not self._state:
            logger.debug("State %s -> %s", self._state.value, state.value)
            self._state = state
