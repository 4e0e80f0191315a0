"""Scripted shell sessions recorded as asciicast files."""

from .asciicast import (
    AsciicastWriter,
    Header,
    RecordingFormatError,
    dump_recording,
    load_recording,
    write_recording_file,
)
from .errors import (
    CastscriptError,
    ConfigError,
    ProcessExited,
    PromptTimeout,
    ScriptError,
    SessionIOError,
    SpawnError,
)
from .instructions import (
    CharKey,
    Clear,
    Command,
    Control,
    ControlKey,
    Interactive,
    Marker,
    MultiLine,
    SingleLine,
    StringKey,
    Wait,
    WaitKey,
)
from .orchestrator import ExecutionOrchestrator, ExecutionResult
from .pty_runner import PtyExitStatus, PtySessionRunner, PtySize
from .recording import EventKind, EventRecorder, Timeline, TimelineEvent
from .script import ChunkBuffer, InstructionState, OutputPump, PromptMatcher, ScriptDriver
from .settings import EnvVar, Settings, ShellConfig, shell_profile
from .timing import VirtualClock, parse_duration

__all__ = [
    "AsciicastWriter",
    "CastscriptError",
    "CharKey",
    "ChunkBuffer",
    "Clear",
    "Command",
    "ConfigError",
    "Control",
    "ControlKey",
    "EnvVar",
    "EventKind",
    "EventRecorder",
    "ExecutionOrchestrator",
    "ExecutionResult",
    "Header",
    "InstructionState",
    "Interactive",
    "Marker",
    "MultiLine",
    "OutputPump",
    "ProcessExited",
    "PromptMatcher",
    "PromptTimeout",
    "PtyExitStatus",
    "PtySessionRunner",
    "PtySize",
    "RecordingFormatError",
    "ScriptDriver",
    "ScriptError",
    "SessionIOError",
    "Settings",
    "ShellConfig",
    "SingleLine",
    "SpawnError",
    "StringKey",
    "Timeline",
    "TimelineEvent",
    "VirtualClock",
    "Wait",
    "WaitKey",
    "dump_recording",
    "load_recording",
    "parse_duration",
    "shell_profile",
    "write_recording_file",
]
