from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable

import pytest

from castscript import Settings, ShellConfig

FAKE_PROMPT = "fake$ "

FAKE_SHELL_SOURCE = r'''
import os
import sys
import termios
import time
import tty

PROMPT = os.environ.get("FAKE_PROMPT", "fake$ ")


def prompt():
    sys.stdout.write(PROMPT)
    sys.stdout.flush()


def keys():
    fd = sys.stdin.fileno()
    saved = termios.tcgetattr(fd)
    tty.setraw(fd, termios.TCSANOW)
    try:
        while True:
            ch = os.read(fd, 1)
            if not ch or ch == b"\x18":
                break
            os.write(sys.stdout.fileno(), b"key:" + ch + b"\r\n")
    finally:
        termios.tcsetattr(fd, termios.TCSANOW, saved)
    print("done")


prompt()
while True:
    line = sys.stdin.readline()
    if not line:
        break
    command, _, arg = line.strip().partition(" ")
    if command == "exit":
        sys.exit(0)
    elif command == "die":
        sys.exit(3)
    elif command == "echo":
        print(arg)
    elif command == "sleep":
        time.sleep(float(arg))
    elif command == "hang":
        time.sleep(3600)
    elif command == "keys":
        keys()
    elif command == "env":
        print(os.environ.get(arg, ""))
    elif command == "size":
        size = os.get_terminal_size(sys.stdin.fileno())
        print(f"{size.lines} {size.columns}")
    elif command:
        print("unknown: " + command)
    prompt()
'''


@pytest.fixture()
def artifact_dir(tmp_path: Path) -> Path:
    path = tmp_path / "artifacts"
    path.mkdir(parents=True, exist_ok=True)
    return path


@pytest.fixture()
def fake_shell(tmp_path: Path) -> Path:
    path = tmp_path / "fake_shell.py"
    path.write_text(FAKE_SHELL_SOURCE, encoding="utf-8")
    return path


@pytest.fixture()
def fake_settings(fake_shell: Path) -> Callable[..., Settings]:
    def build(*, quit_command: str | None = "exit", **overrides) -> Settings:
        shell = ShellConfig(
            program=sys.executable,
            args=(str(fake_shell),),
            prompt=FAKE_PROMPT,
            line_split=" \\",
            quit_command=quit_command,
        )
        values = {"width": 80, "height": 24, "shell": shell, "type_speed": 0.01, "timeout": 5.0}
        values.update(overrides)
        return Settings(**values)

    return build
