from __future__ import annotations

import errno
import fcntl
import logging
import os
import pty
import selectors
import signal
import struct
import subprocess
import termios
import time
from dataclasses import dataclass
from typing import Iterable, Mapping

from .errors import PtyEof, SessionIOError, SpawnError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PtySize:
    """Terminal size descriptor."""

    rows: int = 24
    cols: int = 80


@dataclass(slots=True)
class PtyExitStatus:
    """Exit information for a PTY-backed subprocess."""

    returncode: int | None
    signal: int | None

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0 and self.signal is None


class PtySessionRunner:
    """Context manager that launches a shell inside a PTY.

    Local echo is turned off on the slave side so that everything read from
    the master was printed by the program itself.
    """

    def __init__(
        self,
        command: Iterable[str],
        *,
        env: Mapping[str, str] | None = None,
        size: PtySize | None = None,
        echo: bool = False,
        read_chunk_size: int = 4096,
    ) -> None:
        self._command = list(command)
        if not self._command:
            msg = "Command must not be empty"
            raise ValueError(msg)

        self._env = dict(env) if env is not None else None
        self._size = size or PtySize()
        self._echo = echo
        self._chunk_size = read_chunk_size

        self._master_fd: int | None = None
        self._slave_fd: int | None = None
        self._process: subprocess.Popen[bytes] | None = None
        self._selector = selectors.DefaultSelector()

    def __enter__(self) -> "PtySessionRunner":
        self.spawn()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        self.close()

    def spawn(self) -> None:
        master_fd, slave_fd = pty.openpty()
        self._master_fd = master_fd
        self._slave_fd = slave_fd

        os.set_blocking(master_fd, False)
        self._selector.register(master_fd, selectors.EVENT_READ)
        self._apply_winsize(self._size)
        if not self._echo:
            attrs = termios.tcgetattr(slave_fd)
            attrs[3] &= ~termios.ECHO
            termios.tcsetattr(slave_fd, termios.TCSANOW, attrs)

        try:
            self._process = subprocess.Popen(
                self._command,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                env=self._env,
                start_new_session=True,
                close_fds=True,
            )
        except OSError as exc:
            self.close()
            msg = f"could not start {self._command[0]!r}: {exc.strerror or exc}"
            raise SpawnError(msg) from exc

        # Close the slave in parent process to avoid descriptor leaks.
        os.close(slave_fd)
        self._slave_fd = None
        logger.debug("Spawned %s (pid %d)", self._command, self._process.pid)

    def close(self) -> None:
        try:
            if self._process and self._process.poll() is None:
                self._process.terminate()
                try:
                    self._process.wait(timeout=1)
                except subprocess.TimeoutExpired:
                    self._process.kill()
        finally:
            if self._process is not None:
                try:
                    self._process.wait(timeout=1)
                except subprocess.TimeoutExpired:  # pragma: no cover - safety
                    logger.warning("Process %d did not exit after kill", self._process.pid)
            if self._master_fd is not None:
                self._selector.unregister(self._master_fd)
                os.close(self._master_fd)
            if self._slave_fd is not None:
                os.close(self._slave_fd)

            self._master_fd = None
            self._slave_fd = None
            self._process = None

    @property
    def master_fd(self) -> int:
        if self._master_fd is None:
            msg = "Master FD is not initialised"
            raise RuntimeError(msg)
        return self._master_fd

    @property
    def process(self) -> subprocess.Popen[bytes]:
        if self._process is None:
            msg = "Process is not running"
            raise RuntimeError(msg)
        return self._process

    def read_available(self, deadline: float) -> bytes:
        """Read whatever the PTY has, waiting at most until ``deadline``.

        ``deadline`` is a ``time.monotonic()`` instant. Returns ``b""`` when
        nothing arrived in time and raises :class:`PtyEof` once the stream
        has ended.
        """

        timeout = max(0.0, deadline - time.monotonic())
        events = self._selector.select(timeout)
        if not events:
            return b""

        try:
            data = os.read(self.master_fd, self._chunk_size)
        except BlockingIOError:
            return b""
        except OSError as exc:
            # Linux reports EIO on the master once every slave fd is closed.
            if exc.errno == errno.EIO:
                raise PtyEof from exc
            raise SessionIOError(f"error reading shell output: {exc}") from exc
        if not data:
            raise PtyEof
        return data

    def write(self, data: bytes) -> None:
        """Write all bytes to the PTY master."""

        view = memoryview(data)
        while view:
            try:
                written = os.write(self.master_fd, view)
            except BlockingIOError:
                time.sleep(0.01)
                continue
            except OSError as exc:
                raise SessionIOError(f"error writing to shell: {exc}") from exc
            view = view[written:]

    def wait(self, timeout: float | None = None) -> PtyExitStatus:
        """Wait for the subprocess to finish."""

        proc = self.process
        try:
            proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired as exc:
            raise TimeoutError("Subprocess did not exit within timeout") from exc

        returncode = proc.returncode
        if returncode is None:
            return PtyExitStatus(returncode=None, signal=None)
        if returncode < 0:
            return PtyExitStatus(returncode=None, signal=abs(returncode))
        return PtyExitStatus(returncode=returncode, signal=None)

    def terminate(self, sig: int = signal.SIGTERM) -> None:
        """Forward a termination signal to the subprocess."""

        try:
            self.process.send_signal(sig)
        except ProcessLookupError:  # pragma: no cover - race condition guard
            return

    def is_running(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def resize(self, size: PtySize) -> None:
        """Adjust the underlying PTY window size."""

        self._size = size
        self._apply_winsize(size)

    def _apply_winsize(self, size: PtySize) -> None:
        if self._master_fd is None:
            msg = "PTY not initialised"
            raise RuntimeError(msg)

        packed = struct.pack("HHHH", size.rows, size.cols, 0, 0)
        fcntl.ioctl(self._master_fd, termios.TIOCSWINSZ, packed)
        if self._slave_fd is not None:
            fcntl.ioctl(self._slave_fd, termios.TIOCSWINSZ, packed)
