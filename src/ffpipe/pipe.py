"""Pipe: run FFmpeg, feed its stdin and drain its console output.

Operations are not thread-safe. One write or close may be in flight per
instance, and only on the thread that owns it.
"""

import enum
import logging
import os
import selectors
import time
from pathlib import Path
from typing import Optional, Union

from .channel import (
    DEFAULT_BUFFER_SIZE,
    DEFAULT_TIMEOUT_MS,
    INVALID_FD,
    PipePair,
    bytes_available,
    create_pipe_pair,
)
from .errors import (
    CloseTimeout,
    DrainError,
    LaunchError,
    PipeError,
    WriteError,
    clear_last_error,
    set_last_error,
)
from .launcher import Arguments, ChildProcess, launch_child
from .sinks import PrintSink, default_print_sink

logger = logging.getLogger(__name__)

DRAIN_CHUNK_SIZE = 256
_POLL_INTERVAL = 0.05  # seconds, only used without pidfd support


class PipeState(enum.Enum):
    FRESH = "fresh"
    RUNNING = "running"
    CLOSING = "closing"
    CLOSED = "closed"


class _Wake(enum.Enum):
    WRITABLE = "writable"
    EXITED = "exited"
    TIMEOUT = "timeout"


class Pipe:
    """A running child with its stdin fed by us and its stdout/stderr merged back.

    Use :meth:`create` to construct. FFmpeg will not read from stdin unless
    the arguments say so, e.g.::

        -c:v rawvideo -f rawvideo -pix_fmt rgb24 -s:v 720x1280 -framerate 60 -i - -y output.mp4

    takes 720x1280 RGB frames as input. ``-i -`` selects stdin, ``-y`` allows
    overwriting the output file.
    """

    def __init__(self, stdin: PipePair, stdout: PipePair, child: ChildProcess):
        self._state = PipeState.FRESH
        self._stdin = stdin
        self._stdout = stdout
        self._child = child
        self._print_sink: Optional[PrintSink] = default_print_sink
        self._failed = False

        # Reused for every wait: stdin completion, output arrival, child exit
        self._selector = selectors.DefaultSelector()
        self._released = False
        self._selector.register(stdin.write_fd, selectors.EVENT_WRITE, "stdin")
        self._selector.register(stdout.read_fd, selectors.EVENT_READ, "stdout")
        if child.exit_fd is not None:
            self._selector.register(child.exit_fd, selectors.EVENT_READ, "exit")
        self._state = PipeState.RUNNING

    @classmethod
    def create(
        cls,
        ffmpeg_path: Union[str, Path],
        ffmpeg_args: Arguments,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ) -> Optional["Pipe"]:
        """Create the pipes and start the child.

        ``timeout_ms`` bounds each wait for a write to complete.
        Returns None on failure; the reason is available from
        :func:`ffpipe.errors.get_last_error`.
        """
        clear_last_error()
        stdout = stdin = child = None
        try:
            # Our ends must not leak into the child, or stdin never sees EOF
            stdout = create_pipe_pair("stdout", buffer_size, timeout_ms, nonblocking_write=False)
            os.set_inheritable(stdout.read_fd, False)
            stdin = create_pipe_pair("stdin", buffer_size, timeout_ms)
            os.set_inheritable(stdin.write_fd, False)
            child = launch_child(ffmpeg_path, ffmpeg_args, stdin.read_fd, stdout.write_fd)
            return cls(stdin, stdout, child)
        except (LaunchError, OSError) as e:
            if child is not None:
                child.terminate()
                child.release()
            for pair in (stdin, stdout):
                if pair is not None:
                    pair.close()
            if isinstance(e, LaunchError):
                error = e
            else:
                error = LaunchError(f"Cannot set up pipe: {e}")
                error.__cause__ = e
            set_last_error(error)
            logger.debug("Pipe creation failed: %s", error)
            return None

    def __enter__(self) -> "Pipe":
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()

    def __del__(self):
        self.release()

    def __repr__(self) -> str:
        return f"<Pipe {self.name} pid={self.pid} state={self._state.value}>"

    @property
    def name(self) -> str:
        return self._stdin.name

    @property
    def pid(self) -> int:
        return self._child.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._child.returncode

    @property
    def state(self) -> PipeState:
        return self._state

    @property
    def timeout_ms(self) -> int:
        return self._stdin.timeout_ms

    @property
    def print_sink(self) -> Optional[PrintSink]:
        return self._print_sink

    def set_print_sink(self, sink: Optional[PrintSink]) -> None:
        """Set the callback for the child's console output. None discards it."""
        self._print_sink = sink

    def write(self, data) -> bool:
        """Write all of ``data`` to the child's stdin. Blocking.

        Returns False if a single wait exceeds the timeout, the child exits
        first, or the pipe fails. After a failure the instance may only be
        closed or released.
        """
        if self._state is not PipeState.RUNNING:
            return self._fail(WriteError(f"Pipe {self.name} is {self._state.value}"))
        if self._failed:
            return self._fail(WriteError(f"Pipe {self.name} is unusable after a failed write"))

        view = memoryview(data).cast("B")
        length = view.nbytes
        written = 0
        timeout = self.timeout_ms / 1000

        while written < length:
            try:
                n = os.write(self._stdin.write_fd, view[written:])
            except BlockingIOError:
                n = 0
            except OSError as e:
                return self._fail(WriteError(f"Write to {self.name} failed: {e}"), e)

            if n:
                written += n
                self.read_output()
                continue

            wake = self._wait(time.monotonic() + timeout)
            if wake is _Wake.EXITED:
                return self._fail(WriteError(
                    f"Child exited with status {self.returncode} "
                    f"after {written} of {length} bytes"
                ))
            if wake is _Wake.TIMEOUT:
                return self._fail(WriteError(
                    f"Timed out after {self.timeout_ms} ms "
                    f"with {written} of {length} bytes written"
                ))
        return True

    def read_output(self) -> int:
        """Read and forward the child's console output. Non-blocking.

        Returns the number of bytes read.
        """
        try:
            return self._drain()
        except DrainError as e:
            logger.debug("Output drain stopped after %d bytes: %s", e.drained, e)
            return e.drained

    def _drain(self) -> int:
        fd = self._stdout.read_fd
        if fd == INVALID_FD:
            return 0
        try:
            available = bytes_available(fd)
        except OSError as e:
            raise DrainError(f"Cannot peek {self._stdout.name}: {e}") from e

        total = 0
        while total < available:
            size = min(DRAIN_CHUNK_SIZE, available - total)
            try:
                chunk = os.read(fd, size)
            except OSError as e:
                raise DrainError(f"Read from {self._stdout.name} failed: {e}", total) from e
            if not chunk:
                break
            total += len(chunk)
            if self._print_sink is not None:
                self._print_sink(chunk)
            if len(chunk) < size:
                break
        return total

    def close(self, timeout_ms: Optional[int] = None, terminate: bool = True) -> Optional[int]:
        """Close stdin and wait for the child to exit. Blocking.

        Don't call during a write. ``timeout_ms`` of None waits forever. If
        the child is still running at the timeout it is killed when
        ``terminate`` is true, otherwise left running. Returns the child's
        exit status, or None if it is still running.
        """
        if self._state is not PipeState.RUNNING:
            return self.returncode

        self._state = PipeState.CLOSING
        self._close_stdin()

        deadline = None if timeout_ms is None else time.monotonic() + timeout_ms / 1000
        wake = _Wake.EXITED if self._child.exited else self._wait(deadline)
        if wake is not _Wake.EXITED:
            error = CloseTimeout(f"Child {self.pid} still running after {timeout_ms} ms")
            set_last_error(error)
            logger.debug("%s%s", error, ", terminating" if terminate else "")
            if terminate:
                self._child.terminate()

        self.read_output()
        self._state = PipeState.CLOSED
        return self.returncode

    def release(self) -> None:
        """Release every descriptor this instance owns. Safe to call repeatedly.

        Without a prior :meth:`close` the child sees EOF on stdin and is not
        waited for.
        """
        if getattr(self, "_released", True):
            return
        self._released = True
        self._state = PipeState.CLOSED
        self._selector.close()
        try:
            self._stdin.close()
            self._stdout.close()
        finally:
            self._child.release()

    def _close_stdin(self) -> None:
        fd = self._stdin.write_fd
        if fd == INVALID_FD:
            return
        self._selector.unregister(fd)
        self._stdin.close_write()

    def _wait(self, deadline: Optional[float]) -> _Wake:
        """Block until stdin is writable, the child exits, or ``deadline`` passes.

        Output arriving meanwhile is drained so the child never stalls on a
        full stdout/stderr pipe. Writability wins over exit, like a
        completion that raced the child's death.
        """
        polling = self._child.exit_fd is None
        while True:
            if deadline is None:
                timeout = None
            else:
                timeout = deadline - time.monotonic()
                if timeout <= 0:
                    return _Wake.TIMEOUT
            if polling:
                timeout = _POLL_INTERVAL if timeout is None else min(timeout, _POLL_INTERVAL)

            ready = {key.data for key, _ in self._selector.select(timeout)}
            if "stdout" in ready:
                self.read_output()
            if "stdin" in ready:
                return _Wake.WRITABLE
            if "exit" in ready or (polling and self._child.exited):
                return _Wake.EXITED

    def _fail(self, error: PipeError, cause: Optional[BaseException] = None) -> bool:
        if cause is not None:
            error.__cause__ = cause
        self._failed = True
        set_last_error(error)
        logger.debug("%s", error)
        return False
