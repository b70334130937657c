"""Child launcher: spawn the encoder with its standard streams wired to our pipes."""

import logging
import os
import shlex
import subprocess
from pathlib import Path
from typing import Optional, Sequence, Union

from .errors import LaunchError

logger = logging.getLogger(__name__)

Arguments = Union[str, Sequence[str]]


def build_command_line(executable: Union[str, Path], arguments: Arguments) -> list[str]:
    """Executable followed by the caller's arguments.

    A string is treated as a command line tail: it is joined to the executable
    with a single space and split into words, so quoting is the caller's job.
    A sequence is passed through as already-split arguments.
    """
    if isinstance(arguments, str):
        return [str(executable)] + shlex.split(arguments)
    return [str(executable), *map(str, arguments)]


def _open_pidfd(pid: int) -> Optional[int]:
    pidfd_open = getattr(os, "pidfd_open", None)
    if pidfd_open is None:
        return None
    try:
        return pidfd_open(pid)
    except OSError as e:
        logger.debug("pidfd_open unavailable (%s), falling back to polling", e)
        return None


class ChildProcess:
    """A launched child plus a selectable exit notification when the OS has one.

    ``exit_fd`` becomes readable once the child has terminated. It is None on
    platforms without pidfds, in which case callers poll ``exited``.
    """

    def __init__(self, process: subprocess.Popen):
        self.process = process
        self.exit_fd = _open_pidfd(process.pid)

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self.process.poll()

    @property
    def exited(self) -> bool:
        return self.process.poll() is not None

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        try:
            return self.process.wait(timeout)
        except subprocess.TimeoutExpired:
            return None

    def terminate(self) -> None:
        """Kill the child and reap it."""
        if self.exited:
            return
        logger.debug("Terminating child %d", self.pid)
        try:
            self.process.kill()
        except ProcessLookupError:
            pass
        self.process.wait()

    def release(self) -> None:
        """Drop our references; a still-running child is left alone."""
        if self.exit_fd is not None:
            os.close(self.exit_fd)
            self.exit_fd = None
        self.process.poll()


def launch_child(
    executable: Union[str, Path],
    arguments: Arguments,
    stdin_fd: int,
    output_fd: int,
) -> ChildProcess:
    """Start the child reading ``stdin_fd`` and writing stdout and stderr to ``output_fd``.

    Environment and working directory are inherited. Raises LaunchError.
    """
    try:
        cmd = build_command_line(executable, arguments)
        process = subprocess.Popen(
            cmd,
            stdin=stdin_fd,
            stdout=output_fd,
            stderr=output_fd,
            close_fds=True,
        )
    except (OSError, ValueError) as e:
        raise LaunchError(f"Cannot start {executable}: {e}") from e

    logger.debug("Launched child %d: %s", process.pid, shlex.join(cmd))
    return ChildProcess(process)
