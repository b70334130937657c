"""Pipe-pair factory: connected byte channels for a child's standard streams."""

import fcntl
import itertools
import logging
import os
import sys
import termios
from dataclasses import dataclass
from pathlib import Path

from .errors import LaunchError

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 4096 * 4096
DEFAULT_TIMEOUT_MS = 10_000
INVALID_FD = -1

_F_SETPIPE_SZ = getattr(fcntl, "F_SETPIPE_SZ", None)
_PIPE_MAX_SIZE = Path("/proc/sys/fs/pipe-max-size")

_nonce = itertools.count()


def pipe_name(role: str) -> str:
    """Unique label for a pair: fixed prefix, process id, per-call nonce, role."""
    return f"ffpipe_{os.getpid()}_{next(_nonce)}_{role}"


def _pipe_max_size() -> int:
    """Largest buffer an unprivileged process may request, or 0 if unknown."""
    try:
        return int(_PIPE_MAX_SIZE.read_text())
    except (OSError, ValueError):
        return 0


def _set_pipe_size(fd: int, size: int) -> int:
    """Request a kernel buffer of ``size`` bytes, falling back to the system maximum.

    Returns the size in effect, or 0 if the kernel default was kept.
    """
    if _F_SETPIPE_SZ is None:
        return 0
    try:
        return fcntl.fcntl(fd, _F_SETPIPE_SZ, size)
    except OSError as e:
        limit = _pipe_max_size()
        if not 0 < limit < size:
            logger.debug("Pipe buffer of %d bytes refused (%s), keeping kernel default", size, e)
            return 0
        logger.debug("Pipe buffer of %d bytes refused (%s), retrying with %d", size, e, limit)
    try:
        return fcntl.fcntl(fd, _F_SETPIPE_SZ, limit)
    except OSError as e:
        logger.debug("Pipe buffer of %d bytes refused (%s), keeping kernel default", limit, e)
        return 0


def bytes_available(fd: int) -> int:
    """Number of bytes that can be read from ``fd`` right now without blocking."""
    buf = bytearray(4)
    fcntl.ioctl(fd, termios.FIONREAD, buf, True)
    return int.from_bytes(buf, sys.byteorder)


@dataclass
class PipePair:
    """Read end and write end of one byte channel.

    The read end is blocking. The write end is normally non-blocking so a write
    that cannot complete immediately is reported as pending instead of
    stalling the caller.
    """
    name: str
    read_fd: int
    write_fd: int
    buffer_size: int
    timeout_ms: int

    def close_read(self) -> None:
        if self.read_fd != INVALID_FD:
            os.close(self.read_fd)
            self.read_fd = INVALID_FD

    def close_write(self) -> None:
        if self.write_fd != INVALID_FD:
            os.close(self.write_fd)
            self.write_fd = INVALID_FD

    def close(self) -> None:
        try:
            self.close_read()
        finally:
            self.close_write()

    @property
    def closed(self) -> bool:
        return self.read_fd == INVALID_FD and self.write_fd == INVALID_FD


def create_pipe_pair(
    role: str,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    nonblocking_write: bool = True,
) -> PipePair:
    """Create a connected pair with both ends inheritable.

    The non-blocking flag is shared by every duplicate of the write end, so
    pass ``nonblocking_write=False`` for a write end that is handed to a child.

    Raises LaunchError if the channel cannot be created; nothing is leaked.
    """
    name = pipe_name(role)
    try:
        read_fd, write_fd = os.pipe()
    except OSError as e:
        raise LaunchError(f"Cannot create pipe {name}: {e}") from e

    pair = PipePair(name, read_fd, write_fd, buffer_size, timeout_ms)
    try:
        os.set_inheritable(read_fd, True)
        os.set_inheritable(write_fd, True)
        os.set_blocking(read_fd, True)
        os.set_blocking(write_fd, not nonblocking_write)
    except OSError as e:
        pair.close()
        raise LaunchError(f"Cannot configure pipe {name}: {e}") from e

    actual = _set_pipe_size(write_fd, buffer_size)
    logger.debug("Created pipe %s (r=%d, w=%d, buffer=%s)", name, read_fd, write_fd, actual or "default")
    return pair
