"""Error types and the per-thread last-error slot."""

import threading
from typing import Optional


class PipeError(Exception):
    """Base class for every failure reported by ffpipe."""


class LaunchError(PipeError):
    """Pipe creation, inheritance setup, or child spawn failed."""


class WriteError(PipeError):
    """A write to the child's stdin failed, timed out, or the child exited."""


class DrainError(PipeError):
    """Reading the child's output failed. Never raised to callers.

    ``drained`` is the number of bytes forwarded before the failure.
    """

    def __init__(self, message: str, drained: int = 0):
        super().__init__(message)
        self.drained = drained


class CloseTimeout(PipeError):
    """The child did not exit within the close timeout."""


_state = threading.local()


def get_last_error() -> Optional[PipeError]:
    """Return the last error recorded on this thread, or None."""
    return getattr(_state, "error", None)


def set_last_error(error: Optional[PipeError]) -> None:
    _state.error = error


def clear_last_error() -> None:
    _state.error = None
