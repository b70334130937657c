"""ffpipe: run FFmpeg as a child process and stream raw data to its stdin."""

from .errors import (
    CloseTimeout,
    DrainError,
    LaunchError,
    PipeError,
    WriteError,
    get_last_error,
)
from .pipe import Pipe, PipeState
from .sinks import CaptureSink, default_print_sink

__version__ = "0.1.0"

__all__ = [
    "CaptureSink",
    "CloseTimeout",
    "DrainError",
    "LaunchError",
    "Pipe",
    "PipeError",
    "PipeState",
    "WriteError",
    "default_print_sink",
    "get_last_error",
]
