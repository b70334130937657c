"""Video encoding: stream raw pixel frames to FFmpeg."""

from typing import Optional

from .errors import get_last_error
from .pipe import Pipe
from .sinks import CaptureSink, PrintSink


def rawvideo_input_args(width: int, height: int, fps: int, pix_fmt: str = "rgb24") -> list[str]:
    """FFmpeg input arguments for raw frames arriving on stdin."""
    return [
        "-c:v", "rawvideo",
        "-f", "rawvideo",
        "-pix_fmt", pix_fmt,
        "-s:v", f"{width}x{height}",
        "-framerate", str(fps),
        "-i", "-",  # stdin
    ]


class StreamingEncoder:
    """Streams raw RGB frames to FFmpeg via stdin pipe for constant memory usage."""

    def __init__(
        self,
        output_path: str,
        width: int,
        height: int,
        fps: int = 24,
        crf: int = 23,
        preset: str = "medium",
        ffmpeg: str = "ffmpeg",
        timeout_ms: int = 10_000,
        echo: Optional[PrintSink] = None,
    ):
        self.output_path = output_path
        self.frame_size = width * height * 3
        # FFmpeg's console output, 1 MB cap, kept for the error message
        self._output = CaptureSink(limit=1024 * 1024, forward=echo)
        args = rawvideo_input_args(width, height, fps) + [
            "-y",  # overwrite output
            "-c:v", "libx264",
            "-preset", preset,
            "-crf", str(crf),
            "-pix_fmt", "yuv420p",
            "-movflags", "+faststart",
            output_path,
        ]
        pipe = Pipe.create(ffmpeg, args, timeout_ms=timeout_ms)
        if pipe is None:
            raise RuntimeError(f"Failed to start FFmpeg: {get_last_error()}")
        pipe.set_print_sink(self._output)
        self.pipe = pipe

    def write_frame(self, raw_bytes) -> None:
        """Write a single raw RGB frame to the encoder."""
        if memoryview(raw_bytes).nbytes != self.frame_size:
            raise ValueError(f"Frame must be {self.frame_size} bytes")
        if not self.pipe.write(raw_bytes):
            error = get_last_error()
            self.pipe.close(timeout_ms=1000)
            self.pipe.release()
            raise RuntimeError(
                f"FFmpeg stopped accepting frames: {error}\n{self._output.text()}"
            )

    def finalize(self, timeout_ms: Optional[int] = None) -> None:
        """Close input and wait for FFmpeg to finish encoding."""
        returncode = self.pipe.close(timeout_ms=timeout_ms)
        self.pipe.release()
        if returncode != 0:
            raise RuntimeError(f"FFmpeg encoding failed:\n{self._output.text()}")
