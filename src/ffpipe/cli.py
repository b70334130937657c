"""CLI entry point for the ffpipe demo: encode an example video through a pipe."""

import logging
import shlex
import shutil

import click
from tqdm import tqdm

from .errors import get_last_error
from .frames import dummy_frames
from .pipe import Pipe
from .video import rawvideo_input_args

FORMAT_PRESETS = {
    "vga": {"width": 640, "height": 480},
    "hd": {"width": 1280, "height": 720},
    "fullhd": {"width": 1920, "height": 1080},
    "vertical": {"width": 720, "height": 1280},
}


@click.command()
@click.argument("output_args")
@click.option("--ffmpeg", "ffmpeg_path", default="ffmpeg", envvar="FFPIPE_FFMPEG", show_envvar=True,
              help="Path of the FFmpeg executable.")
@click.option("--width", default=640, help="Frame width in pixels.")
@click.option("--height", default=480, help="Frame height in pixels.")
@click.option("--fps", default=60, help="Frames per second.")
@click.option("--duration", default=5, help="Video duration in seconds.")
@click.option("--format", "frame_format", type=click.Choice(sorted(FORMAT_PRESETS)),
              default=None, help="Frame size preset (overrides --width/--height).")
@click.option("--timeout-ms", default=10_000, help="Timeout for each write to FFmpeg.")
@click.option("--quiet", is_flag=True, help="Discard FFmpeg's console output.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def main(
    output_args: str,
    ffmpeg_path: str,
    width: int,
    height: int,
    fps: int,
    duration: int,
    frame_format: str | None,
    timeout_ms: int,
    quiet: bool,
    verbose: bool,
) -> None:
    """Write an example video with FFmpeg.

    OUTPUT_ARGS are appended to the raw-video input arguments and must
    include the output file name, e.g. "-y output.mp4".
    """
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    # Pre-flight: check FFmpeg
    if not shutil.which(ffmpeg_path):
        raise click.UsageError(
            f"FFmpeg not found at '{ffmpeg_path}'. Install it:\n"
            "  macOS:   brew install ffmpeg\n"
            "  Ubuntu:  sudo apt install ffmpeg\n"
            "Or pass --ffmpeg / set FFPIPE_FFMPEG."
        )

    if frame_format:
        fmt = FORMAT_PRESETS[frame_format]
        width = fmt["width"]
        height = fmt["height"]

    args = shlex.join(rawvideo_input_args(width, height, fps)) + " " + output_args
    pipe = Pipe.create(ffmpeg_path, args, timeout_ms=timeout_ms)
    if pipe is None:
        raise click.ClickException(f"Failed to create pipe: {get_last_error()}")
    if quiet:
        pipe.set_print_sink(None)

    total_frames = fps * duration
    failed = False
    with pipe:
        for frame in tqdm(dummy_frames(width, height, total_frames, fps),
                          total=total_frames, unit="frame", desc="Encoding"):
            if not pipe.write(frame):
                failed = True
                click.echo(f"Failed to write frame: {get_last_error()}", err=True)
                break
        returncode = pipe.close(timeout_ms=timeout_ms if failed else None)

    if failed:
        raise click.ClickException("FFmpeg stopped accepting frames")
    if returncode != 0:
        raise click.ClickException(f"FFmpeg exited with status {returncode}")
    click.echo(f"Wrote {total_frames} frames ({width}x{height} @ {fps}fps)")


if __name__ == "__main__":
    main()
