import shutil
import sys

import numpy as np
import pytest

from ffpipe import Pipe
from ffpipe.video import StreamingEncoder, rawvideo_input_args


def test_rawvideo_input_args_read_stdin():
    args = rawvideo_input_args(640, 480, 60)
    assert args[-2:] == ["-i", "-"]
    assert "640x480" in args
    assert args[args.index("-pix_fmt") + 1] == "rgb24"


def test_encoder_streams_frames(make_fake_ffmpeg, tmp_path):
    out = tmp_path / "out.mp4"
    encoder = StreamingEncoder(str(out), width=4, height=2, fps=10, ffmpeg=str(make_fake_ffmpeg()))
    frames = [np.full((2, 4, 3), i, dtype=np.uint8) for i in range(3)]
    for frame in frames:
        encoder.write_frame(frame.tobytes())
    encoder.finalize()
    assert out.read_bytes() == b"".join(f.tobytes() for f in frames)


def test_encoder_rejects_wrong_frame_size(make_fake_ffmpeg, tmp_path):
    encoder = StreamingEncoder(str(tmp_path / "out.mp4"), 4, 2, ffmpeg=str(make_fake_ffmpeg()))
    with pytest.raises(ValueError, match="24 bytes"):
        encoder.write_frame(b"\0" * 10)
    encoder.finalize()


def test_encoder_failure_includes_ffmpeg_output(make_fake_ffmpeg, tmp_path):
    encoder = StreamingEncoder(str(tmp_path / "out.mp4"), 4, 2, ffmpeg=str(make_fake_ffmpeg(exit_code=1)))
    encoder.write_frame(b"\0" * 24)
    with pytest.raises(RuntimeError, match="boom"):
        encoder.finalize()


def test_encoder_without_ffmpeg(tmp_path):
    with pytest.raises(RuntimeError, match="Failed to start FFmpeg"):
        StreamingEncoder(str(tmp_path / "out.mp4"), 4, 2, ffmpeg="/nonexistent/ffmpeg")


def test_encoder_reports_dead_ffmpeg(tmp_path):
    script = tmp_path / "quits"
    script.write_text(f"#!{sys.executable}\nimport sys\nprint('no input for me')\nsys.exit(1)\n")
    script.chmod(0o755)
    encoder = StreamingEncoder(str(tmp_path / "out.mp4"), 640, 480, ffmpeg=str(script))
    frame = b"\0" * (640 * 480 * 3)
    with pytest.raises(RuntimeError, match="stopped accepting frames"):
        for _ in range(1000):
            encoder.write_frame(frame)


@pytest.mark.skipif(shutil.which("ffmpeg") is None, reason="ffmpeg not installed")
def test_real_ffmpeg_consumes_raw_video():
    width, height, fps = 640, 480, 30
    args = rawvideo_input_args(width, height, fps) + ["-f", "null", "-"]
    pipe = Pipe.create("ffmpeg", args)
    assert pipe is not None
    pipe.set_print_sink(None)
    frame = np.zeros((height, width, 3), dtype=np.uint8)
    for i in range(30):
        frame[:] = i
        assert pipe.write(frame)
    assert pipe.close(timeout_ms=30_000) == 0
    pipe.release()
