import numpy as np

from ffpipe.frames import dummy_frames, render_frame


def test_frame_shape_and_dtype():
    frame = render_frame(64, 48, 0, 60)
    assert frame.shape == (48, 64, 3)
    assert frame.dtype == np.uint8
    assert frame.flags["C_CONTIGUOUS"]


def test_first_pixel_of_first_frame():
    r, g, b = render_frame(64, 48, 0, 60)[0, 0]
    assert r == 255
    assert g == 74
    assert b == 44


def test_frames_change_over_time():
    assert not np.array_equal(render_frame(16, 16, 0, 60), render_frame(16, 16, 30, 60))


def test_dummy_frames_count():
    frames = list(dummy_frames(8, 4, 5, 60))
    assert len(frames) == 5
    assert all(f.nbytes == 8 * 4 * 3 for f in frames)
