"""Dummy frame generator: a slowly cycling colour gradient."""

from typing import Iterator

import numpy as np

STRIDE = 3  # RGB


def render_frame(width: int, height: int, frame: int, framerate: int) -> np.ndarray:
    """Render one (height, width, 3) uint8 RGB frame at time ``frame / framerate``."""
    u = np.arange(width, dtype=np.float32) / width
    v = np.arange(height, dtype=np.float32) / height
    t = np.float32(frame / framerate)

    rgb = np.empty((height, width, STRIDE), dtype=np.float32)
    rgb[:, :, 0] = (0.5 + 0.5 * np.cos(t + u))[None, :]
    rgb[:, :, 1] = (0.5 + 0.5 * np.cos(t + v + 2))[:, None]
    rgb[:, :, 2] = (0.5 + 0.5 * np.cos(t + u + 4))[None, :]
    return (rgb * 255).astype(np.uint8)


def dummy_frames(width: int, height: int, num_frames: int, framerate: int) -> Iterator[np.ndarray]:
    for frame in range(num_frames):
        yield render_frame(width, height, frame, framerate)
