import shlex
import stat
import sys
from pathlib import Path

import pytest

from ffpipe import Pipe, get_last_error

# Copies stdin to the file named by the last argument, like "ffmpeg ... -i - out"
FAKE_FFMPEG = """\
#!{python}
import shutil
import sys

sys.stderr.write("fake ffmpeg version 0.0\\n")
sys.stderr.flush()
with open(sys.argv[-1], "wb") as f:
    shutil.copyfileobj(sys.stdin.buffer, f)
if {exit_code}:
    sys.stderr.write("boom\\n")
sys.exit({exit_code})
"""


def python_args(script: str) -> str:
    """Argument string that runs ``script`` with the current interpreter."""
    return "-c " + shlex.quote(script)


@pytest.fixture
def spawn():
    """Start ``sys.executable -c script`` behind a Pipe; killed and released afterwards."""
    created = []

    def _spawn(script: str, **kwargs) -> Pipe:
        pipe = Pipe.create(sys.executable, python_args(script), **kwargs)
        assert pipe is not None, get_last_error()
        created.append(pipe)
        return pipe

    yield _spawn
    for pipe in created:
        pipe.close(timeout_ms=0, terminate=True)
        pipe.release()


@pytest.fixture
def make_fake_ffmpeg(tmp_path: Path):
    def _make(exit_code: int = 0) -> Path:
        path = tmp_path / f"fake-ffmpeg-{exit_code}"
        path.write_text(FAKE_FFMPEG.format(python=sys.executable, exit_code=exit_code))
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return _make
