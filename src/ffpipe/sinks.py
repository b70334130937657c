"""Print sinks: consumers for chunks of the child's console output."""

import sys
from typing import Callable, Optional

PrintSink = Callable[[bytes], None]


def default_print_sink(chunk: bytes) -> None:
    """Write the chunk to our stdout unchanged."""
    stream = sys.stdout
    buffer = getattr(stream, "buffer", None)
    if buffer is not None:
        stream.flush()
        buffer.write(chunk)
        buffer.flush()
    else:
        stream.write(chunk.decode(errors="replace"))
        stream.flush()


class CaptureSink:
    """Keeps the most recent output, up to ``limit`` bytes, and optionally forwards it."""

    def __init__(self, limit: int = 1024 * 1024, forward: Optional[PrintSink] = None):
        self.limit = limit
        self.forward = forward
        self._chunks: list[bytes] = []
        self._size = 0

    def __call__(self, chunk: bytes) -> None:
        self._chunks.append(chunk)
        self._size += len(chunk)
        while len(self._chunks) > 1 and self._size - len(self._chunks[0]) >= self.limit:
            self._size -= len(self._chunks.pop(0))
        if self.forward is not None:
            self.forward(chunk)

    def getvalue(self) -> bytes:
        return b"".join(self._chunks)[-self.limit:]

    def text(self) -> str:
        return self.getvalue().decode(errors="replace")
