"""
Line-buffered relay from a byte stream to an output sink.

Each relay runs on its own thread so stdout and stderr of the same remote
command drain independently.  A relay keeps reading until the stream reports
end of file, even after the sink raised, so the producer never blocks on a
full pipe.
"""

from __future__ import annotations

import codecs
import logging
import threading
from typing import IO, Any, Callable, Iterator, Optional

LOGGER = logging.getLogger(__name__)

OutputSink = Callable[[str], None]

DEFAULT_CHUNK_SIZE = 4096


def _strip_eol(line: str) -> str:
    return line[:-1] if line.endswith("\r") else line


def iter_lines(
    stream: IO[Any],
    *,
    encoding: str = "utf-8",
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Iterator[str]:
    """
    Yield complete lines read from *stream* as soon as they are available.

    Lines are split on ``\\n`` (a preceding ``\\r`` is dropped).  A trailing
    partial line is yielded once the stream is exhausted.  Byte streams are
    decoded incrementally so multi-byte characters split across reads survive.
    """

    read = getattr(stream, "read1", None) or stream.read
    decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
    pending = ""
    while True:
        chunk = read(chunk_size)
        if not chunk:
            break
        pending += chunk if isinstance(chunk, str) else decoder.decode(chunk)
        while "\n" in pending:
            line, pending = pending.split("\n", 1)
            yield _strip_eol(line)
    pending += decoder.decode(b"", final=True)
    if pending:
        yield _strip_eol(pending)


class LineRelay(threading.Thread):
    """Forward every line of *stream* to *sink* until the stream is drained."""

    def __init__(self, stream: IO[Any], sink: OutputSink, *, name: str = "relay") -> None:
        super().__init__(name=f"habprov-{name}", daemon=True)
        self.stream = stream
        self.sink = sink
        self.done = threading.Event()
        self.lines = 0
        self.error: Optional[BaseException] = None
        self._sink_failed = False

    def run(self) -> None:
        try:
            for line in iter_lines(self.stream):
                self.lines += 1
                if self._sink_failed:
                    continue
                try:
                    self.sink(line)
                except Exception:
                    self._sink_failed = True
                    LOGGER.exception(
                        "%s: output sink failed; draining remaining output", self.name
                    )
        except (OSError, ValueError) as exc:
            self.error = exc
            LOGGER.warning("%s: stream read failed: %s", self.name, exc)
        finally:
            self.done.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the relay has drained its stream."""
        finished = self.done.wait(timeout)
        if finished:
            self.join()
        return finished


__all__ = ["DEFAULT_CHUNK_SIZE", "LineRelay", "OutputSink", "iter_lines"]
