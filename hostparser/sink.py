"""Line oriented output shared by all workers."""

import logging
import sys
import threading
from typing import TextIO

logger = logging.getLogger(__name__)


class LineSink:
    """Write whole lines to ``stream`` (stdout by default) from many threads.

    A lock is held for each line so concurrent workers never interleave
    partial output. Once the reader goes away (broken pipe) further lines
    are discarded.
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream
        self._lock = threading.Lock()
        self._broken = False
        self.count = 0

    @property
    def stream(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stdout

    def emit(self, line: str) -> None:
        with self._lock:
            if self._broken:
                return
            try:
                self.stream.write(line + "\n")
            except BrokenPipeError:
                self._mark_broken()
                return
            self.count += 1

    def flush(self) -> None:
        with self._lock:
            if self._broken:
                return
            try:
                self.stream.flush()
            except BrokenPipeError:
                self._mark_broken()

    def _mark_broken(self) -> None:
        logger.info("Output closed by reader, discarding further results")
        self._broken = True
