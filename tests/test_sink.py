import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import io
import threading

from hostparser.sink import LineSink


def test_emit_writes_whole_lines_from_many_threads():
    out = io.StringIO()
    sink = LineSink(out)

    def write(n):
        for i in range(200):
            sink.emit(f"worker{n}-line{i}.example.com")

    threads = [threading.Thread(target=write, args=(n,)) for n in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    sink.flush()

    lines = out.getvalue().splitlines()
    assert len(lines) == 1200
    assert sink.count == 1200
    assert all(line.startswith("worker") and line.endswith(".example.com") for line in lines)


def test_defaults_to_current_stdout(capsys):
    sink = LineSink()
    sink.emit("example.com")
    sink.flush()
    assert capsys.readouterr().out == "example.com\n"


def test_broken_pipe_discards_further_lines():
    class ClosedPipe:
        writes = 0

        def write(self, text):
            ClosedPipe.writes += 1
            raise BrokenPipeError

        def flush(self):
            raise BrokenPipeError

    sink = LineSink(ClosedPipe())
    sink.emit("a.com")
    sink.emit("b.com")
    sink.flush()
    assert ClosedPipe.writes == 1
    assert sink.count == 0
