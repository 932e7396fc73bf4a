#!/usr/bin/env python3
"""
Unit tests for the background stream reader.
"""

"""
Copyright (c) 2025 Firefly Software Solutions Inc.

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at:

    http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.
"""

import io
import queue

from rbridge.integration.stream_reader import StreamReader


def drain(target):
    lines = []
    while not target.empty():
        lines.append(target.get_nowait())
    return lines


class NonBlockingStream(io.RawIOBase):
    """Stream answering None a few times before each line, like a non-blocking pipe."""

    def __init__(self, lines, misses=3):
        self._lines = list(lines)
        self._misses = misses
        self._pending = misses
        self.none_count = 0

    def readline(self, size=-1):
        if not self._lines:
            return b""
        if self._pending:
            self._pending -= 1
            self.none_count += 1
            return None
        self._pending = self._misses
        return self._lines.pop(0)


class FailingStream(io.RawIOBase):
    """Stream failing after its lines have been read."""

    def __init__(self, lines):
        self._lines = list(lines)

    def readline(self, size=-1):
        if self._lines:
            return self._lines.pop(0)
        raise OSError("Bad file descriptor")


class TestStreamReader:
    """Test StreamReader line handling."""

    def test_lines_enqueued_in_order(self):
        """Every line arrives, in stream order, without its line ending."""
        stream = io.BytesIO(b"<s>\r\n[1] \"x\"\n<e>\nlast without newline")
        target = queue.Queue()
        reader = StreamReader(stream, target, "stdout")

        reader.start()
        reader.join(timeout=5)

        assert drain(target) == ["<s>", '[1] "x"', "<e>", "last without newline"]
        assert reader.finished
        assert reader.lines_read == 4
        assert not reader.failed

    def test_stream_closed_at_end(self):
        stream = io.BytesIO(b"one\n")
        reader = StreamReader(stream, queue.Queue(), "stdout")

        reader.start()
        reader.join(timeout=5)

        assert stream.closed

    def test_idles_when_no_data(self):
        """A read without data is retried after a short idle, not treated as end of stream."""
        stream = NonBlockingStream([b"a\n", b"b\n"])
        target = queue.Queue()
        reader = StreamReader(stream, target, "stderr", idle_interval=0.001)

        reader.start()
        reader.join(timeout=5)

        assert drain(target) == ["a", "b"]
        assert stream.none_count == 6

    def test_read_error_is_observable(self):
        """A failing reader keeps the error and still closes its stream."""
        stream = FailingStream([b"before\n"])
        target = queue.Queue()
        reader = StreamReader(stream, target, "stdout")

        reader.start()
        reader.join(timeout=5)

        assert drain(target) == ["before"]
        assert reader.failed
        assert isinstance(reader.failure, OSError)
        assert reader.finished
        assert stream.closed
        assert not reader.is_alive()

    def test_invalid_utf8_replaced(self):
        stream = io.BytesIO(b"caf\xe9\n")
        target = queue.Queue()
        reader = StreamReader(stream, target, "stdout")

        reader.start()
        reader.join(timeout=5)

        assert drain(target) == ["caf�"]

    def test_start_twice_is_harmless(self):
        stream = NonBlockingStream([b"x\n"], misses=50)
        target = queue.Queue()
        reader = StreamReader(stream, target, "stdout", idle_interval=0.01)

        reader.start()
        reader.start()
        reader.join(timeout=5)

        assert drain(target) == ["x"]
