"""
Background readers for the interpreter's output streams.

Each reader owns one pipe of the child process and drains it, line by
line and in order, into a queue consumed by the bridge.
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

import logging
import queue
import threading
import time
from typing import BinaryIO, Optional

logger = logging.getLogger(__name__)


class StreamReader:
    """
    Drains a byte stream into a queue of text lines on a daemon thread.

    The reader stops at end of stream or on the first read error. A read
    error is kept in ``failure`` so that the bridge can treat it like a
    dead process. The stream is closed when the reader stops.
    """

    def __init__(
        self,
        stream: BinaryIO,
        target: "queue.Queue[str]",
        name: str,
        idle_interval: float = 0.005,
        encoding: str = "utf-8",
    ):
        self._stream = stream
        self._target = target
        self.name = name
        self._idle_interval = idle_interval
        self._encoding = encoding
        self._thread: Optional[threading.Thread] = None
        self.failure: Optional[BaseException] = None
        self.finished = False
        self.lines_read = 0

    def start(self) -> None:
        """Start the background thread."""
        if self._thread and self._thread.is_alive():
            return  # already running

        self._thread = threading.Thread(
            target=self._run, name=f"rbridge-{self.name}-reader", daemon=True
        )
        self._thread.start()

    def is_alive(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)

    @property
    def failed(self) -> bool:
        return self.failure is not None

    def _run(self) -> None:
        """Continuously read the stream and enqueue complete lines."""
        try:
            with self._stream:
                while True:
                    raw_line = self._stream.readline()
                    if raw_line is None:
                        # Non-blocking stream without data yet
                        time.sleep(self._idle_interval)
                        continue
                    if not raw_line:
                        break
                    line = raw_line.decode(self._encoding, errors="replace").rstrip("\r\n")
                    self._target.put(line)
                    self.lines_read += 1
        except Exception as e:
            self.failure = e
            logger.error(f"Reader for interpreter {self.name} stopped: {e}")
        finally:
            self.finished = True
            logger.debug(f"Reader for interpreter {self.name} finished after {self.lines_read} lines")
