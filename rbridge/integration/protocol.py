"""
Line protocol spoken with the interpreter.

Outbound, every command is one newline-terminated statement. Inbound, a
response is the JSON text printed between a start sentinel line and an
end sentinel line on stdout. Anything printed before the start sentinel
is interpreter chatter. After each call an end sentinel is also written
on stderr so the bridge knows which error output belongs to that call.

Example exchange for ``recommend(["liquor", "red/blush wine"])``::

    -> .rbridge.input <- fromJSON('["liquor","red/blush wine"]')
    -> .rbridge.output <- recommend(.rbridge.input)
    -> write('<s>', stdout())
    -> toJSON(.rbridge.output)
    -> write('<e>', stdout())
    -> write('<e>', stderr())
    <- <s>
    <- [1] "[\\"bottled beer\\"]"
    <- <e>
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

import json
import os
import re
from typing import Any, Iterable, List, Optional, Sequence

from ..exceptions import MalformedResponseError

START_LINE = "<s>"
END_LINE = "<e>"
ERROR_FENCE = END_LINE

INPUT_BINDING = ".rbridge.input"
OUTPUT_BINDING = ".rbridge.output"

LINE_SEPARATOR = os.linesep

# Print index markers such as "[1] " at the start of a printed line
_INDEX_MARKER = re.compile(r"^\s*\[\d+\]\s+")
_PRINT_ESCAPE = re.compile(r"\\(.)", re.DOTALL)
_PRINT_UNESCAPES = {"n": "\n", "t": "\t", "r": "\r"}

_EMPTY_PAYLOADS = {"[]", "{}", "null", "NULL", '""'}


def escape_string_literal(text: str) -> str:
    """Escape text for use inside a single-quoted string literal."""
    return text.replace("\\", "\\\\").replace("'", "\\'")


class ProtocolCodec:
    """Builds the commands sent to the interpreter for one function."""

    def __init__(self, function_name: str):
        self.function_name = function_name

    @staticmethod
    def encode_library(library: str) -> str:
        return f"library('{escape_string_literal(library)}')\n"

    def encode_libraries(self, libraries: Iterable[str]) -> str:
        return "".join(self.encode_library(lib) for lib in libraries)

    @staticmethod
    def encode_init_code(code: str) -> str:
        """Init code is sent as a single command."""
        return code if code.endswith("\n") else code + "\n"

    @staticmethod
    def encode_values(values: Sequence[Any]) -> str:
        """Serialize call input as compact JSON text."""
        try:
            return json.dumps(list(values), ensure_ascii=False, separators=(",", ":"))
        except (TypeError, ValueError) as e:
            raise ValueError(f"Input values are not JSON serializable: {e}") from e

    def encode_call(self, values: Sequence[Any]) -> List[str]:
        """Commands invoking the function once on ``values``."""
        payload = escape_string_literal(self.encode_values(values))
        return [
            f"{INPUT_BINDING} <- fromJSON('{payload}')\n",
            f"{OUTPUT_BINDING} <- {self.function_name}({INPUT_BINDING})\n",
            f"write('{START_LINE}', stdout())\n",
            f"toJSON({OUTPUT_BINDING})\n",
            f"write('{END_LINE}', stdout())\n",
            f"write('{ERROR_FENCE}', stderr())\n",
        ]

    @staticmethod
    def encode_sync() -> List[str]:
        """Commands producing an empty frame and an error fence, used as a handshake."""
        return [
            f"write('{START_LINE}', stdout())\n",
            f"write('{END_LINE}', stdout())\n",
            f"write('{ERROR_FENCE}', stderr())\n",
        ]


class FrameDecoder:
    """
    Incremental decoder for one sentinel-framed response.

    Lines are fed in stream order. The first ``skip_frames`` frames belong
    to calls that were abandoned and are dropped whole, including their
    end sentinels.
    """

    def __init__(self, skip_frames: int = 0):
        self.skip_frames = skip_frames
        self.started = False
        self.done = False
        self.chatter: List[str] = []
        self.skipped: List[str] = []
        self._lines: List[str] = []

    def feed(self, line: str) -> bool:
        """Consume one line; True once the frame is complete."""
        if self.done:
            raise MalformedResponseError("Line received after the end of the response", line)

        if self.skip_frames:
            self.skipped.append(line)
            if line == END_LINE:
                self.skip_frames -= 1
            return False

        if line == START_LINE:
            self.started = True
        elif line == END_LINE:
            if not self.started:
                raise MalformedResponseError(
                    "Something went wrong. Received response ending before beginning!",
                    LINE_SEPARATOR.join(self.chatter),
                )
            self.done = True
        elif self.started:
            self._lines.append(line)
        else:
            self.chatter.append(line)
        return self.done

    @property
    def payload(self) -> str:
        return LINE_SEPARATOR.join(self._lines).strip()


def decode_response(lines: Iterable[str], skip_frames: int = 0) -> str:
    """Extract the payload of the first complete frame in ``lines``."""
    decoder = FrameDecoder(skip_frames=skip_frames)
    for line in lines:
        if decoder.feed(line):
            return decoder.payload
    raise MalformedResponseError(
        "Response ended without an end sentinel", LINE_SEPARATOR.join(decoder.chatter)
    )


def _unescape_print(text: str) -> str:
    return _PRINT_ESCAPE.sub(lambda m: _PRINT_UNESCAPES.get(m.group(1), m.group(1)), text)


def unwrap_payload(text: Optional[str]) -> Optional[str]:
    """
    Remove the decoration added when the interpreter prints a character value.

    ``[1] "[\\"a\\",\\"b\\"]"`` becomes ``["a","b"]``. Returns None for an
    empty or degenerate payload.
    """
    if text is None:
        return None

    text = text.strip()
    if not text:
        return None

    text = " ".join(_INDEX_MARKER.sub("", line, count=1).strip() for line in text.splitlines())
    text = text.strip()

    if len(text) >= 2 and text[0] == '"' and text[-1] == '"':
        text = _unescape_print(text[1:-1]).strip()

    return text or None


def parse_payload(text: Optional[str]) -> Optional[List[Any]]:
    """
    Turn a response payload into the call result.

    Returns None for "no result" (nothing printed, an empty collection or
    null). A JSON scalar becomes a one-element list.
    """
    content = unwrap_payload(text)
    if content is None or content in _EMPTY_PAYLOADS:
        return None

    try:
        value = json.loads(content)
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"Unrecognized response from interpreter: {e}", content) from e

    if value is None:
        return None
    if isinstance(value, list):
        return value or None
    if isinstance(value, dict):
        raise MalformedResponseError(
            "Expected an array response from interpreter, got an object", content
        )
    return [value]
