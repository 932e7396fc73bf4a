#!/usr/bin/env python3
"""
Unit tests for command encoding and response framing.
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

import pytest

from rbridge.exceptions import MalformedResponseError
from rbridge.integration.protocol import (
    END_LINE,
    INPUT_BINDING,
    LINE_SEPARATOR,
    OUTPUT_BINDING,
    START_LINE,
    FrameDecoder,
    ProtocolCodec,
    decode_response,
    escape_string_literal,
    parse_payload,
    unwrap_payload,
)


class TestProtocolCodec:
    """Test outbound command encoding."""

    def test_call_commands_in_order(self):
        """A call is six newline-terminated commands."""
        commands = ProtocolCodec("recommend").encode_call(["liquor", "red/blush wine"])

        assert commands == [
            f"{INPUT_BINDING} <- fromJSON('[\"liquor\",\"red/blush wine\"]')\n",
            f"{OUTPUT_BINDING} <- recommend({INPUT_BINDING})\n",
            "write('<s>', stdout())\n",
            f"toJSON({OUTPUT_BINDING})\n",
            "write('<e>', stdout())\n",
            "write('<e>', stderr())\n",
        ]

    def test_quotes_and_backslashes_are_escaped(self):
        """Embedded quotes and backslashes never terminate the literal early."""
        command = ProtocolCodec("f").encode_call(["it's", "C:\\temp"])[0]

        assert command == (
            f"{INPUT_BINDING} <- fromJSON('[\"it\\'s\",\"C:\\\\\\\\temp\"]')\n"
        )

    def test_escape_string_literal(self):
        assert escape_string_literal("a'b") == "a\\'b"
        assert escape_string_literal("a\\b") == "a\\\\b"
        assert escape_string_literal("plain") == "plain"

    def test_unicode_is_kept(self):
        """Non-ASCII text is sent as-is, not as JSON escapes."""
        command = ProtocolCodec("f").encode_call(["café"])[0]

        assert "café" in command

    def test_values_are_compact_json(self):
        assert ProtocolCodec.encode_values([1, 2.5, True, None, ["x"]]) == '[1,2.5,true,null,["x"]]'

    def test_unserializable_values_rejected(self):
        with pytest.raises(ValueError, match="not JSON serializable"):
            ProtocolCodec.encode_values([object()])

    def test_libraries_in_order(self):
        codec = ProtocolCodec("f")

        assert codec.encode_libraries(["arules", "rjson"]) == (
            "library('arules')\nlibrary('rjson')\n"
        )

    def test_init_code_is_newline_terminated(self):
        assert ProtocolCodec.encode_init_code("x <- 1") == "x <- 1\n"
        assert ProtocolCodec.encode_init_code("x <- 1\n") == "x <- 1\n"

    def test_sync_commands_form_empty_frame(self):
        """The handshake produces an empty frame and an error fence."""
        assert ProtocolCodec.encode_sync() == [
            "write('<s>', stdout())\n",
            "write('<e>', stdout())\n",
            "write('<e>', stderr())\n",
        ]


class TestFrameDecoder:
    """Test sentinel framing of responses."""

    def test_chatter_before_start_is_excluded(self):
        decoder = FrameDecoder()
        lines = ["R version banner", "Loading...", START_LINE, '[1] "[1]"', END_LINE]

        results = [decoder.feed(line) for line in lines]

        assert results == [False, False, False, False, True]
        assert decoder.payload == '[1] "[1]"'
        assert decoder.chatter == ["R version banner", "Loading..."]

    def test_payload_lines_joined_in_order(self):
        payload = decode_response([START_LINE, "first", "second", END_LINE])

        assert payload == f"first{LINE_SEPARATOR}second"

    def test_end_before_start_is_malformed(self):
        """An end sentinel without a start is a protocol violation, not an empty result."""
        decoder = FrameDecoder()
        decoder.feed("noise")

        with pytest.raises(MalformedResponseError, match="ending before beginning"):
            decoder.feed(END_LINE)

    def test_empty_frame(self):
        assert decode_response([START_LINE, END_LINE]) == ""

    def test_skips_abandoned_frames(self):
        """Whole frames of abandoned calls are dropped, end sentinels included."""
        decoder = FrameDecoder(skip_frames=2)
        lines = [START_LINE, "old1", END_LINE, START_LINE, "old2", END_LINE, START_LINE, "new", END_LINE]

        for line in lines:
            decoder.feed(line)

        assert decoder.done
        assert decoder.payload == "new"
        assert decoder.skipped == lines[:6]

    def test_skipped_frame_end_before_start_is_not_an_error(self):
        """Leftover output of an abandoned malformed call is discarded."""
        decoder = FrameDecoder(skip_frames=1)

        for line in ["partial", END_LINE, START_LINE, "x", END_LINE]:
            decoder.feed(line)

        assert decoder.payload == "x"
        assert decoder.skipped == ["partial", END_LINE]

    def test_line_after_end_rejected(self):
        decoder = FrameDecoder()
        decoder.feed(START_LINE)
        decoder.feed(END_LINE)

        with pytest.raises(MalformedResponseError):
            decoder.feed("late")

    def test_missing_end_sentinel(self):
        with pytest.raises(MalformedResponseError, match="without an end sentinel"):
            decode_response(["chatter", START_LINE, "partial"])


class TestUnwrapPayload:
    """Test removal of print decoration."""

    def test_index_marker_and_quotes_removed(self):
        assert unwrap_payload('[1] "[\\"bottled beer\\"]"') == '["bottled beer"]'

    def test_escaped_backslash(self):
        assert unwrap_payload('[1] "[\\"a\\\\\\\\b\\"]"') == '["a\\\\b"]'

    def test_multiline_print(self):
        text = f'[1] "[1,2,3,{LINE_SEPARATOR}[2] 4]"'

        assert unwrap_payload(text) == "[1,2,3, 4]"

    def test_unquoted_payload_kept(self):
        assert unwrap_payload("[1,2]") == "[1,2]"
        assert unwrap_payload("[5]") == "[5]"
        assert unwrap_payload("[12]") == "[12]"

    def test_degenerate_payloads(self):
        assert unwrap_payload(None) is None
        assert unwrap_payload("") is None
        assert unwrap_payload("   ") is None
        assert unwrap_payload('[1] ""') is None


class TestParsePayload:
    """Test decoding of the structured result."""

    def test_array_result(self):
        assert parse_payload('[1] "[\\"bottled beer\\"]"') == ["bottled beer"]

    def test_nested_values(self):
        assert parse_payload('[1,"a",true,null,[2.5]]') == [1, "a", True, None, [2.5]]

    @pytest.mark.parametrize("text", ["", "[]", '[1] "[]"', "null", '[1] "null"', "{}", '""'])
    def test_empty_results_mean_no_result(self, text):
        """Empty collections and null are "no result", never an empty list."""
        assert parse_payload(text) is None

    def test_unquoted_single_number_array(self):
        """A one-number array is not mistaken for a print index marker."""
        assert parse_payload("[5]") == [5]
        assert parse_payload("[12]") == [12]
        assert parse_payload('[1] "[5]"') == [5]

    def test_scalar_becomes_single_value(self):
        assert parse_payload('[1] "42"') == [42]
        assert parse_payload('[1] "7"') == [7]
        assert parse_payload('"\\"text\\""') == ["text"]

    def test_invalid_json_is_malformed(self):
        with pytest.raises(MalformedResponseError) as exc_info:
            parse_payload('[1] "{not json"')

        assert exc_info.value.payload == "{not json"

    def test_object_is_malformed(self):
        with pytest.raises(MalformedResponseError, match="got an object"):
            parse_payload('{"a":1}')
