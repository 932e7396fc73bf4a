"""
Integration layer for Python-R communication.

This module contains all components responsible for driving the interpreter:
- Interpreter process supervision
- Background readers for the output and error streams
- Command encoding and response framing

Architecture:
    Python Application
         │
         └─> RFunctionBridge ──> ProtocolCodec ──> ProcessSupervisor ──> R process
                   ▲                                                       │
                   │               StreamReader (stdout) ◄─────────────────┤
                   └── queues ◄──  StreamReader (stderr) ◄─────────────────┘

Public API:
    - RFunctionBridge: Invokes one interpreter function per record
    - ProcessSupervisor: Owns the interpreter process and its streams
    - ProtocolCodec / FrameDecoder: Outbound commands and inbound response frames
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

from .bridge import BridgeState, RFunctionBridge
from .protocol import (
    END_LINE,
    START_LINE,
    FrameDecoder,
    ProtocolCodec,
    decode_response,
    escape_string_literal,
    parse_payload,
    unwrap_payload,
)
from .stream_reader import StreamReader
from .supervisor import ProcessSupervisor

__all__ = [
    # Core bridge
    "RFunctionBridge",
    "BridgeState",
    # Process management
    "ProcessSupervisor",
    "StreamReader",
    # Protocol
    "ProtocolCodec",
    "FrameDecoder",
    "decode_response",
    "unwrap_payload",
    "parse_payload",
    "escape_string_literal",
    "START_LINE",
    "END_LINE",
]
