"""
Wisdom HTTP subsystem.

This package provides the accept loop and the fixed-shape HTTP/1.1 framing.
Request bytes are never parsed; every connection gets the same response path.
"""

from wisdom.http.response import build_error_response, build_response
from wisdom.http.server import BindError, ServerState, WisdomServer, WriteError

__all__ = [
    "BindError",
    "ServerState",
    "WisdomServer",
    "WriteError",
    "build_error_response",
    "build_response",
]
