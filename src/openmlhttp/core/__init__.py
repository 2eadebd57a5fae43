"""
Core networking: the byte-stream transport and the Connection that
drives request/response exchanges over it.
"""

from .connection import API_KEY_PARAM, Connection
from .transport import TLSTransport, Transport


__all__ = [
    "API_KEY_PARAM",
    "Connection",
    "TLSTransport",
    "Transport",
]
