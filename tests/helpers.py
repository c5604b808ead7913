"""Frame helpers shared by the test modules."""

from __future__ import annotations

import struct


def make_response(payload: bytes = b"", unit_id: int = 1, function_code: int = 0x03) -> bytes:
    """Build a read-holding-registers reply carrying payload."""
    header = struct.pack(">HHHBBB", 0, 0, 3 + len(payload), unit_id, function_code, len(payload))
    return header + payload


def make_exception_response(error_code: int = 0x83, exception_code: int = 0x02, unit_id: int = 1) -> bytes:
    return struct.pack(">HHHBBB", 0, 0, 3, unit_id, error_code, exception_code)
