"""
Errors raised by the Modbus TCP frame decoder and client.

All of them derive from ModbusError, so callers can catch the whole family
or branch on the exact class.
"""

from __future__ import annotations

from typing import Optional

# Standard Modbus exception codes (Modbus Application Protocol spec)
MODBUS_EXCEPTION_CODES = {
    1: "Illegal Function",
    2: "Illegal Data Address",
    3: "Illegal Data Value",
    4: "Slave Device Failure",
    5: "Acknowledge",
    6: "Slave Device Busy",
    8: "Memory Parity Error",
    10: "Gateway Path Unavailable",
    11: "Gateway Target Device Failed to Respond",
}


def exception_description(code: int) -> Optional[str]:
    """Return the standard description of an exception code, or None if unknown."""
    return MODBUS_EXCEPTION_CODES.get(code)


class ModbusError(Exception):
    """Base class for all Modbus client errors."""


class ShortResponse(ModbusError):
    """Response is shorter than the 9-byte header."""

    def __init__(self, message: str = "short response"):
        super().__init__(message)


class ShortPayload(ModbusError):
    """Header is present but the payload lacks bytes for the requested field."""

    def __init__(self, message: str = "short payload"):
        super().__init__(message)


class NotConnected(ModbusError, ConnectionError):
    """Operation needs a connection and the client has none."""

    def __init__(self, message: str = "not connected"):
        super().__init__(message)


class ModbusDeviceError(ModbusError):
    """Device answered with an exception reply instead of register data."""

    def __init__(self, error_code: int, exception_code: int):
        self.error_code = error_code
        self.exception_code = exception_code
        self.description = exception_description(exception_code)
        message = f"modbus error, 0x{error_code:02x}, 0x{exception_code:02x}"
        if self.description:
            message += f" ({self.description})"
        super().__init__(message)
