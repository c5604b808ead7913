"""
Modbus TCP framing for "read holding registers" (FC03).

Frame builder: build the 12-byte request (MBAP header + PDU).
Response decoder: validate the 9-byte reply header, surface device
exception replies, and pull typed values out of the register payload.

Everything here is pure: no sockets, no shared state.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union

from modbus_exceptions import ModbusDeviceError, ShortPayload, ShortResponse

Buffer = Union[bytes, bytearray, memoryview]

READ_FUNC_CODE = 0x03
MBAP_HEADER_LEN = 6  # transaction id + protocol id + length
READ_RES_HEADER_LEN = 9  # MBAP + unit id + function code + byte count
ERR_CODE_INDEX = 7
EXC_CODE_INDEX = 8


def hexdump(b: Buffer) -> str:
    return bytes(b).hex(" ")


def frame_from_stream_buffer(buf: bytes) -> Tuple[Optional[bytes], bytes]:
    """Split one complete MBAP frame off the front of a stream buffer.

    Returns (frame, rest), or (None, buf) while the frame is still incomplete.
    """
    if len(buf) < MBAP_HEADER_LEN:
        return None, buf
    _tid, _pid, length = struct.unpack(">HHH", buf[:MBAP_HEADER_LEN])
    total = MBAP_HEADER_LEN + length
    if len(buf) < total:
        return None, buf
    return buf[:total], buf[total:]


def build_mbap(transaction_id: int, unit_id: int, pdu: bytes) -> bytes:
    length = 1 + len(pdu)
    return struct.pack(">HHHB", transaction_id & 0xFFFF, 0, length, unit_id & 0xFF) + pdu


def build_read_request(unit_id: int, address: int, count: int) -> bytes:
    """Build a read-holding-registers request frame.

    Transaction id is always 0, so only one request may be outstanding per
    connection. Address and count are big-endian whatever the payload byte
    order is.
    """
    pdu = struct.pack(">BHH", READ_FUNC_CODE, address & 0xFFFF, count & 0xFFFF)
    return build_mbap(0, unit_id, pdu)


def check_response(buf: Buffer) -> None:
    """Raise if buf is not a valid read-holding-registers reply.

    ShortResponse if the header is incomplete, ModbusDeviceError if the
    device answered with an exception.
    """
    if len(buf) < READ_RES_HEADER_LEN:
        raise ShortResponse()

    err_code = buf[ERR_CODE_INDEX]
    if err_code != READ_FUNC_CODE:
        raise ModbusDeviceError(err_code, buf[EXC_CODE_INDEX])


@dataclass(frozen=True)
class ReadResponse:
    transaction_id: int
    protocol_id: int
    length: int
    unit_id: int
    function_code: int
    byte_count: int
    payload: bytes


def parse_read_response(buf: Buffer) -> ReadResponse:
    """Check buf and split it into header fields and payload."""
    check_response(buf)
    tid, pid, length, unit_id, fc, byte_count = struct.unpack_from(">HHHBBB", buf, 0)
    return ReadResponse(tid, pid, length, unit_id, fc, byte_count, bytes(buf[READ_RES_HEADER_LEN:]))


class ByteOrder(str, Enum):
    BIG = "big"
    LITTLE = "little"

    @property
    def struct_prefix(self) -> str:
        return ">" if self is ByteOrder.BIG else "<"


class ResponseDecoder:
    """Typed field extraction from a read-holding-registers reply.

    Offsets are relative to the payload, i.e. offset 0 is the first byte after
    the 9-byte header. The byte order is fixed at construction. Decoders
    only read from the buffer, so one instance can be shared between threads.
    """

    check_response = staticmethod(check_response)

    def __init__(self, byte_order: Union[ByteOrder, str] = ByteOrder.BIG):
        self._byte_order = ByteOrder(byte_order)
        prefix = self._byte_order.struct_prefix
        self._structs = {fmt: struct.Struct(prefix + fmt) for fmt in "HhIifQqd"}

    def __repr__(self) -> str:
        return f"ResponseDecoder(byte_order={self._byte_order.value!r})"

    @property
    def byte_order(self) -> ByteOrder:
        return self._byte_order

    def _unpack(self, fmt: str, buf: Buffer, offset: int):
        if offset < 0:
            raise ValueError(f"offset must be >= 0, got {offset}")
        s = self._structs[fmt]
        start = READ_RES_HEADER_LEN + offset
        if len(buf) < start + s.size:
            raise ShortPayload()
        return s.unpack_from(buf, start)[0]

    def uint16(self, buf: Buffer, offset: int = 0) -> int:
        return self._unpack("H", buf, offset)

    def int16(self, buf: Buffer, offset: int = 0) -> int:
        return self._unpack("h", buf, offset)

    def uint32(self, buf: Buffer, offset: int = 0) -> int:
        return self._unpack("I", buf, offset)

    def int32(self, buf: Buffer, offset: int = 0) -> int:
        return self._unpack("i", buf, offset)

    def float32(self, buf: Buffer, offset: int = 0) -> float:
        """IEEE-754 single precision; NaN and infinities are returned as-is."""
        return self._unpack("f", buf, offset)

    def uint64(self, buf: Buffer, offset: int = 0) -> int:
        return self._unpack("Q", buf, offset)

    def int64(self, buf: Buffer, offset: int = 0) -> int:
        return self._unpack("q", buf, offset)

    def float64(self, buf: Buffer, offset: int = 0) -> float:
        """IEEE-754 double precision; NaN and infinities are returned as-is."""
        return self._unpack("d", buf, offset)
