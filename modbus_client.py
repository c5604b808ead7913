"""
Modbus TCP client for reading holding registers.

Sends FC03 requests built by modbus_tcp over a plain TCP socket and hands
the reply back untouched; decoding is done with ResponseDecoder.

Command line:
  python modbus_client.py --host 127.0.0.1 --port 1502 --addr 0 --count 4 --type float32
"""

from __future__ import annotations

import argparse
import logging
import socket
import sys
import time
from datetime import datetime
from typing import Optional, Protocol, Union, runtime_checkable

from modbus_exceptions import ModbusDeviceError, ModbusError, NotConnected
from modbus_tcp import (
    Buffer,
    ByteOrder,
    ResponseDecoder,
    build_read_request,
    frame_from_stream_buffer,
    hexdump,
    parse_read_response,
)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 502
DEFAULT_TIMEOUT = 5.0
RECV_SIZE = 4096

log = logging.getLogger("modbus_client")

Deadline = Union[float, datetime, None]


@runtime_checkable
class Client(Protocol):
    """Operations a holding-register client offers its callers."""

    def connect(self) -> None: ...

    def set_deadline(self, deadline: Deadline) -> None: ...

    def read_into(self, buf: Union[bytearray, memoryview], unit_id: int, address: int, count: int) -> int: ...

    def read(self, unit_id: int, address: int, count: int) -> bytes: ...

    def close(self) -> None: ...

    def check_response(self, buf: Buffer) -> None: ...

    def uint16(self, buf: Buffer, offset: int = 0) -> int: ...

    def int16(self, buf: Buffer, offset: int = 0) -> int: ...

    def uint32(self, buf: Buffer, offset: int = 0) -> int: ...

    def int32(self, buf: Buffer, offset: int = 0) -> int: ...

    def float32(self, buf: Buffer, offset: int = 0) -> float: ...

    def uint64(self, buf: Buffer, offset: int = 0) -> int: ...

    def int64(self, buf: Buffer, offset: int = 0) -> int: ...

    def float64(self, buf: Buffer, offset: int = 0) -> float: ...


class ModbusClient:
    """Holding-register client over one exclusively owned TCP connection.

    The request transaction id is always 0, so requests on one client must
    be issued one at a time.
    """

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        timeout: float = DEFAULT_TIMEOUT,
        byte_order: Union[ByteOrder, str] = ByteOrder.BIG,
    ):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.decoder = ResponseDecoder(byte_order)
        self._sock: Optional[socket.socket] = None
        self._deadline: Optional[float] = None
        self._rx = b""

    def __repr__(self) -> str:
        return (
            f"ModbusClient(host={self.host!r}, port={self.port}, timeout={self.timeout}, "
            f"byte_order={self.byte_order.value!r})"
        )

    def __enter__(self) -> "ModbusClient":
        self.connect()
        return self

    def __exit__(self, *exc_info) -> None:
        if self.is_connected:
            self.close()

    @property
    def byte_order(self) -> ByteOrder:
        return self.decoder.byte_order

    @property
    def is_connected(self) -> bool:
        return self._sock is not None

    def connect(self) -> None:
        s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        s.settimeout(self.timeout)
        try:
            s.connect((self.host, self.port))
        except OSError:
            s.close()
            raise
        if self._sock is not None:
            self._sock.close()
        self._sock = s
        self._deadline = None
        self._rx = b""
        log.info(f"Connected to {self.host}:{self.port}")

    def set_deadline(self, deadline: Deadline) -> None:
        """Set an absolute deadline for all following I/O; None clears it.

        Accepts epoch seconds or a datetime. Once the deadline has passed,
        reads raise TimeoutError.
        """
        self._require_sock()
        if isinstance(deadline, datetime):
            deadline = deadline.timestamp()
        self._deadline = deadline

    def read_into(self, buf: Union[bytearray, memoryview], unit_id: int, address: int, count: int) -> int:
        """Send a read request and do a single receive into buf.

        Returns the number of bytes received, which may be less than a full
        frame on a slow link. Use read() to get exactly one frame. Bytes
        buffered by an earlier read() are dropped.
        """
        sock = self._send_request(unit_id, address, count)
        n = sock.recv_into(buf)
        log.debug(f"[RECV] bytes={n} hex={hexdump(memoryview(buf)[:n])}")
        return n

    def read(self, unit_id: int, address: int, count: int) -> bytes:
        """Send a read request and return the complete reply frame.

        A partially received frame is discarded if the read fails.
        """
        sock = self._send_request(unit_id, address, count)
        try:
            while True:
                frame, self._rx = frame_from_stream_buffer(self._rx)
                if frame is not None:
                    return frame

                self._apply_deadline(sock)
                data = sock.recv(RECV_SIZE)
                if not data:
                    raise ConnectionError("server closed")
                log.debug(f"[RECV] bytes={len(data)} hex={hexdump(data)}")
                self._rx += data
        except BaseException:
            self._rx = b""
            raise

    def close(self) -> None:
        sock = self._require_sock()
        self._sock = None
        self._rx = b""
        sock.close()
        log.info(f"Closed connection to {self.host}:{self.port}")

    # Decoding, delegated to self.decoder.

    def check_response(self, buf: Buffer) -> None:
        self.decoder.check_response(buf)

    def uint16(self, buf: Buffer, offset: int = 0) -> int:
        return self.decoder.uint16(buf, offset)

    def int16(self, buf: Buffer, offset: int = 0) -> int:
        return self.decoder.int16(buf, offset)

    def uint32(self, buf: Buffer, offset: int = 0) -> int:
        return self.decoder.uint32(buf, offset)

    def int32(self, buf: Buffer, offset: int = 0) -> int:
        return self.decoder.int32(buf, offset)

    def float32(self, buf: Buffer, offset: int = 0) -> float:
        return self.decoder.float32(buf, offset)

    def uint64(self, buf: Buffer, offset: int = 0) -> int:
        return self.decoder.uint64(buf, offset)

    def int64(self, buf: Buffer, offset: int = 0) -> int:
        return self.decoder.int64(buf, offset)

    def float64(self, buf: Buffer, offset: int = 0) -> float:
        return self.decoder.float64(buf, offset)

    def _require_sock(self) -> socket.socket:
        if self._sock is None:
            raise NotConnected()
        return self._sock

    def _apply_deadline(self, sock: socket.socket) -> None:
        if self._deadline is None:
            sock.settimeout(self.timeout)
            return
        remaining = self._deadline - time.time()
        if remaining <= 0:
            raise TimeoutError("deadline exceeded")
        sock.settimeout(remaining)

    def _send_request(self, unit_id: int, address: int, count: int) -> socket.socket:
        sock = self._require_sock()
        req = build_read_request(unit_id, address, count)
        # One outstanding request per connection: leftovers belong to an older reply.
        self._rx = b""
        self._apply_deadline(sock)
        sock.sendall(req)
        log.debug(f"[SEND] unit={unit_id} addr={address} count={count} hex={hexdump(req)}")
        return sock


TYPE_WIDTHS = {
    "uint16": 2,
    "int16": 2,
    "uint32": 4,
    "int32": 4,
    "float32": 4,
    "uint64": 8,
    "int64": 8,
    "float64": 8,
}


def main(argv: Optional[list] = None) -> int:
    ap = argparse.ArgumentParser(description="Read Modbus TCP holding registers (FC03)")
    ap.add_argument("--host", default=DEFAULT_HOST)
    ap.add_argument("--port", type=int, default=DEFAULT_PORT)
    ap.add_argument("--unit-id", type=int, default=1)
    ap.add_argument("--addr", type=int, default=0, help="Start register address (0-based)")
    ap.add_argument("--count", type=int, default=1, help="Number of registers to read")
    ap.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT, help="Connect/IO timeout in seconds")
    ap.add_argument("--byte-order", choices=[b.value for b in ByteOrder], default=ByteOrder.BIG.value)
    ap.add_argument("--type", choices=[*TYPE_WIDTHS, "raw"], default="uint16", help="How to decode the payload")
    ap.add_argument("-v", "--verbose", action="store_true", help="Log request/response frames")
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s | %(levelname)s | %(message)s",
    )

    client = ModbusClient(args.host, port=args.port, timeout=args.timeout, byte_order=args.byte_order)
    try:
        with client:
            frame = client.read(args.unit_id, args.addr, args.count)
        resp = parse_read_response(frame)
    except ModbusDeviceError as exc:
        log.warning(f"Device exception reply: {exc}")
        return 1
    except (ModbusError, OSError) as exc:
        log.error(f"Read HR{args.addr} failed: {exc}")
        return 1

    print(f"Read HR (unit_id={resp.unit_id}, addr={args.addr}, count={args.count}, bytes={resp.byte_count}):")
    if args.type == "raw":
        print(f"  {hexdump(resp.payload)}")
        return 0

    extract = getattr(client, args.type)
    width = TYPE_WIDTHS[args.type]
    if len(resp.payload) < width:
        log.error(f"Payload has {len(resp.payload)} bytes, {args.type} needs {width}; raise --count")
        return 1
    for offset in range(0, len(resp.payload) - width + 1, width):
        print(f"  HR{args.addr + offset // 2} = {extract(frame, offset)} ({args.type})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
