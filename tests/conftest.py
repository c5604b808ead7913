"""Pytest fixtures: a loopback TCP device answering FC03 requests."""

from __future__ import annotations

import socket
import socketserver
import threading
from typing import List, Optional

import pytest

REQUEST_LEN = 12


def _recv_exact(sock: socket.socket, size: int) -> Optional[bytes]:
    data = b""
    while len(data) < size:
        chunk = sock.recv(size - len(data))
        if not chunk:
            return None
        data += chunk
    return data


class FakeDevice:
    """Records each request and answers with a canned reply.

    The reply is sent as the given chunks, one sendall() per chunk. With
    close_after_reply the connection is dropped after the first answer.
    Entries queued in replies are used first, one per request, before
    falling back to reply_chunks.
    """

    def __init__(self) -> None:
        self.host = ""
        self.port = 0
        self.requests: List[bytes] = []
        self.reply_chunks: List[bytes] = []
        self.close_after_reply = False
        self.replies: List[List[bytes]] = []

    @property
    def reply(self) -> bytes:
        return b"".join(self.reply_chunks)

    @reply.setter
    def reply(self, value: bytes) -> None:
        self.reply_chunks = [value]


@pytest.fixture
def fake_device():
    device = FakeDevice()

    class Handler(socketserver.BaseRequestHandler):
        def handle(self) -> None:
            while True:
                req = _recv_exact(self.request, REQUEST_LEN)
                if req is None:
                    return
                device.requests.append(req)
                chunks = device.replies.pop(0) if device.replies else device.reply_chunks
                for chunk in chunks:
                    self.request.sendall(chunk)
                if device.close_after_reply:
                    return

    server = socketserver.ThreadingTCPServer(("127.0.0.1", 0), Handler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    device.host, device.port = server.server_address
    try:
        yield device
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)


@pytest.fixture
def closed_port() -> int:
    """A local port with nothing listening on it."""
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port
