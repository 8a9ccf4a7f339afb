#!/usr/bin/env python3
"""
测试用的假 TOR 代理

在回环地址上监听，按连接顺序执行预先排好的脚本:
1. 读取并记录 SOCKS4 CONNECT 请求（含 SOCKS4a 域名）
2. 返回脚本指定的 SOCKS4 应答
3. 应答为 90 时读取并记录 HTTP 请求
4. 返回脚本指定的 HTTP 响应后关闭连接

脚本队列为空时返回默认的 200 响应。
"""

import socket
import struct
import threading
from collections import deque
from dataclasses import dataclass
from typing import List, Optional

GRANTED = bytes([0, 90, 0, 0, 0, 0, 0, 0])
DEFAULT_RESPONSE = b"HTTP/1.1 200 OK\r\nContent-Length: 5\r\n\r\nhello"


def socks_reply(status: int, version: int = 0) -> bytes:
    return bytes([version, status, 0, 0, 0, 0, 0, 0])


def http_response(status: int, reason: str = "OK", headers: Optional[List[str]] = None,
                  body: bytes = b"") -> bytes:
    lines = [f"HTTP/1.1 {status} {reason}"]
    lines.extend(headers or [])
    lines.append(f"Content-Length: {len(body)}")
    return ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1") + body


def redirect(status: int, location: str) -> 'Script':
    return Script(response=http_response(status, "Redirect", [f"Location: {location}"]))


@dataclass
class Script:
    """
    单个连接的行为

    Attributes:
        reply: SOCKS4 应答（可以故意截断）
        response: HTTP 响应
        chunk_size: 分块发送响应（None 表示一次发送）
    """
    reply: bytes = GRANTED
    response: bytes = DEFAULT_RESPONSE
    chunk_size: Optional[int] = None


@dataclass
class Captured:
    """一个连接上收到的内容"""
    version: int = 0
    command: int = 0
    port: int = 0
    ip: bytes = b""
    user_id: bytes = b""
    domain: Optional[bytes] = None
    socks_raw: bytes = b""
    http_request: bytes = b""

    @property
    def request_line(self) -> str:
        return self.http_request.split(b"\r\n", 1)[0].decode("latin-1")

    @property
    def method(self) -> str:
        return self.request_line.split(" ", 1)[0]

    @property
    def path(self) -> str:
        return self.request_line.split(" ")[1]

    @property
    def headers(self) -> List[str]:
        head = self.http_request.split(b"\r\n\r\n", 1)[0].decode("latin-1")
        return head.split("\r\n")[1:]

    @property
    def body(self) -> bytes:
        parts = self.http_request.split(b"\r\n\r\n", 1)
        return parts[1] if len(parts) > 1 else b""

    def header(self, name: str) -> Optional[str]:
        prefix = name.lower() + ":"
        for line in self.headers:
            if line.lower().startswith(prefix):
                return line.split(":", 1)[1].strip()
        return None


class FakeTorProxy:
    """线程化的假 SOCKS4 代理 + HTTP 服务端"""

    def __init__(self, host: str = "127.0.0.1"):
        self.host = host
        self.port = 0
        self.scripts = deque()
        self.captured: List[Captured] = []
        self._sock: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._running = False

    def queue(self, *scripts: Script) -> 'FakeTorProxy':
        self.scripts.extend(scripts)
        return self

    @property
    def connections(self) -> int:
        return len(self.captured)

    def start(self):
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._sock.bind((self.host, 0))
        self._sock.listen(16)
        self._sock.settimeout(0.1)
        self.port = self._sock.getsockname()[1]
        self._running = True
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    def stop(self):
        self._running = False
        if self._thread:
            self._thread.join(timeout=2)
            self._thread = None
        if self._sock:
            self._sock.close()
            self._sock = None

    def __enter__(self) -> 'FakeTorProxy':
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False

    def _serve(self):
        while self._running:
            try:
                conn, _ = self._sock.accept()
            except socket.timeout:
                continue
            except OSError:
                break
            script = self.scripts.popleft() if self.scripts else Script()
            try:
                conn.settimeout(5)
                self._handle(conn, script)
            except OSError:
                pass
            finally:
                conn.close()

    def _handle(self, conn: socket.socket, script: Script):
        captured = Captured()
        self.captured.append(captured)

        header = _recv_exact(conn, 8)
        if len(header) < 8:
            return
        captured.version, captured.command = header[0], header[1]
        captured.port = struct.unpack(">H", header[2:4])[0]
        captured.ip = header[4:8]
        captured.user_id = _recv_until_nul(conn)
        raw = header + captured.user_id + b"\x00"
        if captured.ip[:3] == b"\x00\x00\x00" and captured.ip[3] != 0:
            captured.domain = _recv_until_nul(conn)
            raw += captured.domain + b"\x00"
        captured.socks_raw = raw

        conn.sendall(script.reply)
        if len(script.reply) < 8 or script.reply[1] != 90:
            return

        captured.http_request = _recv_http_request(conn)

        data = script.response
        if script.chunk_size:
            for i in range(0, len(data), script.chunk_size):
                conn.sendall(data[i:i + script.chunk_size])
        else:
            conn.sendall(data)


def _recv_exact(conn: socket.socket, size: int) -> bytes:
    data = b""
    while len(data) < size:
        chunk = conn.recv(size - len(data))
        if not chunk:
            break
        data += chunk
    return data


def _recv_until_nul(conn: socket.socket) -> bytes:
    data = b""
    while True:
        ch = conn.recv(1)
        if not ch or ch == b"\x00":
            return data
        data += ch


def _recv_http_request(conn: socket.socket) -> bytes:
    data = b""
    while b"\r\n\r\n" not in data:
        chunk = conn.recv(4096)
        if not chunk:
            return data
        data += chunk

    head, _, body = data.partition(b"\r\n\r\n")
    length = 0
    for line in head.split(b"\r\n")[1:]:
        name, _, value = line.partition(b":")
        if name.strip().lower() == b"content-length":
            length = int(value.strip())
    while len(body) < length:
        chunk = conn.recv(length - len(body))
        if not chunk:
            break
        body += chunk
    return head + b"\r\n\r\n" + body
