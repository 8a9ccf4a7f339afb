"""
Torilate - HTTP 协议模块

在已经建立的 SOCKS4 隧道上实现最小化的 HTTP/1.1 客户端。

版本: 0.1.2

功能概述:
1. 构造 GET / POST 请求文本
2. 校验调用方提供的附加头部，防止头部注入和请求拆分
3. 将响应读入容量固定的缓冲区
4. 解析状态行

请求格式（头部顺序固定）:
    METHOD path HTTP/1.1
    Host: host[:port]            （端口为 80 时省略）
    User-Agent: Torilate
    <附加头部...>
    Content-Length: n            （仅 POST）
    Connection: close

不支持分块传输、长连接、压缩和 TLS。
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .connection import AddrType, Tunnel, classify_address
from .errors import (
    InvalidArgsError, InvalidHeaderError, MalformedResponseError, NetworkIOError,
)
from .uri import has_line_breaks

logger = logging.getLogger('torilate-http')


# ============================================================================
# 协议常量
# ============================================================================

CRLF = '\r\n'
HTTP_VERSION = 'HTTP/1.1'
USER_AGENT = 'Torilate'
HTTP_MAX_RESPONSE = 8192  # 响应缓冲区容量，最多保存 HTTP_MAX_RESPONSE - 1 字节数据
SUPPORTED_METHODS = ('GET', 'POST')

STATUS_LINE_RE = re.compile(rb'HTTP/\d+(?:\.\d+)?[ \t]+(\d{3})(?![0-9])')


# ============================================================================
# 数据结构
# ============================================================================

@dataclass
class HttpRequestSpec:
    """
    一次 HTTP 请求的描述

    Attributes:
        method: GET 或 POST
        path: 请求路径
        host: 目标主机
        port: 目标端口
        headers: 附加头部行（保持顺序，逐个校验）
        body: 请求体，仅 POST 发送
    """
    method: str
    path: str
    host: str
    port: int = 80
    headers: List[str] = field(default_factory=list)
    body: bytes = b''

    def __post_init__(self):
        self.method = self.method.upper()
        if self.method not in SUPPORTED_METHODS:
            raise InvalidArgsError(f"不支持的请求方法: {self.method}")
        if has_line_breaks(self.path) or has_line_breaks(self.host):
            raise InvalidArgsError(f"请求路径或主机包含非法的控制字符: {self.path!r}")
        if isinstance(self.body, str):
            self.body = self.body.encode('utf-8')
        if self.body is None:
            self.body = b''

    @property
    def host_header(self) -> str:
        host = f"[{self.host}]" if classify_address(self.host) is AddrType.IPV6 else self.host
        return host if self.port == 80 else f"{host}:{self.port}"


@dataclass
class HttpResponse:
    """
    HTTP 响应

    Attributes:
        status_code: 状态码（100-599）
        raw: 收到的原始字节（最多 capacity - 1 字节）
        bytes_received: 实际收到的字节数
        capacity: 缓冲区容量
        truncated: 缓冲区写满后仍有未读取的数据
    """
    status_code: int
    raw: bytes
    bytes_received: int
    capacity: int = HTTP_MAX_RESPONSE
    truncated: bool = False

    def _split(self) -> Tuple[bytes, Optional[bytes]]:
        end = self.raw.find(b'\r\n\r\n')
        if end < 0:
            return self.raw, None
        return self.raw[:end], self.raw[end + 4:]

    @property
    def header_block(self) -> bytes:
        """状态行和头部（不含空行）"""
        return self._split()[0]

    @property
    def body(self) -> bytes:
        """响应体，头部未结束时为空"""
        return self._split()[1] or b''

    @property
    def status_line(self) -> str:
        line = self.raw.lstrip(b' \r\n').split(b'\r\n', 1)[0]
        return line.decode('latin-1')

    def is_redirect(self) -> bool:
        return 300 <= self.status_code < 400


# ============================================================================
# 请求构造
# ============================================================================

def normalize_header(header: str) -> str:
    """
    整理并校验一个附加头部

    去除首尾空白和末尾的 CR/LF 后，若仍包含 CR 或 LF 则拒绝。

    Raises:
        InvalidHeaderError: 头部为空或包含内嵌的 CR/LF
    """
    trimmed = header.strip()
    if not trimmed:
        raise InvalidHeaderError("头部为空")
    if '\r' in trimmed or '\n' in trimmed:
        raise InvalidHeaderError(f"头部包含换行符: {header!r}")
    return trimmed


def build_request(spec: HttpRequestSpec) -> bytes:
    """
    构造完整的请求报文

    Raises:
        InvalidHeaderError: 附加头部校验失败（此时不会发送任何数据）
    """
    extra = []
    for header in spec.headers:
        try:
            extra.append(normalize_header(header))
        except InvalidHeaderError as e:
            raise e.propagate(f"无效的头部: {header!r}")

    lines = [
        f"{spec.method} {spec.path} {HTTP_VERSION}",
        f"Host: {spec.host_header}",
        f"User-Agent: {USER_AGENT}",
    ]
    lines.extend(extra)
    if spec.method == 'POST':
        lines.append(f"Content-Length: {len(spec.body)}")
    lines.append("Connection: close")

    head = (CRLF.join(lines) + CRLF + CRLF).encode('utf-8', 'surrogateescape')
    if spec.method == 'POST':
        return head + spec.body
    return head


# ============================================================================
# 响应读取
# ============================================================================

def parse_status_code(raw: bytes) -> int:
    """
    解析状态行中的状态码

    跳过开头的空白和 CR/LF，要求以 "HTTP/" 开头，随后是版本号和 3 位状态码。

    Raises:
        MalformedResponseError: 状态行无法解析或状态码不在 100-599 之间
    """
    match = STATUS_LINE_RE.match(raw.lstrip(b' \r\n'))
    if not match:
        raise MalformedResponseError("响应头格式错误: 无法解析状态码")
    code = int(match.group(1))
    if not 100 <= code <= 599:
        raise MalformedResponseError(f"响应头格式错误: 状态码 {code} 超出范围")
    return code


def recv_response(tunnel: Tunnel, capacity: int = HTTP_MAX_RESPONSE) -> HttpResponse:
    """
    读取响应直到缓冲区写满或对端关闭连接

    缓冲区最多保存 capacity - 1 字节数据，超出的部分被丢弃。
    写满后仍有数据到达时 truncated 为 True，恰好写满后对端关闭则不算截断。

    Raises:
        NetworkRecvError: 读取失败
        MalformedResponseError: 状态行无法解析
    """
    limit = capacity - 1
    buf = bytearray()
    while len(buf) < limit:
        chunk = tunnel.recv_once(limit - len(buf))
        if not chunk:
            break
        buf += chunk

    raw = bytes(buf)
    truncated = False
    if len(raw) >= limit:
        # 缓冲区写满后再读 1 字节，区分恰好写满和确实有剩余数据
        truncated = bool(tunnel.recv_once(1))
    if truncated:
        logger.warning(f"响应超过缓冲区容量 {capacity} 字节，已截断为 {len(raw)} 字节")

    status = parse_status_code(raw)
    logger.debug(f"收到响应: status={status}, bytes={len(raw)}")
    return HttpResponse(
        status_code=status,
        raw=raw,
        bytes_received=len(raw),
        capacity=capacity,
        truncated=truncated,
    )


def send_request(tunnel: Tunnel, spec: HttpRequestSpec,
                 capacity: int = HTTP_MAX_RESPONSE) -> HttpResponse:
    """
    发送请求并读取响应

    Args:
        tunnel: 已完成 SOCKS4 握手的隧道
        spec: 请求描述
        capacity: 响应缓冲区容量

    Returns:
        HttpResponse: 完整读取的响应
    """
    request = build_request(spec)
    logger.info(f"{spec.method} {spec.path} -> {spec.host_header}")
    tunnel.send_all(request)

    try:
        return recv_response(tunnel, capacity)
    except NetworkIOError as e:
        raise e.propagate("接收 HTTP 响应失败")
