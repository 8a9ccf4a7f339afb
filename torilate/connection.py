"""
Torilate - 网络传输模块

本模块封装了 Torilate 使用的全部套接字操作，对上层隐藏操作系统细节。

主要功能:
- 网络子系统的初始化和清理
- 地址字面量分类（IPv4 / IPv6 / 域名）
- 网络字节序转换
- 隧道（Tunnel）：连接、完整发送、单次接收、关闭

所有操作均为同步阻塞调用，不设置超时。

版本: 0.1.2
"""

import logging
import socket
import struct
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional

from .errors import (
    ConnectError, InvalidAddressError, NetworkInitError, NetworkIOError,
    NetworkRecvError, SocketCreateError,
)

logger = logging.getLogger('torilate-connection')


# ============================================================================
# 网络子系统
# ============================================================================

_network_ready = False


def init_network():
    """
    初始化网络子系统

    进程级的一次性初始化，必须在任何隧道操作之前调用。重复调用无副作用。
    """
    global _network_ready
    if _network_ready:
        return
    if not hasattr(socket, 'socket'):
        raise NetworkInitError("当前平台不支持套接字")
    _network_ready = True
    logger.debug("网络子系统已初始化")


def cleanup_network():
    """清理网络子系统，重复调用无副作用"""
    global _network_ready
    if _network_ready:
        _network_ready = False
        logger.debug("网络子系统已清理")


def network_ready() -> bool:
    return _network_ready


@contextmanager
def network_session() -> Iterator[None]:
    """
    在 with 块内保持网络子系统可用

    Example:
        >>> with network_session():
        ...     response = perform(options)
    """
    init_network()
    try:
        yield
    finally:
        cleanup_network()


# ============================================================================
# 地址分类
# ============================================================================

class AddrType(Enum):
    """主机地址类型"""
    IPV4 = "ipv4"
    IPV6 = "ipv6"
    DOMAIN = "domain"


def classify_address(text: str) -> AddrType:
    """
    判断地址文本的类型

    依次尝试严格的 IPv4 和 IPv6 字面量解析，其余一律视为域名，
    不做进一步校验（无效域名会在代理端表现为连接失败）。

    Args:
        text: 地址文本

    Returns:
        AddrType: 地址类型
    """
    try:
        socket.inet_pton(socket.AF_INET, text)
        return AddrType.IPV4
    except (OSError, ValueError):
        pass
    try:
        socket.inet_pton(socket.AF_INET6, text)
        return AddrType.IPV6
    except (OSError, ValueError):
        pass
    return AddrType.DOMAIN


@dataclass(frozen=True)
class Address:
    """
    已解析的目标地址

    Attributes:
        text: 主机文本（IP 字面量或域名）
        port: 端口
        kind: 地址类型
    """
    text: str
    port: int
    kind: AddrType

    @classmethod
    def from_host(cls, text: str, port: int) -> 'Address':
        return cls(text=text, port=port, kind=classify_address(text))

    @property
    def literal(self) -> Optional[AddrType]:
        """IP 字面量的类型，域名返回 None"""
        return None if self.kind is AddrType.DOMAIN else self.kind

    def __str__(self) -> str:
        if self.kind is AddrType.IPV6:
            return f"[{self.text}]:{self.port}"
        return f"{self.text}:{self.port}"


# ============================================================================
# 字节序转换（仅用于 SOCKS4 端口和 IP 字段）
# ============================================================================

def hton16(value: int) -> bytes:
    return struct.pack('>H', value)


def ntoh16(data: bytes) -> int:
    return struct.unpack('>H', data[:2])[0]


def hton32(value: int) -> bytes:
    return struct.pack('>I', value)


def ntoh32(data: bytes) -> int:
    return struct.unpack('>I', data[:4])[0]


def pack_ipv4(text: str) -> bytes:
    """
    将点分十进制 IPv4 地址编码为 4 字节网络序

    Raises:
        InvalidAddressError: 不是合法的 IPv4 字面量
    """
    try:
        return socket.inet_pton(socket.AF_INET, text)
    except (OSError, ValueError):
        raise InvalidAddressError(f"无效的 IPv4 地址格式: '{text}'")


# ============================================================================
# 隧道
# ============================================================================

class Tunnel:
    """
    隧道 - 对单个 TCP 套接字的独占封装

    生命周期:
        1. Tunnel.connect() 创建并连接
        2. 完成一次 SOCKS4 握手和一次 HTTP 交换
        3. close() 销毁（幂等）

    隧道不会在重定向之间复用，每一跳都会创建新的隧道。
    支持 with 语句，保证在任何退出路径上关闭套接字。

    Attributes:
        host: 连接的地址
        port: 连接的端口
        bytes_sent: 累计发送字节数
        bytes_recv: 累计接收字节数
    """

    def __init__(self, sock: Optional[socket.socket] = None, host: str = "", port: int = 0):
        self._sock = sock
        self.host = host
        self.port = port
        self.bytes_sent = 0
        self.bytes_recv = 0

    @classmethod
    def connect(cls, address: str, port: int) -> 'Tunnel':
        """
        创建流式套接字并连接到指定的字面量地址

        该层只用于拨号代理本身固定的回环地址，因此只接受 IP 字面量。

        Args:
            address: IPv4 或 IPv6 字面量
            port: 端口

        Returns:
            Tunnel: 已连接的隧道

        Raises:
            NetworkInitError: 网络子系统未初始化
            InvalidAddressError: 地址不是 IP 字面量
            SocketCreateError: 无法分配本地套接字
            ConnectError: 连接失败，携带操作系统错误码
        """
        if not _network_ready:
            raise NetworkInitError("网络子系统未初始化")

        kind = classify_address(address)
        if kind is AddrType.IPV4:
            family = socket.AF_INET
        elif kind is AddrType.IPV6:
            family = socket.AF_INET6
        else:
            raise InvalidAddressError(f"无法用于拨号的地址: '{address}'")

        try:
            sock = socket.socket(family, socket.SOCK_STREAM)
        except OSError as e:
            raise SocketCreateError(f"套接字创建失败 (errno: {e.errno})")

        try:
            sock.connect((address, port))
        except OSError as e:
            sock.close()
            raise ConnectError(f"连接 {address}:{port} 失败 (errno: {e.errno})", errno=e.errno)

        logger.debug(f"已连接到 {address}:{port}")
        return cls(sock, address, port)

    @property
    def closed(self) -> bool:
        return self._sock is None

    def fileno(self) -> int:
        return -1 if self._sock is None else self._sock.fileno()

    def send_all(self, data: bytes):
        """
        循环写入直到所有字节都被操作系统接受

        任何一次写入出错都会立即中止，不重试。

        Raises:
            NetworkIOError: 写入失败，bytes_sent 为失败前已发送的字节数
        """
        if self._sock is None:
            raise NetworkIOError("隧道已关闭", bytes_sent=0)

        view = memoryview(data)
        sent = 0
        while sent < len(view):
            try:
                n = self._sock.send(view[sent:])
            except OSError as e:
                raise NetworkIOError(
                    f"发送失败，已发送 {sent}/{len(view)} 字节 (errno: {e.errno})",
                    bytes_sent=sent, errno=e.errno
                )
            sent += n
        self.bytes_sent += sent
        logger.debug(f"发送 {sent} 字节到 {self.host}:{self.port}")

    def recv_once(self, max_len: int) -> bytes:
        """
        单次阻塞读取

        Args:
            max_len: 本次最多读取的字节数

        Returns:
            bytes: 读取到的数据，空字节串表示对端已关闭连接

        Raises:
            NetworkRecvError: 读取失败
        """
        if self._sock is None:
            raise NetworkRecvError("隧道已关闭")
        try:
            data = self._sock.recv(max_len)
        except OSError as e:
            raise NetworkRecvError(f"接收失败 (errno: {e.errno})", errno=e.errno)
        self.bytes_recv += len(data)
        return data

    def close(self):
        """关闭隧道，可重复调用，对未打开的隧道也是安全的"""
        sock, self._sock = self._sock, None
        if sock is None:
            return
        try:
            sock.close()
        except OSError as e:
            logger.debug(f"关闭套接字出错: {e}")
        logger.debug(f"隧道已关闭: {self.host}:{self.port}, "
                     f"sent={self.bytes_sent}, recv={self.bytes_recv}")

    def __enter__(self) -> 'Tunnel':
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
