"""
Torilate - 错误定义模块

版本: 0.1.2

功能概述:
本模块定义了 Torilate 使用的全部异常类型和错误码。

错误传播约定:
1. 底层创建带有错误码和描述的异常
2. 上层捕获后通过 propagate() 追加上下文，保持异常类型不变
3. 最终由命令行层决定显示简要（仅最外层上下文）还是完整的错误链

示例:
    try:
        tunnel = Tunnel.connect(proxy.host, proxy.port)
    except TorilateError as e:
        raise e.propagate(f"无法连接到 TOR {proxy.host}:{proxy.port}")
"""

from enum import IntEnum
from typing import List, Optional


PROG_NAME = "torilate"


# ============================================================================
# 错误码
# ============================================================================

class ErrorCode(IntEnum):
    """
    错误码枚举

    同时作为命令行进程的退出码使用。
    """
    SUCCESS = 0

    NO_ARGS = 1
    INVALID_ARGS = 2
    INVALID_COMMAND = 3

    NETWORK_IO = 4
    INVALID_ADDRESS = 5
    NET_RECV_FAILED = 6
    SOCK_INIT_FAILED = 7
    CONNECTION_FAILED = 8
    TOR_CONNECTION_FAILED = 9
    SOCKET_CREATION_FAILED = 10
    ADDRESS_RESOLUTION_FAILED = 11

    INVALID_URI = 12
    BAD_RESPONSE = 13
    INVALID_SCHEMA = 14
    INVALID_HEADER = 15
    HTTP_REQUEST_FAILED = 16
    HTTP_REDIRECT_LIMIT = 17
    HTTP_REDIRECT_FAILED = 18

    IO = 19
    OUTOFMEMORY = 20
    NO_PERMISSION = 21
    FILE_NOT_FOUND = 22

    UNKNOWN = 23


BASE_MESSAGES = {
    ErrorCode.SUCCESS: "无错误",
    ErrorCode.NO_ARGS: "未提供参数",
    ErrorCode.INVALID_ARGS: "无效的参数",
    ErrorCode.INVALID_COMMAND: "无效的命令",
    ErrorCode.NETWORK_IO: "网络 I/O 错误",
    ErrorCode.INVALID_ADDRESS: "无效的网络地址",
    ErrorCode.NET_RECV_FAILED: "从套接字接收数据失败",
    ErrorCode.SOCK_INIT_FAILED: "套接字子系统初始化失败",
    ErrorCode.CONNECTION_FAILED: "连接目标主机失败",
    ErrorCode.TOR_CONNECTION_FAILED: "连接 TOR 代理失败",
    ErrorCode.SOCKET_CREATION_FAILED: "创建套接字失败",
    ErrorCode.ADDRESS_RESOLUTION_FAILED: "地址解析失败",
    ErrorCode.INVALID_URI: "无效的 URL",
    ErrorCode.BAD_RESPONSE: "响应格式错误",
    ErrorCode.INVALID_SCHEMA: "不支持的 URL 协议",
    ErrorCode.INVALID_HEADER: "无效的 HTTP 头部",
    ErrorCode.HTTP_REQUEST_FAILED: "HTTP 请求失败",
    ErrorCode.HTTP_REDIRECT_LIMIT: "超过最大重定向次数",
    ErrorCode.HTTP_REDIRECT_FAILED: "跟随 HTTP 重定向失败",
    ErrorCode.IO: "I/O 错误",
    ErrorCode.OUTOFMEMORY: "内存不足",
    ErrorCode.NO_PERMISSION: "权限不足",
    ErrorCode.FILE_NOT_FOUND: "文件未找到",
    ErrorCode.UNKNOWN: "未知错误",
}


def get_base_message(code: int) -> str:
    """根据错误码获取基础描述，未知错误码返回“未知错误”"""
    try:
        return BASE_MESSAGES[ErrorCode(code)]
    except ValueError:
        return BASE_MESSAGES[ErrorCode.UNKNOWN]


# ============================================================================
# 异常基类
# ============================================================================

class TorilateError(Exception):
    """
    Torilate 异常基类

    每个异常携带一个错误码和一条上下文链。上下文链从最外层到最内层排列，
    最后一个元素是创建异常时的原始描述。

    Attributes:
        code: 错误码
        chain: 上下文链（外层在前）
    """
    code = ErrorCode.UNKNOWN

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.chain: List[str] = [message] if message else []

    def propagate(self, context: str) -> 'TorilateError':
        """
        为异常追加一层上下文

        异常类型和错误码保持不变，返回自身以便直接 raise。

        Args:
            context: 上层正在执行的操作描述

        Returns:
            TorilateError: 自身
        """
        if context:
            self.chain.insert(0, context)
        return self

    @property
    def message(self) -> str:
        return ": ".join(self.chain)

    @property
    def top_level(self) -> str:
        return self.chain[0] if self.chain else ""

    def format(self, verbose: bool = False) -> str:
        """
        格式化为面向用户的错误文本

        Args:
            verbose: True 显示完整错误链，False 仅显示最外层上下文

        Returns:
            str: 形如 "torilate: (9) 连接 TOR 代理失败: ..." 的文本
        """
        text = self.message if verbose else self.top_level
        base = get_base_message(self.code)
        if text:
            return f"{PROG_NAME}: ({int(self.code)}) {base}: {text}"
        return f"{PROG_NAME}: ({int(self.code)}) {base}"

    def __str__(self) -> str:
        return self.message


# ============================================================================
# 命令行与配置
# ============================================================================

class NoArgsError(TorilateError):
    code = ErrorCode.NO_ARGS


class InvalidArgsError(TorilateError):
    code = ErrorCode.INVALID_ARGS


class InvalidCommandError(TorilateError):
    code = ErrorCode.INVALID_COMMAND


# ============================================================================
# 网络传输
# ============================================================================

class AddressError(TorilateError):
    code = ErrorCode.ADDRESS_RESOLUTION_FAILED


class InvalidAddressError(AddressError):
    code = ErrorCode.INVALID_ADDRESS


class NetworkInitError(TorilateError):
    code = ErrorCode.SOCK_INIT_FAILED


class SocketCreateError(TorilateError):
    code = ErrorCode.SOCKET_CREATION_FAILED


class ConnectError(TorilateError):
    """
    连接失败

    Attributes:
        errno: 底层操作系统错误码（可能为 None）
    """
    code = ErrorCode.TOR_CONNECTION_FAILED

    def __init__(self, message: str = "", errno: Optional[int] = None):
        super().__init__(message)
        self.errno = errno


class NetworkIOError(TorilateError):
    """
    发送或接收失败

    Attributes:
        bytes_sent: 失败前已成功发送的字节数（接收失败时为 0）
        errno: 底层操作系统错误码（可能为 None）
    """
    code = ErrorCode.NETWORK_IO

    def __init__(self, message: str = "", bytes_sent: int = 0, errno: Optional[int] = None):
        super().__init__(message)
        self.bytes_sent = bytes_sent
        self.errno = errno


class NetworkRecvError(NetworkIOError):
    code = ErrorCode.NET_RECV_FAILED


# ============================================================================
# SOCKS4 协议
# ============================================================================

class ProtocolError(TorilateError):
    code = ErrorCode.CONNECTION_FAILED


class ConnectionRejectedError(ProtocolError):
    """
    SOCKS4 代理拒绝了 CONNECT 请求

    Attributes:
        status: 代理返回的状态码（91/92/93）
        host: 目标主机
        port: 目标端口
    """

    def __init__(self, message: str, status: int, host: str, port: int):
        super().__init__(message)
        self.status = status
        self.host = host
        self.port = port


# ============================================================================
# HTTP 与 URL
# ============================================================================

class InvalidURIError(TorilateError):
    code = ErrorCode.INVALID_URI


class InvalidHeaderError(TorilateError):
    code = ErrorCode.INVALID_HEADER


class MalformedResponseError(TorilateError):
    code = ErrorCode.BAD_RESPONSE


class RedirectFailedError(TorilateError):
    code = ErrorCode.HTTP_REDIRECT_FAILED


class RedirectLimitExceededError(TorilateError):
    code = ErrorCode.HTTP_REDIRECT_LIMIT


# ============================================================================
# 本地资源
# ============================================================================

class ResourceError(TorilateError):
    code = ErrorCode.IO


class FileIOError(ResourceError):
    code = ErrorCode.IO


class OutOfMemoryError(ResourceError):
    code = ErrorCode.OUTOFMEMORY


class PermissionDeniedError(ResourceError):
    code = ErrorCode.NO_PERMISSION


class FileMissingError(ResourceError):
    code = ErrorCode.FILE_NOT_FOUND
