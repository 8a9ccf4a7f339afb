"""
Torilate - SOCKS4 客户端模块

本模块实现了 SOCKS4 CONNECT 命令的客户端部分，以及 SOCKS4a 的域名扩展。

参考:
    https://www.openssh.org/txt/socks4.protocol
    https://www.openssh.org/txt/socks4a.protocol

请求格式:
┌──────┬──────┬──────────┬──────────┬────────────────┬──────────────────────┐
│ VN=4 │ CD=1 │ DSTPORT  │ DSTIP    │ USERID + NUL   │ [DOMAIN + NUL]       │
│ 1字节│ 1字节│ 2字节    │ 4字节    │ 可变长度       │ 仅当目标为域名时     │
└──────┴──────┴──────────┴──────────┴────────────────┴──────────────────────┘

应答格式（固定 8 字节）:
┌──────┬──────┬────────────────────┐
│ VN=0 │ CD   │ 忽略（6 字节）     │
└──────┴──────┴────────────────────┘

所有多字节字段使用大端序（网络字节序）。
"""

import logging

from .connection import AddrType, Tunnel, classify_address, hton16, pack_ipv4
from .errors import ConnectionRejectedError, InvalidAddressError, InvalidArgsError, ProtocolError

logger = logging.getLogger('torilate-socks4')


# ============================================================================
# SOCKS4 协议常量
# ============================================================================

class SOCKS4:
    """
    SOCKS4 协议常量定义

    只实现 CONNECT 命令，不支持 BIND。
    """
    VERSION = 0x04
    CMD_CONNECT = 0x01
    CMD_BIND = 0x02
    REPLY_VERSION = 0x00
    REPLY_SIZE = 8

    REP_GRANTED = 90
    REP_REJECTED = 91
    REP_IDENTD_UNREACHABLE = 92
    REP_IDENTD_MISMATCH = 93

    # SOCKS4a: 目标为域名时 DSTIP 使用 0.0.0.x（x 非零）
    DOMAIN_SENTINEL = "0.0.0.1"


REJECTION_REASONS = {
    SOCKS4.REP_REJECTED: "请求被拒绝或失败",
    SOCKS4.REP_IDENTD_UNREACHABLE: "代理无法连接到客户端的 identd",
    SOCKS4.REP_IDENTD_MISMATCH: "客户端与 identd 报告的用户 ID 不一致",
}


# ============================================================================
# 请求构造与应答解析
# ============================================================================

def build_connect_request(host: str, port: int, user_id: str = "") -> bytes:
    """
    构造 SOCKS4 CONNECT 请求

    目标为 IPv4 字面量时 DSTIP 为真实地址，不附加域名；
    其余情况（域名或 IPv6 字面量）DSTIP 为 0.0.0.1，并在用户 ID 之后附加以 NUL 结尾的主机文本。

    Args:
        host: 目标主机
        port: 目标端口
        user_id: 用户 ID，可以为空

    Returns:
        bytes: 完整的请求报文
    """
    if not 0 <= port <= 0xFFFF:
        raise InvalidAddressError(f"端口超出范围: {port}")
    if "\x00" in user_id:
        raise InvalidArgsError("用户 ID 中不能包含 NUL 字符")

    kind = classify_address(host)
    if kind is AddrType.IPV4:
        dst_ip = pack_ipv4(host)
    else:
        if not host or "\x00" in host:
            raise InvalidAddressError(f"无效的目标主机: {host!r}")
        dst_ip = pack_ipv4(SOCKS4.DOMAIN_SENTINEL)

    request = bytearray()
    request.append(SOCKS4.VERSION)
    request.append(SOCKS4.CMD_CONNECT)
    request += hton16(port)
    request += dst_ip
    request += user_id.encode('utf-8', 'surrogateescape') + b'\x00'
    if kind is not AddrType.IPV4:
        request += host.encode('utf-8', 'surrogateescape') + b'\x00'
    return bytes(request)


def parse_reply(reply: bytes, host: str, port: int):
    """
    校验 8 字节的 SOCKS4 应答

    Raises:
        ProtocolError: 应答被截断、格式错误或状态码未知
        ConnectionRejectedError: 代理拒绝请求（91/92/93）
    """
    if len(reply) < SOCKS4.REPLY_SIZE:
        raise ProtocolError(f"应答被截断: 收到 {len(reply)}/{SOCKS4.REPLY_SIZE} 字节")

    version, status = reply[0], reply[1]
    if version != SOCKS4.REPLY_VERSION:
        raise ProtocolError(f"应答格式错误: 版本字节为 {version}")

    if status == SOCKS4.REP_GRANTED:
        return
    if status in REJECTION_REASONS:
        raise ConnectionRejectedError(
            f"SOCKS4 请求被拒绝 (code: {status}, {REJECTION_REASONS[status]}) - {host}:{port}",
            status=status, host=host, port=port
        )
    raise ProtocolError(f"未知的应答状态码: {status}")


def read_reply(tunnel: Tunnel) -> bytes:
    """循环读取，直到凑满 8 字节或对端提前关闭"""
    reply = b''
    while len(reply) < SOCKS4.REPLY_SIZE:
        chunk = tunnel.recv_once(SOCKS4.REPLY_SIZE - len(reply))
        if not chunk:
            break
        reply += chunk
    return reply


def connect_through_proxy(tunnel: Tunnel, host: str, port: int, user_id: str = ""):
    """
    通过已连接的隧道发起 SOCKS4 CONNECT

    失败即终止，不重试。

    Args:
        tunnel: 已连接到 SOCKS4 代理的隧道
        host: 目标主机（IP 字面量或域名）
        port: 目标端口
        user_id: 用户 ID

    Raises:
        NetworkIOError: 发送或接收失败
        ProtocolError: 应答被截断、格式错误或状态码未知
        ConnectionRejectedError: 代理拒绝请求
    """
    request = build_connect_request(host, port, user_id)
    logger.debug(f"发送 SOCKS4 CONNECT: {host}:{port}, len={len(request)}")
    tunnel.send_all(request)

    reply = read_reply(tunnel)
    parse_reply(reply, host, port)
    logger.info(f"SOCKS4 请求已批准，经 TOR 连接到 {host}:{port}")
