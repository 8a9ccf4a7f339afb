#!/usr/bin/env python3
"""
SOCKS4 客户端测试

测试内容:
1. IPv4 目标的请求编码（真实 DSTIP，无域名后缀）
2. 域名 / IPv6 目标的请求编码（0.0.0.1 + 以 NUL 结尾的主机文本）
3. 应答校验: 批准、拒绝（91/92/93）、截断、格式错误、未知状态
4. 分段到达的应答能被完整读取
"""

import socket
import sys

import pytest

from torilate.connection import Tunnel
from torilate.errors import (
    ConnectionRejectedError, InvalidAddressError, InvalidArgsError, ProtocolError,
)
from torilate.socks4 import SOCKS4, build_connect_request, connect_through_proxy, parse_reply


def test_request_ipv4_destination():
    """测试 IPv4 目标: DSTIP 为真实地址，不附加域名"""
    request = build_connect_request("93.184.216.34", 80, "torilate")
    assert request == (
        b"\x04\x01" + b"\x00\x50" + bytes([93, 184, 216, 34]) + b"torilate\x00"
    )


def test_request_domain_destination():
    """测试域名目标: DSTIP 为 0.0.0.1，域名原样附加并以 NUL 结尾"""
    request = build_connect_request("example.com", 8080, "torilate")
    assert request[:2] == bytes([SOCKS4.VERSION, SOCKS4.CMD_CONNECT])
    assert request[2:4] == b"\x1f\x90"
    assert request[4:8] == b"\x00\x00\x00\x01"
    assert request[8:] == b"torilate\x00example.com\x00"


def test_request_ipv6_destination_uses_name_form():
    request = build_connect_request("2001:db8::1", 443, "")
    assert request[4:8] == b"\x00\x00\x00\x01"
    assert request[8:] == b"\x00" + b"2001:db8::1\x00"


def test_request_empty_user_id():
    request = build_connect_request("10.0.0.1", 1, "")
    assert request == b"\x04\x01\x00\x01\x0a\x00\x00\x01\x00"


def test_request_invalid_inputs():
    with pytest.raises(InvalidAddressError):
        build_connect_request("example.com", 70000, "")
    with pytest.raises(InvalidArgsError) as info:
        build_connect_request("example.com", 80, "bad\x00id")
    assert not isinstance(info.value, ProtocolError)
    with pytest.raises(InvalidAddressError):
        build_connect_request("", 80, "")


def test_reply_granted():
    parse_reply(bytes([0, 90, 0, 0, 0, 0, 0, 0]), "example.com", 80)
    parse_reply(bytes([0, 90, 1, 2, 3, 4, 5, 6]), "example.com", 80)


def test_reply_rejections():
    """测试 91/92/93 带上具体状态码和目标"""
    for status in (91, 92, 93):
        with pytest.raises(ConnectionRejectedError) as info:
            parse_reply(bytes([0, status, 0, 0, 0, 0, 0, 0]), "example.com", 8080)
        assert info.value.status == status
        assert info.value.host == "example.com"
        assert info.value.port == 8080
        assert isinstance(info.value, ProtocolError)


def test_reply_truncated():
    with pytest.raises(ProtocolError) as info:
        parse_reply(b"\x00\x5a\x00", "example.com", 80)
    assert not isinstance(info.value, ConnectionRejectedError)
    assert "截断" in str(info.value)


def test_reply_malformed_and_unknown():
    with pytest.raises(ProtocolError) as info:
        parse_reply(bytes([4, 90, 0, 0, 0, 0, 0, 0]), "example.com", 80)
    assert "格式错误" in str(info.value)

    with pytest.raises(ProtocolError) as info:
        parse_reply(bytes([0, 89, 0, 0, 0, 0, 0, 0]), "example.com", 80)
    assert "未知" in str(info.value)


def test_handshake_over_socketpair():
    """测试应答分段到达时仍能完整读取"""
    left, right = socket.socketpair()
    right.settimeout(5)
    with Tunnel(left) as tunnel:
        right.sendall(b"\x00\x5a\x00")
        right.sendall(b"\x00\x00\x00\x00\x00")
        connect_through_proxy(tunnel, "example.com", 80, "torilate")
        sent = right.recv(1024)
        assert sent == build_connect_request("example.com", 80, "torilate")
    right.close()


def test_handshake_peer_closes_early():
    left, right = socket.socketpair()
    with Tunnel(left) as tunnel:
        right.sendall(b"\x00\x5a")
        right.shutdown(socket.SHUT_WR)
        with pytest.raises(ProtocolError):
            connect_through_proxy(tunnel, "10.0.0.1", 80, "")
    right.close()


def main():
    """运行所有测试"""
    tests = [
        ("IPv4 目标编码", test_request_ipv4_destination),
        ("域名目标编码", test_request_domain_destination),
        ("IPv6 目标编码", test_request_ipv6_destination_uses_name_form),
        ("空用户 ID", test_request_empty_user_id),
        ("无效输入", test_request_invalid_inputs),
        ("批准应答", test_reply_granted),
        ("拒绝应答", test_reply_rejections),
        ("截断应答", test_reply_truncated),
        ("格式错误与未知状态", test_reply_malformed_and_unknown),
        ("分段应答", test_handshake_over_socketpair),
        ("对端提前关闭", test_handshake_peer_closes_early),
    ]
    failed = 0
    for name, test_func in tests:
        try:
            test_func()
            print(f"✓ {name}")
        except Exception as e:
            print(f"✗ {name} - {e!r}")
            failed += 1
    print(f"测试结果: 通过={len(tests) - failed}, 失败={failed}")
    return failed == 0


if __name__ == '__main__':
    sys.exit(0 if main() else 1)
