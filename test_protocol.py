#!/usr/bin/env python3
"""
HTTP 协议模块测试

测试内容:
1. GET / POST 请求文本和头部顺序
2. Host 头部的端口后缀
3. Content-Length 按字节计算
4. 附加头部的整理和注入拒绝（拒绝时不发送任何数据）
5. 状态行解析
6. 响应读取和缓冲区截断
"""

import socket
import sys
import threading

import pytest

from torilate.connection import Tunnel
from torilate.errors import InvalidArgsError, InvalidHeaderError, MalformedResponseError
from torilate.protocol import (
    HTTP_MAX_RESPONSE, HttpRequestSpec, HttpResponse, build_request, normalize_header,
    parse_status_code, recv_response, send_request,
)


def test_get_request_text():
    """测试 GET 请求的完整文本"""
    spec = HttpRequestSpec("GET", "/index.html", "example.com", 80)
    assert build_request(spec) == (
        b"GET /index.html HTTP/1.1\r\n"
        b"Host: example.com\r\n"
        b"User-Agent: Torilate\r\n"
        b"Connection: close\r\n"
        b"\r\n"
    )


def test_host_header_port_suffix():
    assert b"Host: example.com:8080\r\n" in build_request(
        HttpRequestSpec("GET", "/", "example.com", 8080))
    assert b"Host: example.com:443\r\n" in build_request(
        HttpRequestSpec("GET", "/", "example.com", 443))
    assert b"Host: [::1]:8080\r\n" in build_request(
        HttpRequestSpec("GET", "/", "::1", 8080))


def test_post_request_text():
    """测试 POST 请求: 头部顺序和按字节计算的 Content-Length"""
    body = "héllo".encode("utf-8")
    spec = HttpRequestSpec("post", "/submit", "example.com", 80,
                           headers=["Content-Type: text/plain"], body=body)
    assert build_request(spec) == (
        b"POST /submit HTTP/1.1\r\n"
        b"Host: example.com\r\n"
        b"User-Agent: Torilate\r\n"
        b"Content-Type: text/plain\r\n"
        b"Content-Length: 6\r\n"
        b"Connection: close\r\n"
        b"\r\n" + body
    )


def test_post_empty_body_and_str_body():
    request = build_request(HttpRequestSpec("POST", "/", "example.com"))
    assert b"Content-Length: 0\r\n" in request
    assert request.endswith(b"\r\n\r\n")

    request = build_request(HttpRequestSpec("POST", "/", "example.com", body="日本"))
    assert b"Content-Length: 6\r\n" in request


def test_get_never_sends_body():
    request = build_request(HttpRequestSpec("GET", "/", "example.com", body=b"ignored"))
    assert b"Content-Length" not in request
    assert request.endswith(b"\r\n\r\n")


def test_unsupported_method():
    with pytest.raises(InvalidArgsError):
        HttpRequestSpec("PUT", "/", "example.com")


def test_header_trimming_keeps_order():
    """测试附加头部去除首尾空白和 CRLF，且保持顺序"""
    assert normalize_header("  X-A: 1 \r\n") == "X-A: 1"
    assert normalize_header("\tAccept: */*\n") == "Accept: */*"

    spec = HttpRequestSpec("GET", "/", "h", 80, headers=["X-B: 2\r\n", " X-A: 1"])
    request = build_request(spec)
    assert request.index(b"X-B: 2\r\n") < request.index(b"X-A: 1\r\n")


def test_header_injection_rejected():
    """测试内嵌 CR/LF 的头部被拒绝"""
    for header in ["X-A: 1\r\nX-Evil: 2", "X-A: 1\nGET / HTTP/1.1", "X-A: a\rb", "   ", ""]:
        with pytest.raises(InvalidHeaderError):
            build_request(HttpRequestSpec("GET", "/", "h", 80, headers=[header]))


def test_injection_sends_nothing():
    """测试头部校验失败时不会发送任何字节"""
    left, right = socket.socketpair()
    with Tunnel(left) as tunnel:
        with pytest.raises(InvalidHeaderError):
            send_request(tunnel, HttpRequestSpec("GET", "/", "h", 80,
                                                 headers=["ok: 1", "bad: 1\r\nX: 2"]))
        assert tunnel.bytes_sent == 0
        right.setblocking(False)
        with pytest.raises(BlockingIOError):
            right.recv(1)
    right.close()


def test_request_line_injection_rejected():
    """测试路径或主机中的 CR/LF/NUL 被拒绝"""
    for path in ["/a\r\nX-Evil: 1", "/a\nb", "/a\rb", "/a\x00"]:
        with pytest.raises(InvalidArgsError):
            HttpRequestSpec("GET", path, "example.com")
    with pytest.raises(InvalidArgsError):
        HttpRequestSpec("GET", "/", "example.com\r\nX-Evil: 1")


def test_path_bytes_preserved():
    """测试路径中的非 ASCII 字节原样发送"""
    path = b"/caf\xc3\xa9".decode("utf-8", "surrogateescape")
    request = build_request(HttpRequestSpec("GET", path, "example.com"))
    assert request.startswith(b"GET /caf\xc3\xa9 HTTP/1.1\r\n")

    path = b"/raw\xff\xfe".decode("utf-8", "surrogateescape")
    request = build_request(HttpRequestSpec("GET", path, "example.com"))
    assert request.startswith(b"GET /raw\xff\xfe HTTP/1.1\r\n")


def test_parse_status_code():
    assert parse_status_code(b"HTTP/1.1 200 OK\r\n\r\n") == 200
    assert parse_status_code(b"\r\n  HTTP/1.0 404 Not Found\r\n") == 404
    assert parse_status_code(b"HTTP/2 301\r\n") == 301
    assert parse_status_code(b"HTTP/1.1 599 X") == 599
    assert parse_status_code(b"HTTP/1.1 100 Continue") == 100


def test_parse_status_code_malformed():
    for raw in [b"", b"garbage", b"HTTP/1.1 abc OK", b"HTTP/1.1 99 Low", b"HTTP/1.1 600 High",
                b"HTTP/1.1 2000 Long", b"http/1.1 200 OK", b"ICY 200 OK", b"HTTP/ 200"]:
        with pytest.raises(MalformedResponseError):
            parse_status_code(raw)


def _serve(data: bytes, capacity: int = HTTP_MAX_RESPONSE) -> HttpResponse:
    left, right = socket.socketpair()

    def writer():
        try:
            right.sendall(data)
        except OSError:
            pass
        finally:
            right.close()

    t = threading.Thread(target=writer)
    t.start()
    with Tunnel(left) as tunnel:
        response = recv_response(tunnel, capacity)
    t.join(timeout=5)
    return response


def test_recv_response_verbatim():
    """测试响应按原样保存"""
    raw = b"HTTP/1.1 200 OK\r\nContent-Length: 5\r\n\r\nhello"
    response = _serve(raw)
    assert response.status_code == 200
    assert response.raw == raw
    assert response.bytes_received == len(raw)
    assert not response.truncated
    assert response.body == b"hello"
    assert response.header_block == b"HTTP/1.1 200 OK\r\nContent-Length: 5"
    assert response.status_line == "HTTP/1.1 200 OK"
    assert not response.is_redirect()


def test_recv_response_truncated():
    """测试超出容量的响应被截断为 capacity - 1 字节"""
    raw = b"HTTP/1.1 200 OK\r\n\r\n" + b"a" * 50000
    response = _serve(raw)
    assert response.bytes_received == HTTP_MAX_RESPONSE - 1
    assert response.raw == raw[:HTTP_MAX_RESPONSE - 1]
    assert response.truncated

    response = _serve(raw, capacity=64)
    assert len(response.raw) == 63
    assert response.truncated


def test_recv_response_exact_fit():
    """测试恰好写满缓冲区后对端关闭不算截断"""
    head = b"HTTP/1.1 200 OK\r\n\r\n"
    exact = head + b"b" * (63 - len(head))
    response = _serve(exact, capacity=64)
    assert response.raw == exact
    assert not response.truncated

    response = _serve(exact + b"c", capacity=64)
    assert response.raw == exact
    assert response.truncated


def test_recv_response_malformed():
    with pytest.raises(MalformedResponseError):
        _serve(b"not http at all")
    with pytest.raises(MalformedResponseError):
        _serve(b"")


def main():
    """运行所有测试"""
    tests = [
        ("GET 请求文本", test_get_request_text),
        ("Host 端口后缀", test_host_header_port_suffix),
        ("POST 请求文本", test_post_request_text),
        ("POST 空请求体", test_post_empty_body_and_str_body),
        ("GET 不发送请求体", test_get_never_sends_body),
        ("不支持的方法", test_unsupported_method),
        ("头部整理", test_header_trimming_keeps_order),
        ("头部注入", test_header_injection_rejected),
        ("注入时不发送", test_injection_sends_nothing),
        ("请求行注入", test_request_line_injection_rejected),
        ("路径字节原样发送", test_path_bytes_preserved),
        ("状态码解析", test_parse_status_code),
        ("状态行格式错误", test_parse_status_code_malformed),
        ("原样保存响应", test_recv_response_verbatim),
        ("响应截断", test_recv_response_truncated),
        ("恰好写满", test_recv_response_exact_fit),
        ("响应格式错误", test_recv_response_malformed),
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
