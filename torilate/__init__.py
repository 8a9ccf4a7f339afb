"""
Torilate - 经 TOR 网络发送 HTTP 请求

本包通过本地 TOR 守护进程的 SOCKS4 监听端口建立隧道，在隧道上发送一次
HTTP GET 或 POST 请求，并可按需跟随重定向。

主要组件:
- connection: 套接字封装、地址分类、网络子系统
- socks4: SOCKS4 / SOCKS4a CONNECT 客户端
- protocol: 最小化的 HTTP/1.1 请求构造和响应读取
- redirect: 重定向控制和公共入口
- uri: URL 解析

使用示例:
    from torilate import RequestOptions, network_session, perform

    with network_session():
        response = perform(RequestOptions(uri="http://example.com/", follow=True))
    print(response.status_code)
"""

from .config import ClientConfig, ProxyConfig, RequestOptions
from .connection import Address, AddrType, Tunnel, classify_address, network_session
from .errors import ErrorCode, TorilateError
from .protocol import HTTP_MAX_RESPONSE, HttpRequestSpec, HttpResponse
from .redirect import http_get, http_post, perform, perform_with_redirects
from .uri import Target, resolve

__version__ = "0.1.2"

__all__ = [
    'Address',
    'AddrType',
    'ClientConfig',
    'ErrorCode',
    'HTTP_MAX_RESPONSE',
    'HttpRequestSpec',
    'HttpResponse',
    'ProxyConfig',
    'RequestOptions',
    'Target',
    'TorilateError',
    'Tunnel',
    'classify_address',
    'http_get',
    'http_post',
    'network_session',
    'perform',
    'perform_with_redirects',
    'resolve',
]
