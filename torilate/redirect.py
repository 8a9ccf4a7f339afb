"""
Torilate - 请求与重定向控制模块

本模块是 Torilate 的公共入口，负责把一次请求串联起来:

    URL 解析 -> 连接 TOR -> SOCKS4 握手 -> HTTP 请求/响应
             -> 检查状态码 -> (3xx 时: 关闭、重连、重新握手、重新请求)

重定向规则:
1. 只有 follow 为 True 且状态码在 [300, 400) 时才跟随
2. 跳数达到 max_redirects 后再遇到 3xx 即报错，不做软截断
3. POST 遇到 301/302/303 后降级为 GET（之后一直保持 GET），307/308 不降级
4. Location 以 "/" 开头时只替换路径，主机和端口不变
5. 带协议的 Location 重新解析主机、端口和路径
6. 其他形式（不带 "/" 的相对路径）视为重定向失败
7. Location 中出现 CR、LF 或 NUL 时视为重定向失败，不会写入下一跳的请求行

每一跳都使用全新的隧道，上一跳的隧道在下一跳打开之前已经关闭。
"""

import logging
from typing import List, Optional

from .config import ClientConfig, ProxyConfig, RequestOptions, DEFAULT_MAX_REDIRECTS
from .connection import Tunnel
from .errors import (
    InvalidArgsError, InvalidHeaderError, InvalidURIError, RedirectFailedError,
    RedirectLimitExceededError, TorilateError,
)
from .logger import add_context, clear_context
from .protocol import (
    HTTP_MAX_RESPONSE, SUPPORTED_METHODS, HttpRequestSpec, HttpResponse,
    normalize_header, send_request,
)
from .socks4 import connect_through_proxy
from .uri import Target, has_line_breaks, resolve

logger = logging.getLogger('torilate-redirect')

# 这三个状态码会把 POST 降级为 GET
METHOD_DOWNGRADE_CODES = (301, 302, 303)


# ============================================================================
# 重定向辅助函数
# ============================================================================

def find_location(response: HttpResponse) -> str:
    """
    从状态行之后的头部中查找 Location（不区分大小写）

    取第一个匹配项，去掉前导空格，直到下一个 CRLF 为止。

    Raises:
        RedirectFailedError: 缺少 Location，或者取值没有以 CRLF 结尾
    """
    raw = response.raw.lstrip(b' \r\n')
    line_end = raw.find(b'\r\n')
    if line_end < 0:
        raise RedirectFailedError("重定向响应缺少 Location 头部")

    pos = line_end + 2
    while pos < len(raw):
        if raw.startswith(b'\r\n', pos):
            break  # 头部结束
        if raw[pos:pos + 9].lower() == b'location:':
            start = pos + 9
            while start < len(raw) and raw[start] == 0x20:
                start += 1
            end = raw.find(b'\r\n', start)
            if end < 0:
                raise RedirectFailedError("提取 Location 头部失败: 未以 CRLF 结尾")
            value = raw[start:end].decode('utf-8', 'surrogateescape').strip()
            if not value:
                raise RedirectFailedError("Location 头部为空")
            return value
        next_end = raw.find(b'\r\n', pos)
        if next_end < 0:
            break
        pos = next_end + 2

    raise RedirectFailedError("重定向响应缺少 Location 头部")


def next_method(method: str, status: int) -> str:
    """POST 遇到 301/302/303 时降级为 GET，其余情况保持不变"""
    if method == 'POST' and status in METHOD_DOWNGRADE_CODES:
        return 'GET'
    return method


def resolve_redirect(current: Target, location: str) -> Target:
    """
    根据 Location 计算下一跳的目标

    Raises:
        InvalidURIError: 绝对 URL 无法解析
        RedirectFailedError: Location 含有 CR/LF/NUL，或者既不是绝对 URL 也不以 "/" 开头
    """
    if has_line_breaks(location):
        raise RedirectFailedError(f"Location 包含非法的控制字符: {location!r}")
    if location.startswith('/'):
        return current.with_path(location)
    if '://' in location:
        try:
            return resolve(location)
        except InvalidURIError as e:
            raise e.propagate(f"解析重定向 URL 失败: {location}")
    raise RedirectFailedError(f"不支持的相对 Location: {location}")


# ============================================================================
# 单跳请求
# ============================================================================

def exchange(proxy: ProxyConfig, target: Target, method: str, body: bytes,
             headers: List[str], capacity: int = HTTP_MAX_RESPONSE) -> HttpResponse:
    """
    完成一跳: 打开隧道、SOCKS4 握手、一次 HTTP 交换、关闭隧道

    隧道在任何退出路径上都会被关闭。
    """
    if target.scheme == 'https':
        logger.warning(f"不支持 TLS，将以明文发送到 {target.host}:{target.port}")

    try:
        tunnel = Tunnel.connect(proxy.host, proxy.port)
    except TorilateError as e:
        raise e.propagate(f"无法连接到 TOR {proxy.host}:{proxy.port}")

    with tunnel:
        try:
            connect_through_proxy(tunnel, target.host, target.port, proxy.user_id)
        except TorilateError as e:
            raise e.propagate(f"SOCKS4 连接 {target.host}:{target.port} 失败")

        spec = HttpRequestSpec(
            method=method,
            path=target.path,
            host=target.host,
            port=target.port,
            headers=list(headers),
            body=body if method == 'POST' else b'',
        )
        try:
            return send_request(tunnel, spec, capacity)
        except TorilateError as e:
            raise e.propagate(f"从 {target.host}:{target.port} 获取 HTTP 响应失败")


# ============================================================================
# 公共入口
# ============================================================================

def perform(options: RequestOptions, config: Optional[ClientConfig] = None) -> HttpResponse:
    """
    执行一次请求，必要时跟随重定向

    调用方需要处于 network_session() 之内。

    Args:
        options: 请求配置
        config: 客户端配置（默认: ClientConfig()）

    Returns:
        HttpResponse: 最终响应（非 3xx，或未开启跟随时的第一个响应）

    Raises:
        TorilateError: 任意一步失败，整个调用终止
    """
    config = config or ClientConfig()
    method = options.method.upper()
    if method not in SUPPORTED_METHODS:
        raise InvalidArgsError(f"不支持的请求方法: {options.method}")

    # 在发送任何字节之前校验全部头部
    headers = []
    for header in options.headers:
        try:
            headers.append(normalize_header(header))
        except InvalidHeaderError as e:
            raise e.propagate(f"无效的头部: {header!r}")

    try:
        target = resolve(options.uri)
    except InvalidURIError as e:
        raise e.propagate(f"解析 URL 失败: {options.uri}")

    add_context(host=target.host, port=target.port, hop=0)
    try:
        response = exchange(config.proxy, target, method, options.body, headers,
                            config.response_capacity)
        if not options.follow:
            return response

        hops = 0
        while response.is_redirect():
            if hops >= options.max_redirects:
                raise RedirectLimitExceededError(
                    f"超过最大重定向次数 {options.max_redirects}"
                )
            location = find_location(response)
            method = next_method(method, response.status_code)
            target = resolve_redirect(target, location)
            hops += 1

            add_context(host=target.host, port=target.port, hop=hops)
            logger.info(f"重定向 #{hops} ({response.status_code}) -> {method} {target}")
            response = exchange(config.proxy, target, method, options.body, headers,
                                config.response_capacity)

        return response
    finally:
        clear_context()


def perform_with_redirects(initial_uri: str, method: str = 'GET', body: bytes = b'',
                           headers: Optional[List[str]] = None, follow: bool = False,
                           max_hops: int = DEFAULT_MAX_REDIRECTS,
                           config: Optional[ClientConfig] = None) -> HttpResponse:
    """perform() 的参数展开形式"""
    options = RequestOptions(
        uri=initial_uri,
        method=method,
        body=body or b'',
        headers=list(headers or []),
        follow=follow,
        max_redirects=max_hops,
    )
    return perform(options, config)


def http_get(uri: str, headers: Optional[List[str]] = None, follow: bool = False,
             max_redirects: int = DEFAULT_MAX_REDIRECTS,
             config: Optional[ClientConfig] = None) -> HttpResponse:
    return perform_with_redirects(uri, 'GET', b'', headers, follow, max_redirects, config)


def http_post(uri: str, body: bytes = b'', headers: Optional[List[str]] = None,
              follow: bool = False, max_redirects: int = DEFAULT_MAX_REDIRECTS,
              config: Optional[ClientConfig] = None) -> HttpResponse:
    return perform_with_redirects(uri, 'POST', body, headers, follow, max_redirects, config)
