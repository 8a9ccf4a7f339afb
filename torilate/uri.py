"""
Torilate - URL 解析模块

将 URL 文本拆分为 {scheme, host, port, path}，供请求和重定向使用。

规则:
1. 支持 http:// 和 https://，未写协议时默认 http
2. 其他带 "://" 的协议视为无效 URL
3. 未写端口时按协议取默认值（http=80，https=443）
4. 未写路径时默认为 "/"
5. IPv6 字面量需要用方括号包围（如 http://[::1]:8080/）
6. 含有 CR、LF 或 NUL 的 URL 一律拒绝
"""

from dataclasses import dataclass, replace

from .connection import AddrType, classify_address
from .errors import InvalidURIError

DEFAULT_PORTS = {
    'http': 80,
    'https': 443,
}

# 不允许出现在请求行和 Host 头部中的字符
LINE_BREAK_CHARS = "\r\n\x00"


@dataclass(frozen=True)
class Target:
    """
    解析后的请求目标

    Attributes:
        scheme: 协议（http / https）
        host: 主机文本（不含方括号）
        port: 端口
        path: 请求路径（含查询串）
        kind: 地址类型
    """
    scheme: str
    host: str
    port: int
    path: str
    kind: AddrType

    def with_path(self, path: str) -> 'Target':
        return replace(self, path=path)

    def __str__(self) -> str:
        host = f"[{self.host}]" if self.kind is AddrType.IPV6 else self.host
        return f"{self.scheme}://{host}:{self.port}{self.path}"


def has_line_breaks(text: str) -> bool:
    return any(ch in text for ch in LINE_BREAK_CHARS)


def split_scheme(uri: str):
    """
    拆分协议部分

    Returns:
        tuple: (scheme, 剩余部分)

    Raises:
        InvalidURIError: 协议不受支持
    """
    sep = uri.find("://")
    if sep < 0:
        return 'http', uri
    scheme = uri[:sep].lower()
    if scheme not in DEFAULT_PORTS:
        raise InvalidURIError(f"不支持的协议: '{uri[:sep]}'")
    return scheme, uri[sep + 3:]


def parse_port(text: str, uri: str) -> int:
    if not text.isdigit():
        raise InvalidURIError(f"无效的端口 '{text}': {uri}")
    port = int(text)
    if not 1 <= port <= 65535:
        raise InvalidURIError(f"端口超出范围 '{text}': {uri}")
    return port


def resolve(uri_text: str, default_scheme: str = 'http') -> Target:
    """
    解析 URL 文本

    Args:
        uri_text: URL 文本
        default_scheme: 未写协议时使用的协议

    Returns:
        Target: 解析结果

    Raises:
        InvalidURIError: 协议不受支持、主机为空、端口无效或包含 CR/LF/NUL
    """
    uri = uri_text.strip()
    if not uri:
        raise InvalidURIError("URL 为空")
    if has_line_breaks(uri):
        raise InvalidURIError(f"URL 包含非法的控制字符: {uri_text!r}")

    if "://" in uri:
        scheme, rest = split_scheme(uri)
    else:
        scheme, rest = default_scheme, uri

    # 片段不会发送给服务器
    rest = rest.split('#', 1)[0]

    cut = len(rest)
    for ch in '/?':
        idx = rest.find(ch)
        if 0 <= idx < cut:
            cut = idx
    authority, path = rest[:cut], rest[cut:]
    if not path.startswith('/'):
        path = '/' + path

    # 丢弃用户信息
    if '@' in authority:
        authority = authority.rsplit('@', 1)[1]

    port = DEFAULT_PORTS[scheme]
    if authority.startswith('['):
        end = authority.find(']')
        if end < 0:
            raise InvalidURIError(f"IPv6 地址缺少 ']': {uri_text}")
        host = authority[1:end]
        tail = authority[end + 1:]
        if tail:
            if not tail.startswith(':'):
                raise InvalidURIError(f"无效的主机部分: {uri_text}")
            port = parse_port(tail[1:], uri_text)
        if classify_address(host) is not AddrType.IPV6:
            raise InvalidURIError(f"方括号内不是 IPv6 地址: {uri_text}")
    elif authority.count(':') > 1 and classify_address(authority) is AddrType.IPV6:
        host = authority
    elif ':' in authority:
        host, _, port_text = authority.partition(':')
        port = parse_port(port_text, uri_text)
    else:
        host = authority

    if not host:
        raise InvalidURIError(f"URL 缺少主机: {uri_text}")

    return Target(
        scheme=scheme,
        host=host,
        port=port,
        path=path,
        kind=classify_address(host),
    )
