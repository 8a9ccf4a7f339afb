"""
Torilate - 配置管理模块
加载配置文件和环境变量，定义代理、客户端和请求的配置数据类。

版本: 0.1.2

功能概述:
本模块提供了配置管理功能，包括：
1. TOR SOCKS 代理配置
2. 客户端配置（重定向、缓冲区、日志级别）
3. 单次请求的配置
4. YAML 配置文件的加载

配置优先级（高到低）:
- 命令行参数
- 环境变量（TORILATE_*）
- 配置文件 config.yaml 的 client 段
- 默认值

配置文件示例:
    client:
      proxy_host: 127.0.0.1
      proxy_port: 9050
      user_id: torilate
      follow_redirects: false
      max_redirects: 50
      response_capacity: 8192
      log_level: INFO
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from .errors import InvalidArgsError
from .protocol import HTTP_MAX_RESPONSE

logger = logging.getLogger(__name__)

TOR_IP = "127.0.0.1"
TOR_PORT = 9050
USER_ID = "torilate"
DEFAULT_MAX_REDIRECTS = 50


# ============================================================================
# 配置数据类
# ============================================================================

@dataclass
class ProxyConfig:
    """
    TOR SOCKS 代理配置

    代理地址是静态配置，不做协商或发现。

    Attributes:
        host: 代理监听地址，必须是 IP 字面量（默认: "127.0.0.1"）
        port: 代理监听端口（默认: 9050）
        user_id: SOCKS4 用户 ID（默认: "torilate"）
    """
    host: str = TOR_IP
    port: int = TOR_PORT
    user_id: str = USER_ID

    def __post_init__(self):
        self.port = _to_int(self.port, 'proxy_port')
        if not 1 <= self.port <= 65535:
            raise InvalidArgsError(f"代理端口超出范围: {self.port}")


@dataclass
class ClientConfig:
    """
    客户端配置数据类

    Attributes:
        proxy: 代理配置
        follow_redirects: 是否跟随重定向（默认: False）
        max_redirects: 最大重定向次数（默认: 50）
        response_capacity: 响应缓冲区容量（字节，默认: 8192）
        log_level: 日志级别（默认: "INFO"）
    """
    proxy: ProxyConfig = field(default_factory=ProxyConfig)
    follow_redirects: bool = False
    max_redirects: int = DEFAULT_MAX_REDIRECTS
    response_capacity: int = HTTP_MAX_RESPONSE
    log_level: str = "INFO"

    def __post_init__(self):
        self.max_redirects = _to_int(self.max_redirects, 'max_redirects')
        self.response_capacity = _to_int(self.response_capacity, 'response_capacity')
        if self.max_redirects < 0:
            raise InvalidArgsError(f"最大重定向次数不能为负数: {self.max_redirects}")
        if self.response_capacity < 2:
            raise InvalidArgsError(f"响应缓冲区容量过小: {self.response_capacity}")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]], env: Optional[Dict[str, str]] = None) -> 'ClientConfig':
        """
        从配置字典和环境变量创建客户端配置

        Args:
            data: load_config() 返回的完整配置字典，读取其中的 client 段
            env: 环境变量字典（默认: os.environ）

        Returns:
            ClientConfig: 客户端配置对象
        """
        env = os.environ if env is None else env
        conf = (data or {}).get('client') or {}

        proxy = ProxyConfig(
            host=env.get('TORILATE_PROXY_HOST', conf.get('proxy_host', TOR_IP)),
            port=env.get('TORILATE_PROXY_PORT', conf.get('proxy_port', TOR_PORT)),
            user_id=env.get('TORILATE_USER_ID', conf.get('user_id', USER_ID)),
        )
        return cls(
            proxy=proxy,
            follow_redirects=_to_bool(conf.get('follow_redirects', False)),
            max_redirects=env.get('TORILATE_MAX_REDIRECTS', conf.get('max_redirects', DEFAULT_MAX_REDIRECTS)),
            response_capacity=conf.get('response_capacity', HTTP_MAX_RESPONSE),
            log_level=env.get('TORILATE_LOG_LEVEL', conf.get('log_level', 'INFO')),
        )


@dataclass
class RequestOptions:
    """
    单次请求配置

    Attributes:
        uri: 目标 URL
        method: GET 或 POST（默认: "GET"）
        body: POST 请求体
        headers: 附加头部行
        follow: 是否跟随重定向
        max_redirects: 最大重定向次数
    """
    uri: str
    method: str = "GET"
    body: bytes = b''
    headers: List[str] = field(default_factory=list)
    follow: bool = False
    max_redirects: int = DEFAULT_MAX_REDIRECTS

    def __post_init__(self):
        self.method = self.method.upper()
        if isinstance(self.body, str):
            self.body = self.body.encode('utf-8')
        if self.max_redirects < 0:
            raise InvalidArgsError(f"最大重定向次数不能为负数: {self.max_redirects}")


# ============================================================================
# 配置文件管理函数
# ============================================================================

def load_config(config_file: str) -> Dict[str, Any]:
    """
    加载配置文件

    从 YAML 格式的配置文件中加载配置数据

    Args:
        config_file: 配置文件路径

    Returns:
        Dict[str, Any]: 配置数据字典，如果文件不存在或格式错误则返回空字典
    """
    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        return {}
    except yaml.YAMLError as e:
        logger.warning(f"配置文件格式错误: {e}")
        return {}

    if not isinstance(data, dict):
        logger.warning(f"配置文件顶层必须是映射: {config_file}")
        return {}
    return data


def _to_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidArgsError(f"配置项 {name} 不是整数: {value!r}")


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)
