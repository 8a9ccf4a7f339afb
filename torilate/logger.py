"""
Torilate - 日志管理模块

版本: 0.1.2

功能概述:
本模块提供了日志管理功能，包括：
1. 多级别日志记录（DEBUG, INFO, WARNING, ERROR, CRITICAL）
2. 按大小轮转的日志文件
3. 结构化日志格式（时间戳、级别、上下文）
4. 环境变量配置

日志输出到标准错误，标准输出只用于打印响应内容。

上下文字段:
    host / port: 当前请求的目标
    hop: 当前重定向跳数（0 表示首次请求）
"""

import logging
import logging.handlers
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass
class LogConfig:
    """
    日志配置数据类

    Attributes:
        level: 日志级别（DEBUG, INFO, WARNING, ERROR, CRITICAL）
        log_dir: 日志存储目录
        log_file: 日志文件名
        max_bytes: 单个日志文件最大大小（字节）
        backup_count: 保留的备份文件数量
        format_string: 日志格式字符串
        enable_console: 是否输出到控制台（标准错误）
        enable_file: 是否输出到文件
        context_fields: 上下文字段列表
    """
    level: str = "INFO"
    log_dir: str = "logs"
    log_file: str = "torilate.log"
    max_bytes: int = 1 * 1024 * 1024  # 1MB
    backup_count: int = 3
    format_string: str = "%(asctime)s - %(name)s - %(levelname)s - [%(context)s] - %(message)s"
    enable_console: bool = True
    enable_file: bool = False
    context_fields: list = None

    def __post_init__(self):
        if self.context_fields is None:
            self.context_fields = ["host", "port", "hop"]


class ContextFilter(logging.Filter):
    """
    上下文过滤器

    为日志记录添加上下文信息
    """

    def __init__(self, context_fields: list = None):
        super().__init__()
        self.context_fields = context_fields or []
        self.context_data = {}

    def add_context(self, **kwargs):
        self.context_data.update(kwargs)

    def clear_context(self):
        self.context_data.clear()

    def filter(self, record):
        context_parts = []
        for field in self.context_fields:
            value = self.context_data.get(field, "-")
            context_parts.append(f"{field}={value}")

        record.context = " | ".join(context_parts)
        return True


class LogFormatter(logging.Formatter):
    """
    自定义日志格式化器

    支持彩色输出
    """

    COLORS = {
        'DEBUG': '\033[36m',      # 青色
        'INFO': '\033[32m',       # 绿色
        'WARNING': '\033[33m',    # 黄色
        'ERROR': '\033[31m',      # 红色
        'CRITICAL': '\033[35m',   # 紫色
    }
    RESET = '\033[0m'

    def __init__(self, fmt=None, datefmt=None, style='%', use_color=False):
        super().__init__(fmt, datefmt, style)
        self.use_color = use_color

    def format(self, record):
        # 未经过 ContextFilter 的记录也要有 context 字段
        if not hasattr(record, 'context'):
            record.context = "-"

        levelname = record.levelname
        if self.use_color and levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.RESET}"

        try:
            return super().format(record)
        finally:
            record.levelname = levelname


class LoggerManager:
    """
    日志管理器

    单例，管理日志系统的初始化和上下文
    """

    _instance = None
    _initialized = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if not self._initialized:
            self.config = None
            self.context_filter = None
            self.handlers = []
            self._initialized = True

    def load_config_from_env(self, level: Optional[str] = None) -> LogConfig:
        """
        从环境变量加载日志配置

        Args:
            level: 显式指定的日志级别，优先于环境变量

        Returns:
            LogConfig: 日志配置对象
        """
        return LogConfig(
            level=level or os.getenv('TORILATE_LOG_LEVEL', 'INFO'),
            log_dir=os.getenv('TORILATE_LOG_DIR', 'logs'),
            log_file=os.getenv('TORILATE_LOG_FILE', 'torilate.log'),
            max_bytes=int(os.getenv('TORILATE_LOG_MAX_BYTES', 1 * 1024 * 1024)),
            backup_count=int(os.getenv('TORILATE_LOG_BACKUP_COUNT', 3)),
            enable_console=os.getenv('TORILATE_LOG_ENABLE_CONSOLE', 'true').lower() == 'true',
            enable_file=os.getenv('TORILATE_LOG_ENABLE_FILE', 'false').lower() == 'true',
        )

    def initialize(self, config: Optional[LogConfig] = None):
        """
        初始化日志系统，可重复调用（会替换之前安装的处理器）

        Args:
            config: 日志配置对象（可选，默认从环境变量加载）
        """
        self.shutdown()
        self.config = config or self.load_config_from_env()

        root_logger = logging.getLogger()
        root_logger.setLevel(self._level())

        self.context_filter = ContextFilter(self.config.context_fields)

        if self.config.enable_console:
            self._add_handler(root_logger, logging.StreamHandler(sys.stderr),
                              use_color=sys.stderr.isatty())

        if self.config.enable_file:
            log_dir = Path(self.config.log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                filename=log_dir / self.config.log_file,
                maxBytes=self.config.max_bytes,
                backupCount=self.config.backup_count,
                encoding='utf-8'
            )
            self._add_handler(root_logger, file_handler, use_color=False)

    def set_level(self, level: str):
        """调整已初始化的日志系统的级别"""
        if self.config is None:
            return
        self.config.level = level
        logging.getLogger().setLevel(self._level())
        for handler in self.handlers:
            handler.setLevel(self._level())

    def shutdown(self):
        """移除本管理器安装的处理器"""
        root_logger = logging.getLogger()
        for handler in self.handlers:
            root_logger.removeHandler(handler)
            handler.close()
        self.handlers = []
        self.context_filter = None

    def _level(self) -> int:
        return getattr(logging, self.config.level.upper(), logging.INFO)

    def _add_handler(self, logger: logging.Logger, handler: logging.Handler, use_color: bool):
        handler.setLevel(self._level())
        handler.setFormatter(LogFormatter(
            fmt=self.config.format_string,
            datefmt='%Y-%m-%d %H:%M:%S',
            use_color=use_color
        ))
        # 过滤器挂在处理器上，子记录器传播上来的记录也会带上上下文
        handler.addFilter(self.context_filter)
        logger.addHandler(handler)
        self.handlers.append(handler)

    def add_context(self, **kwargs):
        if self.context_filter:
            self.context_filter.add_context(**kwargs)

    def clear_context(self):
        if self.context_filter:
            self.context_filter.clear_context()


def setup_logging(level: Optional[str] = None) -> LoggerManager:
    """初始化日志系统（便捷函数）"""
    manager = LoggerManager()
    manager.initialize(manager.load_config_from_env(level))
    return manager


def add_context(**kwargs):
    """添加上下文信息（便捷函数），日志系统未初始化时忽略"""
    LoggerManager().add_context(**kwargs)


def clear_context():
    LoggerManager().clear_context()
