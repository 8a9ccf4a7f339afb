"""
Torilate - 文件读写模块

只用于读取 POST 请求体和保存最终响应，操作系统错误映射为 Torilate 的资源错误。
"""

import errno

from .errors import (
    FileIOError, FileMissingError, OutOfMemoryError, PermissionDeniedError, ResourceError,
)


def _map_os_error(e: OSError, path: str) -> ResourceError:
    if e.errno == errno.ENOENT:
        return FileMissingError(f"文件不存在: {path}")
    if e.errno in (errno.EACCES, errno.EPERM):
        return PermissionDeniedError(f"无权访问文件: {path}")
    if e.errno == errno.ENOMEM:
        return OutOfMemoryError(f"读写文件时内存不足: {path}")
    return FileIOError(f"读写文件失败: {path} ({e})")


def read_all(path: str) -> bytes:
    """
    读取整个文件

    Raises:
        FileMissingError / PermissionDeniedError / OutOfMemoryError / FileIOError
    """
    try:
        with open(path, 'rb') as f:
            return f.read()
    except MemoryError:
        raise OutOfMemoryError(f"读取文件时内存不足: {path}")
    except OSError as e:
        raise _map_os_error(e, path)


def write_all(path: str, data: bytes):
    """
    写入整个文件（覆盖）

    Raises:
        FileMissingError / PermissionDeniedError / OutOfMemoryError / FileIOError
    """
    try:
        with open(path, 'wb') as f:
            f.write(data)
            f.flush()
    except OSError as e:
        raise _map_os_error(e, path)
