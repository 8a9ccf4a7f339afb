#!/usr/bin/env python3
"""
Torilate - 命令行客户端

经 TOR 网络（本地 SOCKS4 代理）发送一次 HTTP GET 或 POST 请求。

用法:
    torilate <command> <url> [options]

命令:
    get     发送 HTTP GET 请求
    post    发送 HTTP POST 请求
    help    显示帮助

示例:
    torilate get example.com
    torilate get httpbin.org/redirect/3 -fl -v
    torilate post example.com -t application/json -b '{"key":"value"}'

退出码即 ErrorCode 的取值，成功时为 0。
"""

import argparse
import logging
import sys
from typing import List, Optional

from .config import ClientConfig, ProxyConfig, RequestOptions, load_config
from .connection import network_session
from .errors import (
    PROG_NAME, ErrorCode, InvalidArgsError, InvalidCommandError, NoArgsError, TorilateError,
)
from .fileio import read_all, write_all
from .logger import LoggerManager, setup_logging
from .protocol import HttpResponse
from .redirect import perform

logger = logging.getLogger('torilate-client')

COMMANDS = {
    'get': "发送 HTTP GET 请求",
    'post': "发送 HTTP POST 请求",
}


class CliParser(argparse.ArgumentParser):
    """参数错误时抛出 InvalidArgsError，而不是直接退出进程"""

    def error(self, message):
        raise InvalidArgsError(f"参数解析失败: {message}")


def build_parser() -> CliParser:
    parser = CliParser(
        prog=PROG_NAME,
        description=f"{PROG_NAME} - 经 TOR 网络发送 HTTP 请求的命令行工具",
        epilog=(
            "示例:\n"
            f"  {PROG_NAME} get example.com\n"
            f"  {PROG_NAME} get httpbin.org/redirect/3 -fl -v\n"
            f"  {PROG_NAME} post example.com -t application/json -b '{{\"key\":\"value\"}}'"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    common = CliParser(add_help=False)
    common.add_argument('url', help='请求的 URL')
    common.add_argument('-o', '--output', default=None, help='保存响应的文件')
    common.add_argument('--max-redirs', type=int, default=None,
                        help='最多跟随的重定向次数（默认: 50）')
    common.add_argument('-fl', '--follow', action='store_true', help='跟随重定向')
    display = common.add_mutually_exclusive_group()
    display.add_argument('-r', '--raw', action='store_true', help='显示原始 HTTP 响应')
    display.add_argument('-c', '--content-only', action='store_true', help='只显示响应内容')
    common.add_argument('-v', '--verbose', action='store_true', help='显示详细输出')
    common.add_argument('-H', '--header', action='append', default=[],
                        help='附加请求头部，可重复使用')
    common.add_argument('--config', default='config.yaml', help='配置文件路径')
    common.add_argument('--proxy-host', default=None, help='TOR SOCKS 代理地址')
    common.add_argument('--proxy-port', type=int, default=None, help='TOR SOCKS 代理端口')
    common.add_argument('--debug', '-d', action='store_true', help='启用调试模式')

    subparsers = parser.add_subparsers(dest='command', metavar='<command>')
    subparsers.add_parser('get', parents=[common], help=COMMANDS['get'])
    post = subparsers.add_parser('post', parents=[common], help=COMMANDS['post'])
    post.add_argument('-t', '--content-type', default=None, help='POST 请求的 Content-Type')
    source = post.add_mutually_exclusive_group()
    source.add_argument('-b', '--body', default=None, help='POST 请求体')
    source.add_argument('-i', '--input', default=None, help='从文件读取 POST 请求体')
    return parser


def render_response(response: HttpResponse, raw: bool = False, content_only: bool = False) -> bytes:
    """
    按显示模式渲染响应

    Args:
        response: 最终响应
        raw: 原始响应（头部 + 内容）
        content_only: 只输出内容

    Returns:
        bytes: 渲染结果；默认模式为状态行、空行和内容
    """
    if raw:
        return response.raw
    if content_only:
        return response.body
    return response.status_line.encode('latin-1') + b'\n\n' + response.body


def build_options(args: argparse.Namespace, config: ClientConfig) -> RequestOptions:
    headers = list(args.header)
    body = b''
    if args.command == 'post':
        if args.content_type:
            headers.append(f"Content-Type: {args.content_type}")
        if args.input:
            try:
                body = read_all(args.input)
            except TorilateError as e:
                raise e.propagate(f"读取请求体文件失败: {args.input}")
        elif args.body is not None:
            body = args.body.encode('utf-8')

    return RequestOptions(
        uri=args.url,
        method=args.command.upper(),
        body=body,
        headers=headers,
        follow=args.follow or config.follow_redirects,
        max_redirects=config.max_redirects if args.max_redirs is None else args.max_redirs,
    )


def run(args: argparse.Namespace, config: ClientConfig) -> int:
    """执行已解析的命令，失败时抛出 TorilateError"""
    if args.proxy_host or args.proxy_port is not None:
        config.proxy = ProxyConfig(
            host=args.proxy_host or config.proxy.host,
            port=config.proxy.port if args.proxy_port is None else args.proxy_port,
            user_id=config.proxy.user_id,
        )
    options = build_options(args, config)

    logger.debug(f"代理: {config.proxy.host}:{config.proxy.port}, "
                 f"follow={options.follow}, max_redirects={options.max_redirects}")

    with network_session():
        response = perform(options, config)

    if args.verbose:
        print(f"HTTP {options.method} 请求成功! 收到 {response.bytes_received} 字节。", file=sys.stderr)
        print(f"响应状态码: {response.status_code}", file=sys.stderr)
        if response.truncated:
            print(f"响应超过 {response.capacity} 字节，已被截断。", file=sys.stderr)

    output = render_response(response, args.raw, args.content_only)
    if args.output:
        try:
            write_all(args.output, output)
        except TorilateError as e:
            raise e.propagate(f"写入响应文件失败: {args.output}")
        print(f"已将 {len(output)} 字节写入 {args.output}")
    else:
        sys.stdout.flush()
        sys.stdout.buffer.write(output + b'\n')
        sys.stdout.buffer.flush()
    return int(ErrorCode.SUCCESS)


def main(argv: Optional[List[str]] = None) -> int:
    """命令行入口，返回退出码"""
    argv = sys.argv[1:] if argv is None else list(argv)
    parser = build_parser()
    verbose = '-v' in argv or '--verbose' in argv

    try:
        if not argv:
            raise NoArgsError(f"使用 '{PROG_NAME} help' 查看用法")
        if argv[0] == 'help':
            parser.print_help()
            return int(ErrorCode.SUCCESS)
        if argv[0] not in COMMANDS:
            raise InvalidCommandError(
                f"无效的命令 '{argv[0]}'，使用 '{PROG_NAME} help' 查看用法"
            )

        args = parser.parse_args(argv)
        cli_level = 'DEBUG' if args.debug else ('INFO' if args.verbose else None)
        setup_logging(cli_level)

        config = ClientConfig.from_dict(load_config(args.config))
        if cli_level is None:
            LoggerManager().set_level(config.log_level)
        return run(args, config)
    except TorilateError as e:
        print(e.format(verbose), file=sys.stderr)
        return int(e.code)
    except KeyboardInterrupt:
        logger.info("收到键盘中断信号")
        return int(ErrorCode.SUCCESS)


if __name__ == '__main__':
    sys.exit(main())
