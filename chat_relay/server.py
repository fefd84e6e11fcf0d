"""中继端点的 HTTP 服务器。

基于标准库 http.server，每个请求一个线程，请求之间不共享可变状态。
"""

import argparse
from http.server import BaseHTTPRequestHandler, HTTPServer
from socketserver import ThreadingMixIn
from typing import Optional

from chat_relay.api.handler import ChatRelayHandler, HttpRequest, HttpResponse
from chat_relay.api.service import get_default_handler
from chat_relay.config.settings import settings
from chat_relay.infrastructure.logging.logger import logger


class RelayRequestHandler(BaseHTTPRequestHandler):
    """把收到的请求转换为 HttpRequest，交给 ChatRelayHandler 处理。"""

    relay_handler: Optional[ChatRelayHandler] = None

    def log_message(self, format, *args):
        logger.debug(format % args)

    def _read_body(self) -> bytes:
        try:
            length = int(self.headers.get("Content-Length") or 0)
        except ValueError:
            # 无法解析的长度按空请求体处理，由处理器返回 JSON 错误
            length = 0
        return self.rfile.read(length) if length > 0 else b""

    def _dispatch(self):
        body = self._read_body() if self.command == "POST" else b""
        request = HttpRequest(
            method=self.command,
            body=body,
            path=self.path,
            headers={k: v for k, v in self.headers.items()},
        )
        relay = self.relay_handler or get_default_handler()
        self._send(relay.handle(request))

    def _send(self, response: HttpResponse):
        self.send_response(response.status)
        for name, value in response.headers.items():
            self.send_header(name, value)
        if response.status != 204:
            self.send_header("Content-Length", str(len(response.body)))
        self.end_headers()
        if response.body and self.command != "HEAD":
            self.wfile.write(response.body)

    do_OPTIONS = _dispatch
    do_POST = _dispatch
    do_GET = _dispatch
    do_HEAD = _dispatch
    do_PUT = _dispatch
    do_PATCH = _dispatch
    do_DELETE = _dispatch


# Vercel 等 Serverless 运行时按名称 `handler` 查找请求处理类
handler = RelayRequestHandler


class ThreadingHTTPServer(ThreadingMixIn, HTTPServer):
    daemon_threads = True


def make_server(host: str, port: int, relay_handler: Optional[ChatRelayHandler] = None) -> HTTPServer:
    """构造多线程服务器；port 传 0 时由系统分配空闲端口。"""
    request_handler = type(
        "BoundRelayRequestHandler",
        (RelayRequestHandler,),
        {"relay_handler": relay_handler},
    )
    return ThreadingHTTPServer((host, port), request_handler)


def run_server(host: str = settings.host, port: int = settings.port):
    """启动 HTTP 服务器。"""
    server = make_server(host, port)
    logger.info("Chat relay listening", extra={"extra": {"host": host, "port": server.server_port}})
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()


def main():
    """命令行入口。"""
    parser = argparse.ArgumentParser(description="Chat Relay Server")
    parser.add_argument("--host", default=settings.host,
                        help=f"监听地址（默认 {settings.host}）")
    parser.add_argument("-p", "--port", type=int, default=settings.port,
                        help=f"监听端口（默认 {settings.port}）")
    args = parser.parse_args()

    run_server(args.host, args.port)


if __name__ == "__main__":
    main()
