"""
本地回调服务器，用于接收授权服务器重定向回来的 code / state。
"""

import threading
import time
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any
from urllib.parse import parse_qs, urlparse

from mcp_oauth.shared.exceptions import OAuthFlowError

# 授权成功后返回给浏览器的页面
_SUCCESS_PAGE = (
    b"<html><body><h1>Authorization complete</h1>"
    b"<p>The authorization code was received. This window can be closed.</p></body></html>"
)
# 授权服务器返回 error 时展示的页面
_FAILURE_PAGE = b"<html><body><h1>Authorization failed</h1><p>This window can be closed.</p></body></html>"


class AuthorizationDeniedError(OAuthFlowError):
    """授权服务器在重定向中返回了 error 参数（例如用户拒绝授权）。"""

    def __init__(self, error: str, error_description: str | None = None):
        self.error = error
        self.error_description = error_description
        message = f"OAuth error: {error}"
        if error_description:
            message = f"{message} - {error_description}"
        super().__init__(message)


class CallbackHandler(BaseHTTPRequestHandler):
    """简单的 HTTP 请求处理器，用于接收 OAuth 回调请求。"""

    def __init__(self, request, client_address, server, callback_data: dict[str, Any], callback_path: str):
        """
        初始化处理器，并保存回调数据的引用。

        参数:
            request: 客户端的请求对象
            client_address: 客户端地址
            server: 当前 HTTP 服务器实例
            callback_data: 用于存储 code / state / error 的共享字典
            callback_path: 只有该路径上的请求才被当作回调处理
        """
        self.callback_data = callback_data
        self.callback_path = callback_path
        super().__init__(request, client_address, server)

    def do_GET(self):
        """
        处理重定向回来的 GET 请求。
        从查询参数中解析授权码或错误信息。
        """
        parsed = urlparse(self.path)
        # 其他路径（例如浏览器自动请求的 /favicon.ico）一律 404
        if parsed.path != self.callback_path:
            self.send_response(404)
            self.end_headers()
            return

        query_params = parse_qs(parsed.query)

        if "error" in query_params:
            # 授权失败：记录错误码和描述，由 wait_for_callback 抛出
            self.callback_data["error"] = query_params["error"][0]
            self.callback_data["error_description"] = query_params.get("error_description", [None])[0]

            self.send_response(400)
            self.send_header("Content-type", "text/html")
            self.end_headers()
            self.wfile.write(_FAILURE_PAGE)
        elif "code" in query_params:
            # 先写 state 再写授权码，等待方看到授权码时 state 已经就绪
            self.callback_data["state"] = query_params.get("state", [None])[0]
            self.callback_data["authorization_code"] = query_params["code"][0]

            self.send_response(200)
            self.send_header("Content-type", "text/html")
            self.end_headers()
            self.wfile.write(_SUCCESS_PAGE)
        else:
            # 既没有 code 也没有 error 的回调请求
            self.send_response(400)
            self.end_headers()

    def log_message(self, format, *args):
        """重写日志方法，不把访问日志打印到终端。"""
        pass


class CallbackServer:
    """在后台线程中运行的回调服务器。"""

    def __init__(self, host: str = "localhost", port: int = 3030, callback_path: str = "/callback"):
        """
        参数:
            host: 监听地址，默认 localhost
            port: 监听端口，传入 0 时由系统分配
            callback_path: 回调路径，需要与 redirect_uri 的路径一致
        """
        self.host = host
        self.port = port
        self.callback_path = callback_path or "/"
        self.server: HTTPServer | None = None
        self.thread: threading.Thread | None = None
        # 处理器线程写入、等待方读取的共享数据
        self.callback_data: dict[str, Any] = {
            "authorization_code": None,
            "state": None,
            "error": None,
            "error_description": None,
        }

    @classmethod
    def from_redirect_uri(cls, redirect_uri: str) -> "CallbackServer":
        """根据 redirect_uri 中的主机、端口和路径创建服务器。"""
        parsed = urlparse(redirect_uri)
        # 未写端口时按 scheme 取默认端口
        port = parsed.port or (443 if parsed.scheme == "https" else 80)
        return cls(host=parsed.hostname or "localhost", port=port, callback_path=parsed.path or "/")

    def _create_handler_with_data(self):
        """
        创建能访问 callback_data 的处理器类。

        返回:
            继承自 CallbackHandler 的处理器类
        """
        callback_data = self.callback_data
        callback_path = self.callback_path

        class DataCallbackHandler(CallbackHandler):
            # HTTPServer 只传三个参数，这里补上共享数据和回调路径
            def __init__(self, request, client_address, server):
                super().__init__(request, client_address, server, callback_data, callback_path)

        return DataCallbackHandler

    def start(self) -> None:
        """启动服务器。端口为 0 时由系统分配，实际端口写回 self.port。"""
        self.server = HTTPServer((self.host, self.port), self._create_handler_with_data())
        self.port = self.server.server_address[1]
        # 后台线程运行，不阻塞调用方
        self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self.thread.start()

    def stop(self) -> None:
        """停止服务器，关闭监听 socket 并等待线程退出。"""
        if self.server:
            self.server.shutdown()
            self.server.server_close()
        if self.thread:
            self.thread.join(timeout=1)

    def wait_for_callback(self, timeout: float = 300) -> tuple[str, str | None]:
        """
        阻塞等待回调到来，直到超时。

        参数:
            timeout: 最长等待秒数，默认 300 秒

        返回:
            (授权码, state)

        异常:
            AuthorizationDeniedError: 授权服务器返回了 error
            TimeoutError: 超时仍未收到回调
        """
        start_time = time.time()
        while time.time() - start_time < timeout:
            if self.callback_data["error"]:
                raise AuthorizationDeniedError(self.callback_data["error"], self.callback_data["error_description"])
            if self.callback_data["authorization_code"]:
                return self.callback_data["authorization_code"], self.callback_data["state"]
            # 每 100ms 检查一次
            time.sleep(0.1)
        raise TimeoutError("Timed out waiting for OAuth callback")
