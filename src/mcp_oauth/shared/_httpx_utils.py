"""创建 httpx 客户端的工具函数。"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from mcp_oauth.shared.exceptions import OAuthNetworkError

DEFAULT_TIMEOUT = 30.0


def create_oauth_http_client(
    headers: dict[str, str] | None = None,
    timeout: float | httpx.Timeout | None = None,
) -> httpx.AsyncClient:
    """创建带有统一默认值的 httpx.AsyncClient。

    默认跟随重定向，超时时间为 30 秒。

    参数：
        headers: 每个请求都附带的请求头（可选）。
        timeout: 超时时间（秒）或 httpx.Timeout，默认 30 秒。

    返回：
        配置好的 httpx.AsyncClient，调用方负责关闭。
    """
    kwargs: dict[str, Any] = {"follow_redirects": True}

    if timeout is None:
        kwargs["timeout"] = httpx.Timeout(DEFAULT_TIMEOUT)
    elif isinstance(timeout, httpx.Timeout):
        kwargs["timeout"] = timeout
    else:
        kwargs["timeout"] = httpx.Timeout(timeout)

    if headers is not None:
        kwargs["headers"] = headers

    return httpx.AsyncClient(**kwargs)


@asynccontextmanager
async def http_client_scope(
    client: httpx.AsyncClient | None,
    timeout: float | httpx.Timeout | None = None,
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """使用调用方提供的客户端；没有时创建一个临时客户端并在退出时关闭。"""
    if client is not None:
        yield client
        return

    async with create_oauth_http_client(timeout=timeout) as owned:
        yield owned


async def send_request(client: httpx.AsyncClient, request: httpx.Request) -> httpx.Response:
    """发送请求，把传输层异常转换为 OAuthNetworkError。"""
    try:
        return await client.send(request)
    except httpx.TransportError as e:
        raise OAuthNetworkError(f"{request.method} {request.url} failed: {e!r}") from e
