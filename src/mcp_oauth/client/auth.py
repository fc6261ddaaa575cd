"""
OAuth2 Authentication implementation for HTTPX.

Injects bearer tokens from a TokenManager, refreshes once on 401 and
surfaces 403 insufficient_scope as a step-up signal.

用于 HTTPX 的 OAuth2 认证实现。
从 TokenManager 注入 Bearer 令牌，401 时刷新一次，403 时给出提升授权信号。
"""

import logging
from collections.abc import AsyncGenerator, Awaitable, Callable

import httpx

from mcp_oauth.client.step_up import check_response_insufficient_scope
from mcp_oauth.client.token_manager import TokenManager
from mcp_oauth.shared.auth import InsufficientScopeSignal
from mcp_oauth.shared.exceptions import OAuthFlowError

logger = logging.getLogger(__name__)

InsufficientScopeHandler = Callable[[InsufficientScopeSignal], Awaitable[None]]


class OAuthClientProvider(httpx.Auth):
    """
    用于 HTTPX 的 OAuth2 认证。
    令牌的获取和刷新由 TokenManager 负责，本类只负责附加请求头和解读资源服务器的响应。
    """

    # 需要读取响应头和响应体来判断 401/403
    requires_response_body = True

    def __init__(
        self,
        token_manager: TokenManager,
        on_insufficient_scope: InsufficientScopeHandler | None = None,
    ):
        self.token_manager = token_manager
        self.on_insufficient_scope = on_insufficient_scope
        # 最近一次检测到的 scope 不足信号
        self.last_insufficient_scope: InsufficientScopeSignal | None = None

    def _add_auth_header(self, request: httpx.Request, access_token: str) -> None:
        """为请求添加 Authorization 头。"""
        tokens = self.token_manager.tokens
        token_type = tokens.token_type if tokens else "Bearer"
        request.headers["Authorization"] = f"{token_type} {access_token}"

    async def async_auth_flow(self, request: httpx.Request) -> AsyncGenerator[httpx.Request, httpx.Response]:
        """HTTPX 的异步认证流程集成入口。"""
        access_token = await self.token_manager.get_valid_access_token()
        if access_token:
            self._add_auth_header(request, access_token)

        response = yield request

        # 401 且持有 refresh token 时，强制刷新一次并重试
        tokens = self.token_manager.tokens
        if response.status_code == 401 and access_token and tokens is not None and tokens.refresh_token:
            try:
                refreshed = await self.token_manager.refresh_tokens(stale_access_token=access_token)
            except OAuthFlowError as e:
                # 刷新失败时令牌已被清除，返回原始 401 响应由调用方重新授权
                logger.warning(f"Token refresh after 401 failed: {e}")
                return

            if refreshed is None:
                return

            self._add_auth_header(request, refreshed.access_token)
            response = yield request

        if response.status_code == 403:
            current_tokens = self.token_manager.tokens
            signal = check_response_insufficient_scope(
                response,
                current_tokens.scopes if current_tokens else None,
            )
            if signal is not None:
                self.last_insufficient_scope = signal
                if self.on_insufficient_scope is not None:
                    await self.on_insufficient_scope(signal)
