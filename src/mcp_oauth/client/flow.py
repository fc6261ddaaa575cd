"""
授权码流程：构建授权 URL、用授权码换取令牌、刷新令牌。

Authorization code flow helpers: authorization URL, code exchange and refresh.
"""

import logging
import time
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from mcp_oauth.client.pkce import PKCE_METHOD, PKCEState
from mcp_oauth.shared._httpx_utils import http_client_scope, send_request
from mcp_oauth.shared.auth import OAuthConfig, OAuthToken, TokenSet
from mcp_oauth.shared.exceptions import ConfigurationError, OAuthTokenError, TokenExchangeError, TokenRefreshError

logger = logging.getLogger(__name__)


def build_authorization_url(config: OAuthConfig, pkce_state: PKCEState, scopes: list[str] | None = None) -> str:
    """构建授权重定向 URL。

    不会校验服务器的 PKCE 支持，调用方应先执行 validate_pkce_support。

    参数:
        config: OAuth 客户端配置，需要包含 authorization_endpoint 和 redirect_uri
        pkce_state: 本次授权尝试的 PKCE 状态，提供 state 和 code_challenge
        scopes: 请求的 scope 列表，为 None 或空列表时完全省略 scope 参数

    返回:
        完整的授权 URL，用户代理需要跳转到该地址
    """
    # 授权端点和回调地址缺一不可
    if not config.authorization_endpoint:
        raise ConfigurationError("authorization_endpoint is not configured")
    if not config.redirect_uri:
        raise ConfigurationError("redirect_uri is not configured")

    # 构建授权请求参数，PKCE 固定使用 S256
    auth_params = {
        "client_id": config.client_id,
        "response_type": "code",
        "redirect_uri": config.redirect_uri,
        "state": pkce_state.state,
        "code_challenge": pkce_state.code_challenge,
        "code_challenge_method": PKCE_METHOD,
    }

    # 多个 scope 以空格分隔
    if scopes:
        auth_params["scope"] = " ".join(scopes)

    # RFC 8707 资源参数
    if config.resource:
        auth_params["resource"] = config.resource

    # 授权端点本身可能已带查询参数
    separator = "&" if "?" in config.authorization_endpoint else "?"
    return f"{config.authorization_endpoint}{separator}{urlencode(auth_params)}"


def _create_token_request(config: OAuthConfig, data: dict[str, str]) -> httpx.Request:
    """
    构建发往令牌端点的表单请求。

    参数:
        config: OAuth 客户端配置
        data: 与授权类型相关的表单字段，会就地补充 client_secret 和 resource

    返回:
        尚未发送的 POST 请求
    """
    # 机密客户端附带 client_secret
    if config.client_secret:
        data["client_secret"] = config.client_secret

    # 令牌请求同样携带资源参数
    if config.resource:
        data["resource"] = config.resource

    return httpx.Request(
        "POST",
        config.token_endpoint,
        data=data,
        headers={"Content-Type": "application/x-www-form-urlencoded", "Accept": "application/json"},
    )


def _parse_token_response(response: httpx.Response, error_cls: type[OAuthTokenError]) -> OAuthToken:
    # 响应体不符合令牌格式时转换为对应的令牌错误
    try:
        return OAuthToken.model_validate_json(response.content)
    except ValidationError as e:
        raise error_cls(
            f"Invalid token response: {e}",
            status_code=response.status_code,
            body=response.text,
        ) from e


async def exchange_code(
    config: OAuthConfig,
    code: str,
    code_verifier: str,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float | None = None,
) -> TokenSet:
    """
    用授权码换取访问令牌。

    参数:
        config: OAuth 客户端配置，redirect_uri 必须与授权请求时一致
        code: 回调中收到的授权码
        code_verifier: 本次授权尝试生成的 PKCE verifier
        client: 可选的共享 httpx 客户端，不提供时临时创建
        timeout: 临时客户端的超时秒数

    返回:
        带有绝对过期时间的令牌集合
    """
    if not config.redirect_uri:
        raise ConfigurationError("redirect_uri is not configured")

    # 构建授权码换令牌请求
    request = _create_token_request(
        config,
        {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": config.redirect_uri,
            "client_id": config.client_id,
            # 原始 verifier，服务器会重新计算哈希
            "code_verifier": code_verifier,
        },
    )

    # 发送请求，并以收到响应的时间作为过期时间的基准
    async with http_client_scope(client, timeout) as http:
        response = await send_request(http, request)
    received_at = time.time()

    # 非 2xx 响应保留状态码和响应体
    if not response.is_success:
        raise TokenExchangeError(
            f"Token exchange failed: {response.status_code} {response.text}",
            status_code=response.status_code,
            body=response.text,
        )

    # 解析令牌响应
    token = _parse_token_response(response, TokenExchangeError)
    logger.info(f"Token exchange succeeded at {config.token_endpoint}")
    return TokenSet.from_token_response(token, received_at=received_at)


async def refresh_access_token(
    config: OAuthConfig,
    refresh_token: str,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float | None = None,
) -> TokenSet:
    """
    使用 refresh token 刷新访问令牌。

    参数:
        config: OAuth 客户端配置
        refresh_token: 当前存储的 refresh token
        client: 可选的共享 httpx 客户端，不提供时临时创建
        timeout: 临时客户端的超时秒数

    返回:
        新的令牌集合；服务器没有轮换 refresh token 时沿用旧的 refresh token
    """
    # 构建刷新请求
    request = _create_token_request(
        config,
        {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": config.client_id,
        },
    )

    # 发送请求并记录响应时间
    async with http_client_scope(client, timeout) as http:
        response = await send_request(http, request)
    received_at = time.time()

    # 刷新失败时由调用方决定是否清除令牌
    if not response.is_success:
        raise TokenRefreshError(
            f"Token refresh failed: {response.status_code} {response.text}",
            status_code=response.status_code,
            body=response.text,
        )

    # 解析令牌响应，缺少 refresh_token 时回退到旧值
    token = _parse_token_response(response, TokenRefreshError)
    logger.info(f"Token refresh succeeded at {config.token_endpoint}")
    return TokenSet.from_token_response(token, received_at=received_at, fallback_refresh_token=refresh_token)
