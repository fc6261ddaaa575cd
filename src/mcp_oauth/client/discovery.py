"""
OAuth 元数据发现。

支持 RFC 8414 授权服务器元数据、OpenID Connect Discovery 1.0 兼容路径，
以及 RFC 9728 受保护资源元数据，按顺序尝试多个 well-known 地址。
"""

import logging
from typing import TypeVar
from urllib.parse import ParseResult, urlparse

import httpx
from pydantic import BaseModel, ValidationError

from mcp_oauth.client.challenge import parse_www_authenticate
from mcp_oauth.client.pkce import validate_pkce_support
from mcp_oauth.client.scopes import select_scopes, split_scopes
from mcp_oauth.shared._httpx_utils import http_client_scope, send_request
from mcp_oauth.shared.auth import (
    DiscoveredAuthorization,
    OAuthConfig,
    OAuthMetadata,
    ProtectedResourceMetadata,
    ResourceAuthorization,
)
from mcp_oauth.shared.exceptions import DiscoveryFailedError, MetadataError, OAuthNetworkError

logger = logging.getLogger(__name__)

OAUTH_AUTHORIZATION_SERVER_PATH = "/.well-known/oauth-authorization-server"
OPENID_CONFIGURATION_PATH = "/.well-known/openid-configuration"
OAUTH_PROTECTED_RESOURCE_PATH = "/.well-known/oauth-protected-resource"

_DEFAULT_PORTS = {"http": 80, "https": 443}

MetadataT = TypeVar("MetadataT", bound=BaseModel)


def _parse_absolute_url(url: str) -> ParseResult:
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        raise ValueError(f"Not an absolute URL: {url!r}")
    return parsed


def _origin(parsed: ParseResult) -> str:
    """返回 scheme://host[:port]，省略默认端口。"""
    scheme = parsed.scheme.lower()
    host = (parsed.hostname or "").lower()
    if ":" in host:
        host = f"[{host}]"
    port = parsed.port
    if port is None or port == _DEFAULT_PORTS.get(scheme):
        return f"{scheme}://{host}"
    return f"{scheme}://{host}:{port}"


def _origin_and_path(url: str) -> tuple[str, str]:
    """拆出 origin 和去掉末尾斜杠的路径（根路径返回空字符串）。"""
    parsed = _parse_absolute_url(url)
    return f"{parsed.scheme}://{parsed.netloc}", parsed.path.rstrip("/")


def build_authorization_server_metadata_discovery_urls(issuer_url: str) -> list[str]:
    """按优先级生成授权服务器元数据的发现地址。

    带路径的 issuer（如 https://auth.example.com/tenant1）：
        1. RFC 8414 路径插入
        2. OpenID Connect 路径插入
        3. OpenID Connect 路径追加（旧版兼容）
    不带路径的 issuer：
        1. RFC 8414 根路径
        2. OpenID Connect 根路径
    """
    origin, path = _origin_and_path(issuer_url)

    if path:
        return [
            f"{origin}{OAUTH_AUTHORIZATION_SERVER_PATH}{path}",
            f"{origin}{OPENID_CONFIGURATION_PATH}{path}",
            f"{origin}{path}{OPENID_CONFIGURATION_PATH}",
        ]

    return [
        f"{origin}{OAUTH_AUTHORIZATION_SERVER_PATH}",
        f"{origin}{OPENID_CONFIGURATION_PATH}",
    ]


def build_protected_resource_metadata_discovery_urls(resource_url: str) -> list[str]:
    """生成受保护资源元数据的发现地址：先路径插入，再回退到根路径。"""
    origin, path = _origin_and_path(resource_url)

    urls: list[str] = []
    if path:
        urls.append(f"{origin}{OAUTH_PROTECTED_RESOURCE_PATH}{path}")
    # 根路径总是作为最后的回退
    urls.append(f"{origin}{OAUTH_PROTECTED_RESOURCE_PATH}")
    return urls


def issuer_matches(metadata_issuer: str, expected_issuer: str) -> bool:
    """比较 issuer：origin 不区分大小写，路径必须完全一致。"""
    try:
        actual = _parse_absolute_url(metadata_issuer)
        expected = _parse_absolute_url(expected_issuer)
    except ValueError:
        return False

    return _origin(actual) == _origin(expected) and (actual.path or "/") == (expected.path or "/")


def create_oauth_metadata_request(url: str) -> httpx.Request:
    """构建元数据发现的 GET 请求。"""
    return httpx.Request("GET", url, headers={"Accept": "application/json"})


async def _fetch_metadata(client: httpx.AsyncClient, url: str, model: type[MetadataT]) -> MetadataT:
    response = await send_request(client, create_oauth_metadata_request(url))

    if not response.is_success:
        raise MetadataError(
            f"Failed to fetch metadata from {url}: {response.status_code} {response.reason_phrase}",
            url=url,
            status_code=response.status_code,
        )

    try:
        return model.model_validate_json(response.content)
    except ValidationError as e:
        raise MetadataError(f"Invalid metadata from {url}: {e}", url=url, status_code=response.status_code) from e


async def fetch_authorization_server_metadata(
    url: str,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float | None = None,
) -> OAuthMetadata:
    """从单个地址获取并校验授权服务器元数据（RFC 8414 第 2 节的必填字段）。"""
    async with http_client_scope(client, timeout) as http:
        return await _fetch_metadata(http, url, OAuthMetadata)


async def fetch_protected_resource_metadata(
    url: str,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float | None = None,
) -> ProtectedResourceMetadata:
    """从单个地址获取并校验受保护资源元数据。"""
    async with http_client_scope(client, timeout) as http:
        return await _fetch_metadata(http, url, ProtectedResourceMetadata)


async def discover_authorization_server_metadata(
    issuer_url: str,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float | None = None,
) -> OAuthMetadata:
    """依次尝试各个发现地址，返回第一个 issuer 匹配的元数据。

    所有地址都失败时抛出 DiscoveryFailedError，其中包含全部尝试过的地址和最后一个错误。
    """
    try:
        discovery_urls = build_authorization_server_metadata_discovery_urls(issuer_url)
    except ValueError as e:
        # issuer 可能来自远端的受保护资源元数据，不是绝对 URL 时直接判定发现失败
        raise DiscoveryFailedError(issuer_url, [], e) from e

    last_error: Exception | None = None

    async with http_client_scope(client, timeout) as http:
        for url in discovery_urls:
            try:
                metadata = await _fetch_metadata(http, url, OAuthMetadata)
            except (MetadataError, OAuthNetworkError) as e:
                logger.debug(f"Authorization server metadata discovery failed: {url}: {e}")
                last_error = e
                continue

            if issuer_matches(metadata.issuer, issuer_url):
                logger.info(f"Discovered authorization server metadata for {issuer_url} at {url}")
                return metadata

            # issuer 不匹配时继续尝试下一个地址
            logger.debug(f"Issuer mismatch at {url}: expected {issuer_url}, got {metadata.issuer}")
            last_error = MetadataError(f"Issuer mismatch: expected {issuer_url}, got {metadata.issuer}", url=url)

    raise DiscoveryFailedError(issuer_url, discovery_urls, last_error)


async def discover_protected_resource_metadata(
    resource_url: str,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float | None = None,
) -> ProtectedResourceMetadata:
    """通过 well-known 地址发现受保护资源元数据。"""
    try:
        discovery_urls = build_protected_resource_metadata_discovery_urls(resource_url)
    except ValueError as e:
        raise DiscoveryFailedError(resource_url, [], e) from e

    last_error: Exception | None = None

    async with http_client_scope(client, timeout) as http:
        for url in discovery_urls:
            try:
                metadata = await _fetch_metadata(http, url, ProtectedResourceMetadata)
            except (MetadataError, OAuthNetworkError) as e:
                logger.debug(f"Protected resource metadata discovery failed: {url}: {e}")
                last_error = e
                continue

            logger.info(f"Discovered protected resource metadata for {resource_url} at {url}")
            return metadata

    raise DiscoveryFailedError(resource_url, discovery_urls, last_error)


async def discover_authorization_from_resource(
    resource_url: str,
    www_authenticate: str | None = None,
    *,
    client: httpx.AsyncClient | None = None,
    timeout: float | None = None,
) -> ResourceAuthorization:
    """根据资源地址（以及可选的 WWW-Authenticate 头）找出授权服务器和推荐 scope。

    质询中带有 resource_metadata 时直接获取该地址，否则回退到 well-known 发现。
    质询中的 scope 优先于元数据中的 scopes_supported。
    """
    challenge = parse_www_authenticate(www_authenticate)
    metadata_url = challenge.resource_metadata if challenge else None

    async with http_client_scope(client, timeout) as http:
        if metadata_url:
            try:
                metadata = await _fetch_metadata(http, metadata_url, ProtectedResourceMetadata)
            except (MetadataError, OAuthNetworkError) as e:
                raise DiscoveryFailedError(resource_url, [metadata_url], e) from e
        else:
            metadata = await discover_protected_resource_metadata(resource_url, client=http)

    if challenge and challenge.scope:
        scopes: list[str] | None = split_scopes(challenge.scope)
    else:
        scopes = metadata.scopes_supported

    return ResourceAuthorization(
        authorization_servers=metadata.authorization_servers,
        scopes=scopes,
        resource_metadata=metadata,
    )


async def discover_oauth_config(
    resource_url: str,
    *,
    client_id: str,
    redirect_uri: str,
    client_secret: str | None = None,
    www_authenticate: str | None = None,
    configured_scopes: list[str] | None = None,
    client: httpx.AsyncClient | None = None,
    timeout: float | None = None,
) -> DiscoveredAuthorization:
    """完整的发现流程：受保护资源元数据 → 授权服务器元数据 → PKCE 校验 → scope 选择。"""
    async with http_client_scope(client, timeout) as http:
        resource_auth = await discover_authorization_from_resource(resource_url, www_authenticate, client=http)
        resource_metadata = resource_auth.resource_metadata

        # 使用受保护资源元数据中列出的第一个授权服务器
        issuer = resource_auth.authorization_servers[0]
        server_metadata = await discover_authorization_server_metadata(issuer, client=http)

    validate_pkce_support(server_metadata)

    challenge = parse_www_authenticate(www_authenticate)
    scopes = select_scopes(
        challenge.scope if challenge else None,
        resource_metadata.scopes_supported,
        configured_scopes,
    )

    config = OAuthConfig.from_metadata(
        server_metadata,
        client_id=client_id,
        redirect_uri=redirect_uri,
        client_secret=client_secret,
        scopes=configured_scopes,
        resource=resource_metadata.resource,
    )

    return DiscoveredAuthorization(
        config=config,
        server_metadata=server_metadata,
        resource_metadata=resource_metadata,
        scopes=scopes,
    )
