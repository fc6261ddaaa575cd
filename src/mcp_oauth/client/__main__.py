"""
OAuth 令牌获取工具。

在浏览器中完成授权码 + PKCE 流程，并打印可直接 export 的 OAUTH_* 环境变量。

    python -m mcp_oauth.client --issuer https://auth.example.com --client-id my-client
"""

import argparse
import logging
import os
import sys
import webbrowser
from functools import partial

import anyio
import anyio.to_thread

from mcp_oauth.client.callback import CallbackServer
from mcp_oauth.client.config import (
    ENV_ACCESS_TOKEN,
    ENV_AUTHORIZATION_URL,
    ENV_CLIENT_ID,
    ENV_CLIENT_SECRET,
    ENV_REDIRECT_URI,
    ENV_REFRESH_TOKEN,
    ENV_RESOURCE,
    ENV_SCOPES,
    ENV_TOKEN_URL,
    load_env,
)
from mcp_oauth.client.discovery import discover_authorization_server_metadata
from mcp_oauth.client.token_manager import TokenManager
from mcp_oauth.shared.auth import OAuthConfig, OAuthMetadata, TokenSet
from mcp_oauth.shared.exceptions import OAuthFlowError

logger = logging.getLogger("mcp_oauth.client")

DEFAULT_REDIRECT_URI = "http://localhost:8888/callback"
DEFAULT_SCOPES = ["openid", "email", "profile", "offline_access"]


def build_export_lines(config: OAuthConfig, tokens: TokenSet) -> list[str]:
    """生成供 stdio 服务器使用的环境变量 export 语句。"""
    lines = [
        f'export {ENV_ACCESS_TOKEN}="{tokens.access_token}"',
        f'export {ENV_TOKEN_URL}="{config.token_endpoint}"',
        f'export {ENV_CLIENT_ID}="{config.client_id}"',
    ]
    if tokens.refresh_token:
        lines.append(f'export {ENV_REFRESH_TOKEN}="{tokens.refresh_token}"')
    if config.client_secret:
        lines.append(f'export {ENV_CLIENT_SECRET}="{config.client_secret}"')
    if config.resource:
        lines.append(f'export {ENV_RESOURCE}="{config.resource}"')
    return lines


async def main(args: argparse.Namespace) -> None:
    server_metadata: OAuthMetadata | None = None
    if args.issuer:
        logger.info("Discovering authorization server metadata for %s", args.issuer)
        server_metadata = await discover_authorization_server_metadata(args.issuer, timeout=args.timeout)

    if server_metadata is not None:
        config = OAuthConfig.from_metadata(
            server_metadata,
            client_id=args.client_id,
            redirect_uri=args.redirect_uri,
            client_secret=args.client_secret,
            scopes=args.scopes,
            resource=args.resource,
        )
    else:
        if not args.authorization_url or not args.token_url:
            raise OAuthFlowError("Either --issuer or both --authorization-url and --token-url are required")
        config = OAuthConfig(
            client_id=args.client_id,
            client_secret=args.client_secret,
            authorization_endpoint=args.authorization_url,
            token_endpoint=args.token_url,
            redirect_uri=args.redirect_uri,
            scopes=args.scopes,
            resource=args.resource,
        )

    manager = TokenManager(config, timeout=args.timeout)
    request = manager.begin_flow(server_metadata=server_metadata)

    # 先启动回调服务器，再让用户打开授权页面
    callback_server = CallbackServer.from_redirect_uri(config.redirect_uri)
    callback_server.start()
    try:
        print("\nPlease visit this URL to authorize:\n")
        print(request.authorization_url)
        print()
        if not args.no_browser:
            webbrowser.open(request.authorization_url)

        code, state = await anyio.to_thread.run_sync(
            partial(callback_server.wait_for_callback, timeout=args.callback_timeout)
        )
    finally:
        callback_server.stop()

    tokens = await manager.complete_flow(code, state or "")
    logger.info("Authorization complete")

    print("\nAdd the following to your environment:\n")
    for line in build_export_lines(config, tokens):
        print(line)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    load_env()

    parser = argparse.ArgumentParser(description="Obtain OAuth tokens with the authorization code + PKCE flow")
    parser.add_argument("--issuer", help="授权服务器 issuer，用于自动发现端点")
    parser.add_argument("--client-id", default=os.getenv(ENV_CLIENT_ID, "my-mcp-server"), help="OAuth 客户端 ID")
    parser.add_argument("--client-secret", default=os.getenv(ENV_CLIENT_SECRET), help="OAuth 客户端密钥（可选）")
    parser.add_argument("--authorization-url", default=os.getenv(ENV_AUTHORIZATION_URL), help="授权端点")
    parser.add_argument("--token-url", default=os.getenv(ENV_TOKEN_URL), help="令牌端点")
    parser.add_argument(
        "--redirect-uri",
        default=os.getenv(ENV_REDIRECT_URI, DEFAULT_REDIRECT_URI),
        help="重定向地址，本地回调服务器监听该地址",
    )
    parser.add_argument(
        "--scope",
        dest="scopes",
        action="append",
        help="要申请的 scope，可多次使用",
    )
    parser.add_argument("--resource", default=os.getenv(ENV_RESOURCE), help="RFC 8707 资源指示符")
    parser.add_argument("--no-browser", action="store_true", help="不自动打开浏览器")
    parser.add_argument("--timeout", type=float, default=30.0, help="HTTP 请求超时（秒）")
    parser.add_argument("--callback-timeout", type=float, default=300.0, help="等待回调的超时（秒）")

    args = parser.parse_args(argv)
    if not args.scopes:
        env_scopes = os.getenv(ENV_SCOPES)
        args.scopes = env_scopes.split() if env_scopes else list(DEFAULT_SCOPES)
    return args


def cli():
    logging.basicConfig(level=logging.INFO)
    args = parse_args()
    try:
        anyio.run(partial(main, args))
    except (OAuthFlowError, TimeoutError) as e:
        logger.error("Authorization failed: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    cli()
