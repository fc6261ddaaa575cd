"""从环境变量加载 OAuth 配置和初始令牌。"""

import logging
import os

from dotenv import load_dotenv
from pydantic import ValidationError

from mcp_oauth.client.scopes import split_scopes
from mcp_oauth.shared.auth import OAuthConfig, TokenSet

logger = logging.getLogger(__name__)

ENV_CLIENT_ID = "OAUTH_CLIENT_ID"
ENV_CLIENT_SECRET = "OAUTH_CLIENT_SECRET"
ENV_AUTHORIZATION_URL = "OAUTH_AUTHORIZATION_URL"
ENV_TOKEN_URL = "OAUTH_TOKEN_URL"
ENV_REDIRECT_URI = "OAUTH_REDIRECT_URI"
ENV_SCOPES = "OAUTH_SCOPES"
ENV_RESOURCE = "OAUTH_RESOURCE"
ENV_ACCESS_TOKEN = "OAUTH_ACCESS_TOKEN"
ENV_REFRESH_TOKEN = "OAUTH_REFRESH_TOKEN"


def load_env() -> None:
    """从 .env 文件加载环境变量（已有的环境变量不会被覆盖）。"""
    load_dotenv()


def _getenv(name: str) -> str | None:
    # 空字符串视为未设置
    return os.getenv(name) or None


def load_config_from_env() -> OAuthConfig | None:
    """根据 OAUTH_* 环境变量构建配置。

    缺少 OAUTH_CLIENT_ID 或 OAUTH_TOKEN_URL 时返回 None。
    """
    load_env()

    client_id = _getenv(ENV_CLIENT_ID)
    token_url = _getenv(ENV_TOKEN_URL)
    if not client_id or not token_url:
        logger.debug(f"{ENV_CLIENT_ID} or {ENV_TOKEN_URL} not set; no OAuth config in environment")
        return None

    scopes = _getenv(ENV_SCOPES)

    try:
        return OAuthConfig(
            client_id=client_id,
            client_secret=_getenv(ENV_CLIENT_SECRET),
            authorization_endpoint=_getenv(ENV_AUTHORIZATION_URL) or "",
            token_endpoint=token_url,
            redirect_uri=_getenv(ENV_REDIRECT_URI) or "",
            scopes=split_scopes(scopes) if scopes else None,
            resource=_getenv(ENV_RESOURCE),
        )
    except ValidationError as e:
        logger.warning(f"Invalid OAuth configuration in environment: {e}")
        return None


def load_tokens_from_env() -> TokenSet | None:
    """根据 OAUTH_ACCESS_TOKEN / OAUTH_REFRESH_TOKEN 构建初始令牌。

    环境变量中的令牌没有过期时间，首次使用时会被视为过期并刷新。
    """
    load_env()

    access_token = _getenv(ENV_ACCESS_TOKEN)
    if not access_token:
        return None

    return TokenSet(
        access_token=access_token,
        refresh_token=_getenv(ENV_REFRESH_TOKEN),
        token_type="Bearer",
    )
