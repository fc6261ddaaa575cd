"""
令牌存储与生命周期管理。

TokenManager 持有当前配置、令牌集合以及至多一个进行中的 PKCE 状态，
在令牌即将过期时透明地刷新。实例由调用方创建和持有，不存在进程级单例。
"""

import logging
import secrets
import time

import anyio
import httpx
from typing_extensions import Self

from mcp_oauth.client.client_metadata import is_client_id_metadata_url, supports_client_id_metadata
from mcp_oauth.client.config import load_config_from_env, load_tokens_from_env
from mcp_oauth.client.flow import build_authorization_url, exchange_code, refresh_access_token
from mcp_oauth.client.pkce import PKCEState, validate_pkce_support
from mcp_oauth.client.scopes import select_scopes
from mcp_oauth.shared.auth import AuthorizationRequest, AuthStatus, OAuthConfig, OAuthMetadata, TokenSet
from mcp_oauth.shared.exceptions import (
    ConfigurationError,
    NoPendingFlowError,
    StateMismatchError,
    TokenRefreshError,
)

logger = logging.getLogger(__name__)

# 距离过期不足 5 分钟即视为已过期
EXPIRY_MARGIN_SECONDS = 5 * 60


def is_token_expired(tokens: TokenSet | None, now: float | None = None) -> bool:
    """没有令牌、没有过期时间、已过期或处于 5 分钟安全边界内都视为过期。"""
    if tokens is None or tokens.expires_at is None:
        return True
    if now is None:
        now = time.time()
    return now >= tokens.expires_at - EXPIRY_MARGIN_SECONDS


class TokenManager:
    """单个逻辑会话的令牌存储与生命周期管理器。

    状态机：
        未配置 --configure--> 已配置/未认证 --set_tokens--> 已认证
        已认证 --刷新成功--> 已认证（令牌整体替换）
        已认证 --clear_tokens / 刷新失败 / 过期且无 refresh token--> 未认证
    """

    def __init__(
        self,
        config: OAuthConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ):
        self._config = config
        self._tokens: TokenSet | None = None
        # 进行中的授权尝试，与发起时的配置快照成对保存
        self._pending: tuple[PKCEState, OAuthConfig] | None = None
        self._client = client
        self._timeout = timeout
        # 串行化“检查-刷新”序列，避免并发调用方重复刷新
        self._lock = anyio.Lock()
        # 令牌代数：只在令牌被替换或清除时递增（configure 不影响），用于丢弃过时的刷新结果
        self._token_generation = 0

    @classmethod
    def from_env(
        cls,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> Self:
        """从环境变量（以及 .env 文件）创建已配置的管理器。"""
        manager = cls(load_config_from_env(), client=client, timeout=timeout)
        tokens = load_tokens_from_env()
        if tokens is not None:
            manager.set_tokens(tokens)
        return manager

    # ---------- 配置 ----------

    @property
    def config(self) -> OAuthConfig | None:
        return self._config

    def configure(self, config: OAuthConfig) -> None:
        """整体替换配置。

        不影响已存储的令牌，也不会作废正在进行的刷新。
        """
        self._config = config

    def _require_config(self) -> OAuthConfig:
        if self._config is None:
            raise ConfigurationError("OAuth config not set; call configure() first")
        return self._config

    # ---------- 令牌 ----------

    @property
    def tokens(self) -> TokenSet | None:
        return self._tokens

    def set_tokens(self, tokens: TokenSet) -> None:
        self._tokens = tokens
        self._token_generation += 1

    def clear_tokens(self) -> None:
        self._tokens = None
        self._token_generation += 1

    def logout(self) -> None:
        """清除令牌并丢弃进行中的授权流程。"""
        self.clear_tokens()
        self._pending = None
        logger.info("Logged out; stored tokens cleared")

    # ---------- 授权流程 ----------

    @property
    def has_pending_flow(self) -> bool:
        return self._pending is not None

    def begin_flow(
        self,
        scopes: list[str] | None = None,
        server_metadata: OAuthMetadata | None = None,
    ) -> AuthorizationRequest:
        """生成新的 PKCE 状态并返回授权 URL，替换之前任何未完成的流程。

        提供 server_metadata 时先校验服务器支持 S256 PKCE。
        scopes 为 None 时回退到配置中的静态 scope。
        """
        config = self._require_config()

        if server_metadata is not None:
            validate_pkce_support(server_metadata)
            if is_client_id_metadata_url(config.client_id) and not supports_client_id_metadata(server_metadata):
                logger.warning(
                    f"client_id {config.client_id} is a metadata document URL but "
                    f"{server_metadata.issuer} does not advertise client_id_metadata_document_supported"
                )

        if scopes is None:
            scopes = select_scopes(configured_scopes=config.scopes)

        pkce_state = PKCEState.generate()
        authorization_url = build_authorization_url(config, pkce_state, scopes)
        self._pending = (pkce_state, config)

        return AuthorizationRequest(authorization_url=authorization_url, state=pkce_state.state)

    async def complete_flow(self, code: str, state: str) -> TokenSet:
        """校验回调 state 并用授权码换取令牌。

        待处理的 PKCE 状态只能读取一次：无论成功、失败还是 state 不一致都会被丢弃。
        """
        self._require_config()

        pending = self._pending
        self._pending = None
        if pending is None:
            raise NoPendingFlowError()

        pkce_state, config = pending
        if not secrets.compare_digest(state.encode(), pkce_state.state.encode()):
            raise StateMismatchError()

        tokens = await exchange_code(
            config,
            code,
            pkce_state.code_verifier,
            client=self._client,
            timeout=self._timeout,
        )
        self.set_tokens(tokens)
        return tokens

    # ---------- 有效令牌 ----------

    async def _refresh_locked(self, refresh_token: str) -> TokenSet | None:
        """在持有锁的情况下刷新令牌，只在成功后整体替换。

        参数:
            refresh_token: 发起刷新时存储的 refresh token

        返回:
            刷新后的令牌；刷新期间令牌被替换或清除时返回较新的未过期令牌，否则返回 None
        """
        config = self._require_config()
        # 记录发起刷新时的令牌代数
        generation = self._token_generation

        try:
            refreshed = await refresh_access_token(
                config,
                refresh_token,
                client=self._client,
                timeout=self._timeout,
            )
        except Exception as e:
            logger.warning(f"Token refresh failed: {e}")
            # 令牌未被其他调用方替换时才清除，避免误删较新的令牌
            if self._token_generation == generation:
                self.clear_tokens()
            raise

        if self._token_generation != generation:
            # 刷新期间令牌已被替换或清除（例如 logout），以较新的状态为准
            logger.debug("Discarding refresh result; tokens changed while refreshing")
            current = self._tokens
            return current if not is_token_expired(current) else None

        self.set_tokens(refreshed)
        return refreshed

    async def get_valid_access_token(self) -> str | None:
        """返回当前有效的访问令牌，必要时自动刷新。

        - 没有令牌：返回 None
        - 未过期：原样返回
        - 已过期且有 refresh token：刷新；失败时清除令牌并向上抛出错误
        - 已过期且无 refresh token：清除令牌并返回 None（需要重新认证）
        """
        async with self._lock:
            tokens = self._tokens
            if tokens is None:
                return None

            if not is_token_expired(tokens):
                return tokens.access_token

            if not tokens.refresh_token:
                logger.info("Access token expired and no refresh token is available; re-authentication required")
                self.clear_tokens()
                return None

            current = await self._refresh_locked(tokens.refresh_token)
            return current.access_token if current else None

    async def refresh_tokens(self, stale_access_token: str | None = None) -> TokenSet | None:
        """强制刷新令牌。

        提供 stale_access_token 时，如果当前令牌已经不是它（其他调用方已刷新），
        直接返回当前令牌而不再发起刷新。
        """
        async with self._lock:
            tokens = self._tokens
            if tokens is not None and stale_access_token is not None and tokens.access_token != stale_access_token:
                return tokens

            if tokens is None or not tokens.refresh_token:
                raise TokenRefreshError("No refresh token available")

            return await self._refresh_locked(tokens.refresh_token)

    def is_authenticated(self) -> bool:
        """只读检查，从不触发刷新。"""
        return self._tokens is not None and not is_token_expired(self._tokens)

    def get_status(self) -> AuthStatus:
        """诊断快照，不修改状态也不发起网络请求。"""
        tokens = self._tokens
        if tokens is None:
            return AuthStatus(authenticated=False, has_refresh_token=False)

        return AuthStatus(
            authenticated=not is_token_expired(tokens),
            has_refresh_token=bool(tokens.refresh_token),
            expires_at=tokens.expires_at,
            token_type=tokens.token_type,
            scope=tokens.scope,
        )
