"""
OAuth 2.1 客户端核心使用的数据模型。

包括会话配置、令牌集合、授权服务器元数据（RFC 8414）、
受保护资源元数据（RFC 9728）以及 WWW-Authenticate 质询等。
"""

from typing import Any

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field, field_validator


class OAuthConfig(BaseModel):
    """单个会话的 OAuth 配置，创建后不可修改，只能整体替换。"""

    model_config = ConfigDict(frozen=True)

    # 不透明字符串，或指向 Client ID Metadata Document 的 HTTPS URL
    client_id: str = Field(..., min_length=1)
    client_secret: str | None = None
    # 仅刷新令牌的会话（例如从环境变量加载）可以不提供授权端点和重定向地址
    authorization_endpoint: str = ""
    token_endpoint: str = Field(..., min_length=1)
    redirect_uri: str = ""
    scopes: list[str] | None = None
    # RFC 8707 资源指示符
    resource: str | None = None

    @classmethod
    def from_metadata(
        cls,
        metadata: "OAuthMetadata",
        *,
        client_id: str,
        redirect_uri: str,
        client_secret: str | None = None,
        scopes: list[str] | None = None,
        resource: str | None = None,
    ) -> "OAuthConfig":
        """根据发现到的授权服务器元数据构建配置。"""
        return cls(
            client_id=client_id,
            client_secret=client_secret,
            authorization_endpoint=str(metadata.authorization_endpoint),
            token_endpoint=str(metadata.token_endpoint),
            redirect_uri=redirect_uri,
            scopes=scopes,
            resource=resource,
        )


class OAuthToken(BaseModel):
    """
    令牌端点返回的 JSON 响应。
    See https://datatracker.ietf.org/doc/html/rfc6749#section-5.1
    """

    access_token: str = Field(..., min_length=1)
    token_type: str = "Bearer"
    expires_in: int | None = None
    scope: str | None = None
    refresh_token: str | None = None

    @field_validator("token_type", mode="before")
    @classmethod
    def normalize_token_type(cls, v: Any) -> Any:
        # 缺省或为 null 时默认为 Bearer，并统一大小写
        if v is None:
            return "Bearer"
        if isinstance(v, str) and v.lower() == "bearer":
            return "Bearer"
        return v


class TokenSet(BaseModel):
    """当前持有的令牌集合。刷新时整体替换，从不逐字段修改。"""

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str | None = None
    # 绝对过期时间（Unix 时间戳，秒）
    expires_at: float | None = None
    token_type: str = "Bearer"
    scope: str | None = None

    @classmethod
    def from_token_response(
        cls,
        token: OAuthToken,
        *,
        received_at: float,
        fallback_refresh_token: str | None = None,
    ) -> "TokenSet":
        """把令牌端点响应转换为 TokenSet，expires_in 按接收时间换算为绝对时间。"""
        return cls(
            access_token=token.access_token,
            refresh_token=token.refresh_token or fallback_refresh_token,
            expires_at=received_at + token.expires_in if token.expires_in else None,
            token_type=token.token_type,
            scope=token.scope,
        )

    @property
    def scopes(self) -> list[str]:
        """已授予的 scope 列表。"""
        return self.scope.split() if self.scope else []


class OAuthMetadata(BaseModel):
    """
    RFC 8414 OAuth 2.0 授权服务器元数据。
    See https://datatracker.ietf.org/doc/html/rfc8414#section-2
    """

    issuer: str = Field(..., min_length=1)
    authorization_endpoint: AnyHttpUrl
    token_endpoint: AnyHttpUrl
    jwks_uri: AnyHttpUrl | None = None
    registration_endpoint: AnyHttpUrl | None = None
    scopes_supported: list[str] | None = None
    response_types_supported: list[str] = Field(..., min_length=1)
    grant_types_supported: list[str] | None = None
    token_endpoint_auth_methods_supported: list[str] | None = None
    revocation_endpoint: AnyHttpUrl | None = None
    introspection_endpoint: AnyHttpUrl | None = None
    # PKCE 方法，例如 ["S256"]
    code_challenge_methods_supported: list[str] | None = None
    client_id_metadata_document_supported: bool | None = None


class ProtectedResourceMetadata(BaseModel):
    """
    RFC 9728 受保护资源元数据。
    See https://datatracker.ietf.org/doc/html/rfc9728#section-2
    """

    resource: str = Field(..., min_length=1)
    authorization_servers: list[str] = Field(..., min_length=1)
    scopes_supported: list[str] | None = None
    bearer_methods_supported: list[str] | None = None
    resource_signing_alg_values_supported: list[str] | None = None
    resource_name: str | None = None
    resource_documentation: AnyHttpUrl | None = None


class ClientIdMetadataDocument(BaseModel):
    """Client ID Metadata Document（draft-ietf-oauth-client-id-metadata-document）。"""

    client_id: str = Field(..., min_length=1)
    client_name: str = Field(..., min_length=1)
    redirect_uris: list[str] = Field(..., min_length=1)
    client_uri: str | None = None
    logo_uri: str | None = None
    grant_types: list[str] | None = None
    response_types: list[str] | None = None
    token_endpoint_auth_method: str | None = None
    jwks_uri: str | None = None
    jwks: Any | None = None
    scope: str | None = None
    contacts: list[str] | None = None
    tos_uri: str | None = None
    policy_uri: str | None = None


class AuthChallenge(BaseModel):
    """从 WWW-Authenticate: Bearer ... 头解析出的质询参数。"""

    model_config = ConfigDict(frozen=True)

    scheme: str = "Bearer"
    resource_metadata: str | None = None
    scope: str | None = None
    error: str | None = None
    error_description: str | None = None


class InsufficientScopeSignal(BaseModel):
    """资源服务器返回 403 insufficient_scope 时的提升授权信号。

    这不是错误，而是调用方用来重新发起授权的正常结果。
    """

    required_scopes: list[str]
    current_scopes: list[str] | None = None
    resource_metadata: str | None = None
    error_description: str | None = None

    @property
    def message(self) -> str:
        current = " ".join(self.current_scopes) if self.current_scopes else "none"
        text = f"Insufficient scope. Required scopes: {' '.join(self.required_scopes)}. Current scopes: {current}."
        if self.error_description:
            text = f"{text} {self.error_description}"
        return text


class AuthStatus(BaseModel):
    """认证状态的诊断快照。"""

    authenticated: bool
    has_refresh_token: bool
    expires_at: float | None = None
    token_type: str | None = None
    scope: str | None = None


class AuthorizationRequest(BaseModel):
    """begin_flow 的结果：需要展示给用户的授权 URL 和对应的 state。"""

    authorization_url: str
    state: str


class ResourceAuthorization(BaseModel):
    """从受保护资源发现到的授权服务器列表与推荐 scope。"""

    authorization_servers: list[str]
    scopes: list[str] | None = None
    resource_metadata: ProtectedResourceMetadata


class DiscoveredAuthorization(BaseModel):
    """完整发现流程的结果。"""

    config: OAuthConfig
    server_metadata: OAuthMetadata
    resource_metadata: ProtectedResourceMetadata
    scopes: list[str] | None = None
