"""
PKCE（Proof Key for Code Exchange）参数生成。

用于 PKCE 的 state / code_verifier / code_challenge 三元组生成。
"""

import base64
import hashlib
import secrets
import time

from pydantic import BaseModel, ConfigDict, Field

from mcp_oauth.shared.auth import OAuthMetadata
from mcp_oauth.shared.exceptions import PKCEUnsupportedError

# RFC 7636 规定 code_verifier 最少 43 个字符
DEFAULT_TOKEN_LENGTH = 43
PKCE_METHOD = "S256"


def generate_random_token(length: int = DEFAULT_TOKEN_LENGTH) -> str:
    """生成密码学安全、URL 安全（base64url，无填充）的随机字符串。"""
    if length < 1:
        raise ValueError("length must be positive")
    # token_urlsafe(n) 产生约 1.3n 个字符，截断到目标长度
    return secrets.token_urlsafe(length)[:length]


def code_challenge(verifier: str) -> str:
    """计算 code_verifier 的 SHA-256 摘要，并进行 base64url 编码（去掉填充）。"""
    digest = hashlib.sha256(verifier.encode()).digest()
    return base64.urlsafe_b64encode(digest).decode().rstrip("=")


# 一次进行中的授权尝试
class PKCEState(BaseModel):
    """PKCE 状态：state 随机数、code_verifier、code_challenge 以及创建时间。"""

    model_config = ConfigDict(frozen=True)

    state: str = Field(..., min_length=1)
    # code_verifier 长度限制为 43 到 128
    code_verifier: str = Field(..., min_length=43, max_length=128)
    code_challenge: str = Field(..., min_length=43, max_length=128)
    created_at: float

    @classmethod
    def generate(cls) -> "PKCEState":
        """生成新的 PKCE 状态。"""
        code_verifier = generate_random_token()
        return cls(
            state=generate_random_token(),
            code_verifier=code_verifier,
            # challenge 只在生成时计算一次，令牌端点由服务器重新计算
            code_challenge=code_challenge(code_verifier),
            created_at=time.time(),
        )


def new_pkce_state() -> PKCEState:
    return PKCEState.generate()


def validate_pkce_support(metadata: OAuthMetadata) -> None:
    """校验授权服务器支持 S256 PKCE；不支持时拒绝继续，绝不降级到 plain 或无 PKCE。"""
    methods = metadata.code_challenge_methods_supported
    if not methods:
        raise PKCEUnsupportedError(
            f"Authorization server {metadata.issuer} does not advertise PKCE support: "
            "code_challenge_methods_supported is missing from its metadata. "
            "Refusing to proceed without PKCE."
        )

    if PKCE_METHOD not in methods:
        raise PKCEUnsupportedError(
            f"Authorization server {metadata.issuer} does not support PKCE with {PKCE_METHOD}. "
            f"Supported methods: {', '.join(methods)}."
        )
