"""
OAuth 客户端核心的异常层次结构。

所有异常都继承自 OAuthFlowError，调用方可以按种类区分：
调用方错误（配置、流程状态）、瞬时网络故障、以及服务器返回的错误。
"""

from collections.abc import Sequence


# OAuth 流程错误的基类
class OAuthFlowError(Exception):
    """OAuth 流程错误的基类异常。"""


class ConfigurationError(OAuthFlowError):
    """在调用 configure 之前执行操作，或配置缺少所需端点时引发。"""


class NoPendingFlowError(OAuthFlowError):
    """在没有进行中的授权流程时调用 complete_flow 引发。"""

    def __init__(self, message: str = "没有进行中的授权流程，请先调用 begin_flow"):
        super().__init__(message)


class StateMismatchError(OAuthFlowError):
    """回调中的 state 与待处理的 PKCE 状态不一致（疑似 CSRF）。

    当前流程已作废，必须重新调用 begin_flow。
    """

    def __init__(self, message: str = "state 参数不一致，疑似 CSRF 攻击，请重新开始授权流程"):
        super().__init__(message)


class PKCEUnsupportedError(OAuthFlowError):
    """授权服务器元数据中缺少 S256 PKCE 支持时引发。"""


class DiscoveryFailedError(OAuthFlowError):
    """所有元数据发现地址都失败时引发。"""

    def __init__(self, target: str, attempted_urls: Sequence[str], last_error: Exception | None = None):
        self.target = target
        self.attempted_urls = list(attempted_urls)
        self.last_error = last_error
        super().__init__(
            f"Failed to discover metadata for {target}. "
            f"Tried: {', '.join(self.attempted_urls)}. Last error: {last_error}"
        )


# 令牌端点相关错误，携带 HTTP 状态码与服务器原始响应体
class OAuthTokenError(OAuthFlowError):
    """当令牌操作失败时引发的异常。"""

    def __init__(self, message: str, status_code: int | None = None, body: str | None = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class TokenExchangeError(OAuthTokenError):
    """授权码换取令牌失败。"""


class TokenRefreshError(OAuthTokenError):
    """刷新令牌失败。"""


class MetadataError(OAuthFlowError):
    """单个元数据文档获取失败或内容无效。"""

    def __init__(self, message: str, url: str, status_code: int | None = None):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class OAuthNetworkError(OAuthFlowError):
    """传输层故障（连接失败、超时等），本模块内部从不自动重试。"""


class ClientMetadataError(OAuthFlowError):
    """Client ID Metadata Document 无效或获取失败。"""
