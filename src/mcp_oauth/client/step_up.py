"""检测资源服务器返回的 403 insufficient_scope，用于提升授权（step-up）。"""

import logging
from collections.abc import Sequence

import httpx

from mcp_oauth.client.challenge import parse_www_authenticate
from mcp_oauth.client.scopes import split_scopes
from mcp_oauth.shared.auth import InsufficientScopeSignal

logger = logging.getLogger(__name__)

INSUFFICIENT_SCOPE = "insufficient_scope"


def check_insufficient_scope(
    status_code: int,
    www_authenticate: str | None = None,
    current_scopes: Sequence[str] | None = None,
) -> InsufficientScopeSignal | None:
    """检查响应是否表示 scope 不足，是则返回需要重新申请的 scope。

    只有 403 且质询 error 为 insufficient_scope 并带有 scope 属性时才返回信号。
    没有 scope 属性的 insufficient_scope 不含可操作的信息，返回 None。
    """
    if status_code != 403:
        return None

    if not www_authenticate:
        return None

    challenge = parse_www_authenticate(www_authenticate)
    if challenge is None or challenge.error != INSUFFICIENT_SCOPE:
        return None

    if not challenge.scope:
        return None

    signal = InsufficientScopeSignal(
        required_scopes=split_scopes(challenge.scope),
        current_scopes=list(current_scopes) if current_scopes is not None else None,
        resource_metadata=challenge.resource_metadata,
        error_description=challenge.error_description,
    )
    logger.warning(signal.message)
    return signal


def check_response_insufficient_scope(
    response: httpx.Response,
    current_scopes: Sequence[str] | None = None,
) -> InsufficientScopeSignal | None:
    """对 httpx 响应执行 check_insufficient_scope。"""
    return check_insufficient_scope(response.status_code, response.headers.get("WWW-Authenticate"), current_scopes)
