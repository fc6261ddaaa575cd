"""Scope 选择策略。"""

from collections.abc import Sequence


def split_scopes(scope: str) -> list[str]:
    """按空白拆分 scope 字符串并丢弃空项。"""
    return [s for s in scope.split() if s]


def select_scopes(
    challenge_scope: str | None = None,
    scopes_supported: Sequence[str] | None = None,
    configured_scopes: Sequence[str] | None = None,
) -> list[str] | None:
    """按严格优先级决定授权请求中的 scope。

    1. WWW-Authenticate 质询中的 scope（即使过滤后为空也返回列表）
    2. 发现得到的 scopes_supported
    3. 静态配置的 scopes
    4. 都没有时返回 None，授权请求中完全省略 scope 参数
    """
    if challenge_scope:
        return split_scopes(challenge_scope)

    if scopes_supported:
        return list(scopes_supported)

    if configured_scopes:
        return list(configured_scopes)

    return None
