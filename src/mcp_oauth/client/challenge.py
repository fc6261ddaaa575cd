"""解析 WWW-Authenticate 响应头（RFC 6750 / RFC 9728）。"""

import re

from mcp_oauth.shared.auth import AuthChallenge

# Bearer 方案（不区分大小写），可以出现在多个质询中的任意位置
_BEARER_RE = re.compile(r"(?:^|[\s,])Bearer\s+(.+)", re.IGNORECASE)
# key=value，value 可以带双引号，也可以是直到逗号或空白的裸 token
_PARAM_RE = re.compile(r'(\w+)=(?:"([^"]*)"|([^\s,]+))')

_RECOGNIZED_KEYS = ("resource_metadata", "scope", "error", "error_description")


def parse_www_authenticate(header_value: str | None) -> AuthChallenge | None:
    """把 WWW-Authenticate 头解析为 AuthChallenge。

    只识别 Bearer 方案；其他方案、空值或格式错误都返回 None，从不抛出异常。
    """
    if not header_value:
        return None

    bearer_match = _BEARER_RE.search(header_value)
    if not bearer_match:
        return None

    params: dict[str, str] = {}
    for match in _PARAM_RE.finditer(bearer_match.group(1)):
        key = match.group(1).lower()
        value = match.group(2) or match.group(3)
        # 未识别的参数和空值直接忽略
        if key in _RECOGNIZED_KEYS and value:
            params[key] = value

    return AuthChallenge(scheme="Bearer", **params)
