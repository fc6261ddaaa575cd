from mcp_oauth.client.auth import OAuthClientProvider
from mcp_oauth.client.challenge import parse_www_authenticate
from mcp_oauth.client.discovery import (
    discover_authorization_from_resource,
    discover_authorization_server_metadata,
    discover_oauth_config,
    discover_protected_resource_metadata,
)
from mcp_oauth.client.flow import build_authorization_url, exchange_code, refresh_access_token
from mcp_oauth.client.pkce import (
    PKCEState,
    code_challenge,
    generate_random_token,
    new_pkce_state,
    validate_pkce_support,
)
from mcp_oauth.client.scopes import select_scopes
from mcp_oauth.client.step_up import check_insufficient_scope
from mcp_oauth.client.token_manager import TokenManager, is_token_expired

__all__ = [
    "OAuthClientProvider",
    "PKCEState",
    "TokenManager",
    "build_authorization_url",
    "check_insufficient_scope",
    "code_challenge",
    "discover_authorization_from_resource",
    "discover_authorization_server_metadata",
    "discover_oauth_config",
    "discover_protected_resource_metadata",
    "exchange_code",
    "generate_random_token",
    "is_token_expired",
    "new_pkce_state",
    "parse_www_authenticate",
    "refresh_access_token",
    "select_scopes",
    "validate_pkce_support",
]
