from mcp_oauth.client import (
    OAuthClientProvider,
    PKCEState,
    TokenManager,
    check_insufficient_scope,
    discover_authorization_server_metadata,
    discover_oauth_config,
    parse_www_authenticate,
    select_scopes,
)
from mcp_oauth.shared.auth import (
    AuthChallenge,
    AuthorizationRequest,
    AuthStatus,
    InsufficientScopeSignal,
    OAuthConfig,
    OAuthMetadata,
    ProtectedResourceMetadata,
    TokenSet,
)
from mcp_oauth.shared.exceptions import (
    ConfigurationError,
    DiscoveryFailedError,
    NoPendingFlowError,
    OAuthFlowError,
    OAuthNetworkError,
    OAuthTokenError,
    PKCEUnsupportedError,
    StateMismatchError,
    TokenExchangeError,
    TokenRefreshError,
)

__all__ = [
    "AuthChallenge",
    "AuthStatus",
    "AuthorizationRequest",
    "ConfigurationError",
    "DiscoveryFailedError",
    "InsufficientScopeSignal",
    "NoPendingFlowError",
    "OAuthClientProvider",
    "OAuthConfig",
    "OAuthFlowError",
    "OAuthMetadata",
    "OAuthNetworkError",
    "OAuthTokenError",
    "PKCEState",
    "PKCEUnsupportedError",
    "ProtectedResourceMetadata",
    "StateMismatchError",
    "TokenExchangeError",
    "TokenManager",
    "TokenRefreshError",
    "TokenSet",
    "check_insufficient_scope",
    "discover_authorization_server_metadata",
    "discover_oauth_config",
    "parse_www_authenticate",
    "select_scopes",
]
