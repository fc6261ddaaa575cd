"""
Tests for the OAuth data models.
"""

import pytest
from pydantic import ValidationError

from mcp_oauth.shared.auth import (
    InsufficientScopeSignal,
    OAuthConfig,
    OAuthMetadata,
    OAuthToken,
    ProtectedResourceMetadata,
    TokenSet,
)


class TestOAuthToken:
    @pytest.mark.parametrize("token_type", ["bearer", "BEARER", "Bearer", None])
    def test_bearer_normalization(self, token_type: str | None):
        token = OAuthToken.model_validate({"access_token": "abc", "token_type": token_type})
        assert token.token_type == "Bearer"

    def test_other_token_types_are_kept(self):
        assert OAuthToken(access_token="abc", token_type="DPoP").token_type == "DPoP"

    def test_access_token_required(self):
        with pytest.raises(ValidationError):
            OAuthToken.model_validate({"token_type": "Bearer"})
        with pytest.raises(ValidationError):
            OAuthToken(access_token="")


class TestTokenSet:
    def test_from_token_response(self):
        token = OAuthToken(access_token="abc", expires_in=3600, refresh_token="r", scope="read write")

        tokens = TokenSet.from_token_response(token, received_at=1000.0)

        assert tokens.expires_at == 4600.0
        assert tokens.refresh_token == "r"
        assert tokens.scopes == ["read", "write"]

    def test_no_expiry(self):
        tokens = TokenSet.from_token_response(OAuthToken(access_token="abc"), received_at=1000.0)
        assert tokens.expires_at is None

    def test_fallback_refresh_token(self):
        token = OAuthToken(access_token="abc")

        tokens = TokenSet.from_token_response(token, received_at=0, fallback_refresh_token="old")

        assert tokens.refresh_token == "old"

    def test_frozen(self):
        tokens = TokenSet(access_token="abc")
        with pytest.raises(ValidationError):
            tokens.access_token = "changed"  # type: ignore[misc]

    def test_empty_scopes(self):
        assert TokenSet(access_token="abc").scopes == []


class TestOAuthConfig:
    def test_frozen(self):
        config = OAuthConfig(client_id="c", token_endpoint="https://auth.example.com/token")
        with pytest.raises(ValidationError):
            config.client_id = "other"  # type: ignore[misc]

    def test_required_fields(self):
        with pytest.raises(ValidationError):
            OAuthConfig(client_id="", token_endpoint="https://auth.example.com/token")
        with pytest.raises(ValidationError):
            OAuthConfig.model_validate({"client_id": "c"})

    def test_from_metadata(self):
        metadata = OAuthMetadata(
            issuer="https://auth.example.com",
            authorization_endpoint="https://auth.example.com/authorize",
            token_endpoint="https://auth.example.com/token",
            response_types_supported=["code"],
        )

        config = OAuthConfig.from_metadata(
            metadata,
            client_id="c",
            redirect_uri="http://localhost:3030/callback",
            scopes=["read"],
            resource="https://api.example.com",
        )

        assert config.authorization_endpoint == "https://auth.example.com/authorize"
        assert config.token_endpoint == "https://auth.example.com/token"
        assert config.scopes == ["read"]
        assert config.resource == "https://api.example.com"


class TestMetadataModels:
    def test_response_types_required(self):
        with pytest.raises(ValidationError):
            OAuthMetadata(
                issuer="https://auth.example.com",
                authorization_endpoint="https://auth.example.com/authorize",
                token_endpoint="https://auth.example.com/token",
                response_types_supported=[],
            )

    def test_endpoints_must_be_urls(self):
        with pytest.raises(ValidationError):
            OAuthMetadata(
                issuer="https://auth.example.com",
                authorization_endpoint="not a url",
                token_endpoint="https://auth.example.com/token",
                response_types_supported=["code"],
            )

    def test_protected_resource_requires_authorization_servers(self):
        with pytest.raises(ValidationError):
            ProtectedResourceMetadata(resource="https://api.example.com", authorization_servers=[])


class TestInsufficientScopeSignal:
    def test_message_without_current_scopes(self):
        signal = InsufficientScopeSignal(required_scopes=["read", "admin"])
        assert signal.message == "Insufficient scope. Required scopes: read admin. Current scopes: none."

    def test_message_with_description(self):
        signal = InsufficientScopeSignal(
            required_scopes=["admin"], current_scopes=["read"], error_description="Admin access required"
        )
        assert signal.message == (
            "Insufficient scope. Required scopes: admin. Current scopes: read. Admin access required"
        )
