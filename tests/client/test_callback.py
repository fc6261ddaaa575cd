"""
Tests for the local callback server and the token command.
"""

import httpx
import pytest

from mcp_oauth.client import __main__ as token_cli
from mcp_oauth.client.callback import AuthorizationDeniedError, CallbackServer
from mcp_oauth.shared.auth import OAuthConfig, TokenSet


@pytest.fixture
def callback_server():
    server = CallbackServer(host="127.0.0.1", port=0)
    server.start()
    yield server
    server.stop()


def get(server: CallbackServer, path: str) -> httpx.Response:
    with httpx.Client(trust_env=False) as client:
        return client.get(f"http://127.0.0.1:{server.port}{path}")


class TestCallbackServer:
    def test_port_zero_is_assigned(self, callback_server: CallbackServer):
        assert callback_server.port != 0

    def test_receives_code_and_state(self, callback_server: CallbackServer):
        response = get(callback_server, "/callback?code=auth_code&state=xyz")

        assert response.status_code == 200
        assert b"Authorization complete" in response.content
        assert callback_server.wait_for_callback(timeout=1) == ("auth_code", "xyz")

    def test_error_redirect(self, callback_server: CallbackServer):
        response = get(callback_server, "/callback?error=access_denied&error_description=User+denied")

        assert response.status_code == 400
        assert b"Authorization failed" in response.content
        with pytest.raises(AuthorizationDeniedError) as exc_info:
            callback_server.wait_for_callback(timeout=1)

        assert exc_info.value.error == "access_denied"
        assert exc_info.value.error_description == "User denied"
        assert "access_denied - User denied" in str(exc_info.value)

    def test_other_path(self, callback_server: CallbackServer):
        assert get(callback_server, "/favicon.ico").status_code == 404
        assert callback_server.callback_data["authorization_code"] is None

    def test_missing_code(self, callback_server: CallbackServer):
        assert get(callback_server, "/callback?state=xyz").status_code == 400

    def test_timeout(self, callback_server: CallbackServer):
        with pytest.raises(TimeoutError):
            callback_server.wait_for_callback(timeout=0.2)


def test_from_redirect_uri():
    server = CallbackServer.from_redirect_uri("http://localhost:8888/oauth/callback")

    assert server.host == "localhost"
    assert server.port == 8888
    assert server.callback_path == "/oauth/callback"


class TestTokenCommand:
    def test_export_lines(self):
        config = OAuthConfig(
            client_id="my-client",
            client_secret="s3cret",
            token_endpoint="https://auth.example.com/token",
            resource="https://api.example.com",
        )
        tokens = TokenSet(access_token="abc", refresh_token="def")

        assert token_cli.build_export_lines(config, tokens) == [
            'export OAUTH_ACCESS_TOKEN="abc"',
            'export OAUTH_TOKEN_URL="https://auth.example.com/token"',
            'export OAUTH_CLIENT_ID="my-client"',
            'export OAUTH_REFRESH_TOKEN="def"',
            'export OAUTH_CLIENT_SECRET="s3cret"',
            'export OAUTH_RESOURCE="https://api.example.com"',
        ]

    def test_export_lines_minimal(self):
        config = OAuthConfig(client_id="my-client", token_endpoint="https://auth.example.com/token")

        lines = token_cli.build_export_lines(config, TokenSet(access_token="abc"))

        assert len(lines) == 3

    def test_parse_args_defaults(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(token_cli, "load_env", lambda: None)
        for name in ("OAUTH_CLIENT_ID", "OAUTH_REDIRECT_URI", "OAUTH_SCOPES", "OAUTH_TOKEN_URL"):
            monkeypatch.delenv(name, raising=False)

        args = token_cli.parse_args([])

        assert args.client_id == "my-mcp-server"
        assert args.redirect_uri == token_cli.DEFAULT_REDIRECT_URI
        assert args.scopes == token_cli.DEFAULT_SCOPES
        assert args.token_url is None
        assert not args.no_browser

    def test_parse_args_scopes(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(token_cli, "load_env", lambda: None)
        monkeypatch.setenv("OAUTH_SCOPES", "from env")

        assert token_cli.parse_args([]).scopes == ["from", "env"]
        assert token_cli.parse_args(["--scope", "a", "--scope", "b"]).scopes == ["a", "b"]
