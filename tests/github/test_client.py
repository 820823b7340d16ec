"""Tests for the GitHub REST client.

httpx.AsyncClient is mocked so no real network calls are made.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from perceo_api.core.errors import UpstreamError
from perceo_api.github import client as github_client
from tests.conftest import make_settings


def _make_response(status_code: int, json_data=None, text: str = "") -> MagicMock:
    """Build a minimal mock httpx.Response."""
    resp = MagicMock()
    resp.status_code = status_code
    resp.text = text
    if json_data is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = json_data
    return resp


def _mock_client(MockClient, method: str, response=None, side_effect=None) -> AsyncMock:
    MockClient.return_value.__aenter__ = AsyncMock(return_value=MockClient.return_value)
    MockClient.return_value.__aexit__ = AsyncMock(return_value=False)
    call = AsyncMock(return_value=response, side_effect=side_effect)
    setattr(MockClient.return_value, method, call)
    return call


class TestGetInstallationToken:
    async def test_returns_token(self) -> None:
        with patch("httpx.AsyncClient") as MockClient:
            post = _mock_client(MockClient, "post", _make_response(201, {"token": "ghs_abc"}))
            token = await github_client.get_installation_token(make_settings(), 42)

        assert token == "ghs_abc"
        url = post.call_args.args[0]
        assert url == "https://api.github.com/app/installations/42/access_tokens"
        headers = post.call_args.kwargs["headers"]
        assert headers["Authorization"].startswith("Bearer ey")
        assert headers["X-GitHub-Api-Version"] == "2022-11-28"
        assert headers["Accept"] == "application/vnd.github+json"

    async def test_non_2xx_raises_token_stage(self) -> None:
        with patch("httpx.AsyncClient") as MockClient:
            _mock_client(
                MockClient, "post", _make_response(401, {"message": "Bad credentials"}, "Bad credentials")
            )
            with pytest.raises(UpstreamError) as exc_info:
                await github_client.get_installation_token(make_settings(), 42)

        assert exc_info.value.stage == "token"
        assert exc_info.value.status == 401
        assert "Bad credentials" in exc_info.value.body

    async def test_missing_token_field_raises(self) -> None:
        with patch("httpx.AsyncClient") as MockClient:
            _mock_client(MockClient, "post", _make_response(201, {}))
            with pytest.raises(UpstreamError, match="missing token"):
                await github_client.get_installation_token(make_settings(), 42)

    async def test_transport_error_raises_with_no_status(self) -> None:
        with patch("httpx.AsyncClient") as MockClient:
            _mock_client(MockClient, "post", side_effect=httpx.ConnectError("refused"))
            with pytest.raises(UpstreamError) as exc_info:
                await github_client.get_installation_token(make_settings(), 42)

        assert exc_info.value.stage == "token"
        assert exc_info.value.status is None

    async def test_uses_configured_api_url(self) -> None:
        settings = make_settings(github_api_url="https://ghe.example.com/api/v3/")
        with patch("httpx.AsyncClient") as MockClient:
            post = _mock_client(MockClient, "post", _make_response(201, {"token": "t"}))
            await github_client.get_installation_token(settings, 7)

        assert post.call_args.args[0] == "https://ghe.example.com/api/v3/app/installations/7/access_tokens"


class TestGetInstallation:
    async def test_returns_body(self) -> None:
        body = {"id": 5, "account": {"login": "acme", "type": "Organization"}}
        with patch("httpx.AsyncClient") as MockClient:
            get = _mock_client(MockClient, "get", _make_response(200, body))
            data = await github_client.get_installation(make_settings(), 5)

        assert data == body
        assert get.call_args.args[0].endswith("/app/installations/5")

    async def test_not_found_raises(self) -> None:
        with patch("httpx.AsyncClient") as MockClient:
            _mock_client(MockClient, "get", _make_response(404, {"message": "Not Found"}, "Not Found"))
            with pytest.raises(UpstreamError) as exc_info:
                await github_client.get_installation(make_settings(), 5)

        assert exc_info.value.stage == "installation"

    async def test_non_json_body_raises(self) -> None:
        with patch("httpx.AsyncClient") as MockClient:
            _mock_client(MockClient, "get", _make_response(200, None, "<html>"))
            with pytest.raises(UpstreamError, match="not JSON"):
                await github_client.get_installation(make_settings(), 5)


class TestGetRepoPublicKey:
    async def test_returns_key_and_id(self) -> None:
        with patch("httpx.AsyncClient") as MockClient:
            get = _mock_client(
                MockClient, "get", _make_response(200, {"key": "abc=", "key_id": "kid-1"})
            )
            data = await github_client.get_repo_public_key(make_settings(), "ghs_tok", "acme", "widgets")

        assert data == {"key": "abc=", "key_id": "kid-1"}
        assert get.call_args.args[0].endswith("/repos/acme/widgets/actions/secrets/public-key")
        assert get.call_args.kwargs["headers"]["Authorization"] == "Bearer ghs_tok"

    @pytest.mark.parametrize("body", [{"key": "abc="}, {"key_id": "kid-1"}, {"key": "", "key_id": "k"}])
    async def test_incomplete_body_raises(self, body) -> None:
        with patch("httpx.AsyncClient") as MockClient:
            _mock_client(MockClient, "get", _make_response(200, body))
            with pytest.raises(UpstreamError) as exc_info:
                await github_client.get_repo_public_key(make_settings(), "t", "acme", "widgets")

        assert exc_info.value.stage == "public-key"

    async def test_forbidden_raises(self) -> None:
        with patch("httpx.AsyncClient") as MockClient:
            _mock_client(
                MockClient, "get",
                _make_response(403, {"message": "Resource not accessible by integration"},
                               "Resource not accessible by integration"),
            )
            with pytest.raises(UpstreamError) as exc_info:
                await github_client.get_repo_public_key(make_settings(), "t", "acme", "widgets")

        assert exc_info.value.status == 403
        assert "not accessible" in str(exc_info.value)


class TestPutRepoSecret:
    async def test_sends_encrypted_value_and_key_id(self) -> None:
        with patch("httpx.AsyncClient") as MockClient:
            put = _mock_client(MockClient, "put", _make_response(201, {}))
            await github_client.put_repo_secret(
                make_settings(), "ghs_tok", "acme", "widgets", "PERCEO_API_KEY", "c2VhbGVk", "kid-1"
            )

        assert put.call_args.args[0].endswith("/repos/acme/widgets/actions/secrets/PERCEO_API_KEY")
        assert put.call_args.kwargs["json"] == {"encrypted_value": "c2VhbGVk", "key_id": "kid-1"}

    async def test_overwrite_204_is_success(self) -> None:
        with patch("httpx.AsyncClient") as MockClient:
            _mock_client(MockClient, "put", _make_response(204, None))
            await github_client.put_repo_secret(
                make_settings(), "t", "acme", "widgets", "PERCEO_API_KEY", "x", "k"
            )

    async def test_failure_raises_create_secret_stage(self) -> None:
        with patch("httpx.AsyncClient") as MockClient:
            _mock_client(MockClient, "put", _make_response(422, None, "Bad key_id"))
            with pytest.raises(UpstreamError) as exc_info:
                await github_client.put_repo_secret(
                    make_settings(), "t", "acme", "widgets", "PERCEO_API_KEY", "x", "k"
                )

        assert exc_info.value.stage == "create-secret"
        assert str(exc_info.value) == "GitHub create-secret: 422 Bad key_id"
