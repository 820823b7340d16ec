"""Tests for SlowAPI rate limiting on the setup endpoints.

The limiter uses an in-memory store that persists across requests; the
``app`` fixture resets it so each test starts with an empty bucket.
Exceeding the configure-repo limit is covered in the router tests.
"""

from types import SimpleNamespace

from httpx import AsyncClient

from perceo_api.core.limiter import _client_key


def _request(headers: dict | None = None, host: str | None = "10.0.0.1"):
    return SimpleNamespace(
        headers=headers or {},
        client=SimpleNamespace(host=host) if host else None,
    )


class TestClientKey:
    def test_uses_client_host(self) -> None:
        assert _client_key(_request()) == "10.0.0.1"

    def test_prefers_first_forwarded_hop(self) -> None:
        req = _request({"X-Forwarded-For": "203.0.113.7, 10.0.0.2"})
        assert _client_key(req) == "203.0.113.7"

    def test_unknown_without_client(self) -> None:
        assert _client_key(_request(host=None)) == "unknown"


class TestUnlimitedEndpoints:
    async def test_health_is_not_rate_limited(self, client: AsyncClient) -> None:
        for _ in range(40):
            r = await client.get("/health")
            assert r.status_code != 429

    async def test_callback_is_not_rate_limited(self, client: AsyncClient) -> None:
        for _ in range(35):
            r = await client.get("/api/github/setup-callback")
            assert r.status_code == 307
