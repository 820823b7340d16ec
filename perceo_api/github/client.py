"""GitHub REST client for the secret provisioning flow.

Uses httpx for async HTTP calls, one short-lived client per request.
Every failure is raised as ``UpstreamError`` tagged with the stage it
happened in, carrying GitHub's status code and response body so a
missing permission or a wrong app id can be diagnosed from the logs.
No retries: a failed stage fails the whole provisioning attempt.
"""

from typing import Any

import httpx

from perceo_api.core.config import Settings
from perceo_api.core.errors import UpstreamError
from perceo_api.github.auth import create_app_jwt

GITHUB_API_VERSION = "2022-11-28"


async def get_installation_token(settings: Settings, installation_id: int) -> str:
    """Exchange a freshly signed app JWT for an installation access token.

    Tokens are not cached; each provisioning run mints its own and lets it
    expire (1 hour) unused.
    """
    app_jwt = create_app_jwt(settings)
    stage = "token"

    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                f"{_api(settings)}/app/installations/{installation_id}/access_tokens",
                headers=_auth_headers(app_jwt),
            )
    except httpx.HTTPError as exc:
        raise UpstreamError(stage, None, str(exc)) from exc

    data = _json_or_raise(response, stage)
    token = data.get("token")
    if not isinstance(token, str) or not token:
        raise UpstreamError(stage, response.status_code, "response missing token")
    return token


async def get_installation(settings: Settings, installation_id: int) -> dict[str, Any]:
    """GET /app/installations/{installation_id} as the app."""
    app_jwt = create_app_jwt(settings)
    stage = "installation"

    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(
                f"{_api(settings)}/app/installations/{installation_id}",
                headers=_auth_headers(app_jwt),
            )
    except httpx.HTTPError as exc:
        raise UpstreamError(stage, None, str(exc)) from exc

    return _json_or_raise(response, stage)


async def get_repo_public_key(
    settings: Settings,
    token: str,
    owner: str,
    repo: str,
) -> dict[str, str]:
    """GET /repos/{owner}/{repo}/actions/secrets/public-key

    Returns {"key": base64 Curve25519 key, "key_id": str}.
    """
    stage = "public-key"

    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(
                f"{_api(settings)}/repos/{owner}/{repo}/actions/secrets/public-key",
                headers=_auth_headers(token),
            )
    except httpx.HTTPError as exc:
        raise UpstreamError(stage, None, str(exc)) from exc

    data = _json_or_raise(response, stage)
    key = data.get("key")
    key_id = data.get("key_id")
    if not key or not key_id:
        raise UpstreamError(stage, response.status_code, "response missing key or key_id")
    return {"key": str(key), "key_id": str(key_id)}


async def put_repo_secret(
    settings: Settings,
    token: str,
    owner: str,
    repo: str,
    secret_name: str,
    encrypted_value: str,
    key_id: str,
) -> None:
    """PUT /repos/{owner}/{repo}/actions/secrets/{secret_name}

    Creates the secret (201) or overwrites it (204).
    """
    stage = "create-secret"

    try:
        async with httpx.AsyncClient() as client:
            response = await client.put(
                f"{_api(settings)}/repos/{owner}/{repo}/actions/secrets/{secret_name}",
                headers=_auth_headers(token),
                json={
                    "encrypted_value": encrypted_value,
                    "key_id": key_id,
                },
            )
    except httpx.HTTPError as exc:
        raise UpstreamError(stage, None, str(exc)) from exc

    if not _is_success(response):
        raise UpstreamError(stage, response.status_code, response.text)


def _api(settings: Settings) -> str:
    return settings.github_api_url.rstrip("/")


def _is_success(response: httpx.Response) -> bool:
    return 200 <= response.status_code < 300


def _json_or_raise(response: httpx.Response, stage: str) -> dict[str, Any]:
    if not _is_success(response):
        raise UpstreamError(stage, response.status_code, response.text)
    try:
        data = response.json()
    except ValueError as exc:
        raise UpstreamError(stage, response.status_code, "response is not JSON") from exc
    if not isinstance(data, dict):
        raise UpstreamError(stage, response.status_code, "unexpected response shape")
    return data


def _auth_headers(token: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {token}",
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": GITHUB_API_VERSION,
    }
