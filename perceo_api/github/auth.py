"""GitHub App authentication.

GitHub App auth flow:
1. Sign a short-lived JWT with the App's private key (this module)
2. Exchange the JWT for an installation access token (client.py)
3. Call repo-scoped endpoints with the installation token

Credentials are checked here, at call time, rather than at startup so a
deployment without them still serves everything except the setup flow.
"""

import time

import jwt

from perceo_api.core.config import Settings
from perceo_api.core.errors import ConfigurationError

# GitHub accepts up to 10 minutes; each JWT here is used for one exchange.
APP_JWT_TTL_SECONDS = 60


def create_app_jwt(settings: Settings) -> str:
    """Create an RS256 JWT identifying this service as the GitHub App."""
    if not settings.github_app_id:
        raise ConfigurationError("PERCEO_GITHUB_APP_ID is not set")

    private_key = settings.resolved_private_key()
    if not private_key:
        raise ConfigurationError(
            "PERCEO_GITHUB_APP_PRIVATE_KEY or PERCEO_GITHUB_APP_PRIVATE_KEY_PATH is not set"
        )

    now = int(time.time())
    payload = {
        "iat": now,
        "exp": now + APP_JWT_TTL_SECONDS,
        "iss": settings.github_app_id,
    }

    try:
        return jwt.encode(payload, private_key, algorithm="RS256")
    except (ValueError, jwt.InvalidKeyError) as exc:
        raise ConfigurationError(f"GitHub App private key is not a valid PEM key: {exc}") from exc
