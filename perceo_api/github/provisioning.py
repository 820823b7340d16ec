"""Provision the PERCEO_API_KEY Actions secret in a repository.

Strictly ordered, each step feeding the next:
token -> repository public key -> sealed value -> upload.
A failure at any step raises immediately and later steps never run.
Nothing is rolled back: the only leftover of a partial run is an unused
installation token that expires on its own.
"""

import logging

from perceo_api.core.config import Settings
from perceo_api.core.errors import UpstreamError
from perceo_api.github import client as github_client
from perceo_api.github.sealing import seal_secret

logger = logging.getLogger(__name__)

SECRET_NAME = "PERCEO_API_KEY"


async def set_repo_secret(
    settings: Settings,
    installation_id: int,
    owner: str,
    repo: str,
    secret_value: str,
) -> None:
    """Seal ``secret_value`` and store it as ``SECRET_NAME`` in owner/repo.

    Raises UpstreamError (tagged token / public-key / create-secret) or
    ConfigurationError when the app credentials are missing.
    """
    token = await github_client.get_installation_token(settings, installation_id)

    public_key = await github_client.get_repo_public_key(settings, token, owner, repo)

    try:
        encrypted_value = seal_secret(public_key["key"], secret_value)
    except ValueError as exc:
        raise UpstreamError("public-key", None, str(exc)) from exc

    await github_client.put_repo_secret(
        settings,
        token,
        owner,
        repo,
        SECRET_NAME,
        encrypted_value,
        public_key["key_id"],
    )
    logger.info(
        "Set %s on %s/%s (installation %d, key_id %s)",
        SECRET_NAME, owner, repo, installation_id, public_key["key_id"],
    )
