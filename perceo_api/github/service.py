"""Repository setup flows.

Two entry points, both ending in the same key + provisioning steps:

configure_repository
    Called by the CLI or web app. If the repo owner already installed the
    GitHub App, the secret is provisioned right away; otherwise the caller
    gets an install URL carrying a state token and sends the user to GitHub.

complete_installation
    GitHub redirects back here after the install screen with the new
    installation_id and the state token. The installation is recorded (so
    the next repo in the same org skips the install screen) and the
    secret is provisioned for the repo named in the state.

Results are plain outcome values; the router decides how each maps to an
HTTP status or a redirect tag.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

from sqlalchemy.ext.asyncio import AsyncSession

from perceo_api.core.config import Settings
from perceo_api.core.errors import ConfigurationError, UpstreamError
from perceo_api.github import installations
from perceo_api.github.provisioning import set_repo_secret
from perceo_api.github.state import SetupState, decode_state, encode_state
from perceo_api.keys.service import ensure_project_api_key

logger = logging.getLogger(__name__)

INSTALL_PATH_SUFFIX = "/installations/new"


class ConfigureOutcome(str, enum.Enum):
    CONFIGURED = "configured"
    NEED_INSTALL = "need_install"
    NO_KEY = "no_key"
    GITHUB_ERROR = "github_error"


class CallbackOutcome(str, enum.Enum):
    COMPLETED = "completed"
    INVALID_CALLBACK = "invalid_callback"
    NO_KEY = "no_key"
    GITHUB_ERROR = "github_error"


@dataclass(frozen=True)
class ConfigureResult:
    outcome: ConfigureOutcome
    repo: Optional[str] = None
    install_url: Optional[str] = None
    state: Optional[str] = None


@dataclass(frozen=True)
class CallbackResult:
    outcome: CallbackOutcome
    repo: Optional[str] = None


def build_install_url(settings: Settings, state_token: Optional[str] = None) -> Optional[str]:
    """Return the app's "new installation" URL, or None if not configured."""
    base = settings.github_app_install_url
    if not base:
        return None
    url = base if base.endswith(INSTALL_PATH_SUFFIX) else base.rstrip("/") + INSTALL_PATH_SUFFIX
    if state_token:
        url = f"{url}?{urlencode({'state': state_token})}"
    return url


def parse_installation_id(raw: Optional[str]) -> Optional[int]:
    if not raw or not raw.isascii() or not raw.isdigit():
        return None
    value = int(raw)
    return value if value > 0 else None


async def configure_repository(
    db: AsyncSession,
    settings: Settings,
    project_id: str,
    owner: str,
    repo: str,
) -> ConfigureResult:
    """Provision the secret if the owner is authorized, else ask for install."""
    full_name = f"{owner}/{repo}"
    installation_id = await installations.lookup_installation(db, owner)

    if installation_id is None:
        token = encode_state(
            SetupState(project_id=project_id, owner=owner, repo=repo),
            secret=settings.state_secret,
            ttl_seconds=settings.state_ttl_seconds,
        )
        install_url = build_install_url(settings, token)
        logger.info("configure: %s not authorized, install required", owner)
        return ConfigureResult(
            outcome=ConfigureOutcome.NEED_INSTALL,
            install_url=install_url,
            state=None if install_url else token,
        )

    return await _provision(
        db, settings, installation_id, project_id, owner, repo,
        on_success=ConfigureResult(outcome=ConfigureOutcome.CONFIGURED, repo=full_name),
        on_no_key=ConfigureResult(outcome=ConfigureOutcome.NO_KEY),
        on_github_error=ConfigureResult(outcome=ConfigureOutcome.GITHUB_ERROR),
    )


async def complete_installation(
    db: AsyncSession,
    settings: Settings,
    raw_installation_id: Optional[str],
    raw_state: Optional[str],
) -> CallbackResult:
    """Handle GitHub's post-install redirect."""
    state = decode_state(raw_state, secret=settings.state_secret)
    installation_id = parse_installation_id(raw_installation_id)
    if state is None or installation_id is None:
        logger.warning("callback: invalid installation_id or state")
        return CallbackResult(outcome=CallbackOutcome.INVALID_CALLBACK)

    account = await installations.fetch_installation_account(settings, installation_id)
    if account is None:
        logger.warning("callback: installation %d account unresolved, not recorded", installation_id)
    else:
        if account.login.lower() != state.owner.lower():
            logger.warning(
                "callback: installation %d belongs to %s, state names owner %s",
                installation_id, account.login, state.owner,
            )
        recorded = await installations.upsert_installation(
            db, installation_id, account.login, account.type
        )
        if not recorded:
            logger.warning("callback: continuing without recording installation %d", installation_id)

    return await _provision(
        db, settings, installation_id, state.project_id, state.owner, state.repo,
        on_success=CallbackResult(
            outcome=CallbackOutcome.COMPLETED, repo=f"{state.owner}/{state.repo}"
        ),
        on_no_key=CallbackResult(outcome=CallbackOutcome.NO_KEY),
        on_github_error=CallbackResult(outcome=CallbackOutcome.GITHUB_ERROR),
    )


async def _provision(
    db: AsyncSession,
    settings: Settings,
    installation_id: int,
    project_id: str,
    owner: str,
    repo: str,
    *,
    on_success,
    on_no_key,
    on_github_error,
):
    api_key = await ensure_project_api_key(
        db, project_id, rotate_on_ensure=settings.rotate_key_on_ensure
    )
    if not api_key:
        logger.error("provision: no key for project %s", project_id)
        return on_no_key

    try:
        await set_repo_secret(settings, installation_id, owner, repo, api_key)
    except UpstreamError as exc:
        logger.error(
            "provision: GitHub %s failed for %s/%s: %s %s",
            exc.stage, owner, repo, exc.status, exc.body,
        )
        return on_github_error
    except ConfigurationError as exc:
        logger.error("provision: GitHub App misconfigured: %s", exc)
        return on_github_error

    logger.info("provision: %s/%s configured for project %s", owner, repo, project_id)
    return on_success
