"""Directory of accounts that have installed the GitHub App.

Lets configure-repo skip GitHub's install screen for every repository
after the first one in an organization: the owner login is looked up
here and, when found, provisioning runs straight away.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from perceo_api.core.config import Settings
from perceo_api.core.errors import ConfigurationError, StorageError, UpstreamError
from perceo_api.db.models import GitHubInstallation
from perceo_api.github import client as github_client

logger = logging.getLogger(__name__)

ACCOUNT_TYPES = ("Organization", "User")


@dataclass(frozen=True)
class InstallationAccount:
    login: str
    type: str


async def lookup_installation(db: AsyncSession, account_login: str) -> Optional[int]:
    """Return the installation id for an org/user login, or None.

    Rows are never deleted, so a login that uninstalled and reinstalled the
    app holds several; the most recently recorded one wins.
    Raises StorageError when the directory cannot be read.
    """
    try:
        result = await db.execute(
            select(GitHubInstallation.installation_id)
            .where(GitHubInstallation.account_login == account_login.lower())
            .order_by(
                GitHubInstallation.updated_at.desc(),
                GitHubInstallation.installation_id.desc(),
            )
        )
    except SQLAlchemyError as exc:
        raise StorageError(f"Installation lookup failed: {type(exc).__name__}") from exc
    return result.scalars().first()


async def upsert_installation(
    db: AsyncSession,
    installation_id: int,
    account_login: str,
    account_type: str,
) -> bool:
    """Insert or update the row for ``installation_id`` and commit.

    Returns False instead of raising when the write fails; callers treat
    this bookkeeping as best-effort.
    """
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    try:
        installation = await db.get(GitHubInstallation, installation_id)
        if installation:
            installation.account_login = account_login.lower()
            installation.account_type = account_type
            installation.updated_at = now
        else:
            db.add(
                GitHubInstallation(
                    installation_id=installation_id,
                    account_login=account_login.lower(),
                    account_type=account_type,
                    updated_at=now,
                )
            )
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Failed to upsert installation %d: %s", installation_id, exc)
        return False

    logger.info(
        "Recorded installation %d for %s %s", installation_id, account_type, account_login
    )
    return True


async def fetch_installation_account(
    settings: Settings, installation_id: int
) -> Optional[InstallationAccount]:
    """Ask GitHub which account an installation belongs to.

    Returns None on any GitHub failure or unexpected body. An account type
    other than Organization/User is reported as User.
    """
    try:
        data = await github_client.get_installation(settings, installation_id)
    except (UpstreamError, ConfigurationError) as exc:
        logger.warning("Could not fetch installation %d: %s", installation_id, exc)
        return None

    account = data.get("account")
    login = account.get("login") if isinstance(account, dict) else None
    if not isinstance(login, str) or not login:
        logger.warning("Installation %d response has no account login", installation_id)
        return None

    account_type = account.get("type")
    if account_type not in ACCOUNT_TYPES:
        account_type = "User"
    return InstallationAccount(login=login, type=account_type)
