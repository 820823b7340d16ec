"""Project API keys for the GitHub Actions integration.

Each project has at most one ``github-actions`` key row. The plaintext is
generated here, handed back to the caller exactly once (to be sealed into
the repository secret) and never stored: the row keeps a bcrypt hash and
the first 12 characters for display.

Concurrent configure calls for the same project race on the row update;
the database's row-level locking decides the winner (last writer wins).
"""

import asyncio
import logging
import secrets
from datetime import datetime, timezone
from typing import Optional

import bcrypt
from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from perceo_api.db.models import GITHUB_ACTIONS_KEY_NAME, GITHUB_ACTIONS_SCOPES, ProjectApiKey

logger = logging.getLogger(__name__)

KEY_TAG = "prc_"
KEY_PREFIX_LENGTH = 12
BCRYPT_ROUNDS = 10


def generate_api_key() -> str:
    """Return a new plaintext key: tag + base64url of 32 random bytes."""
    return KEY_TAG + secrets.token_urlsafe(32)


def hash_api_key(plaintext: str) -> str:
    return bcrypt.hashpw(plaintext.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


async def ensure_project_api_key(
    db: AsyncSession,
    project_id: str,
    *,
    rotate_on_ensure: bool = True,
) -> Optional[str]:
    """Issue the project's github-actions key and return its plaintext.

    An existing row is overwritten with a fresh key (any previously
    distributed value stops working) unless ``rotate_on_ensure`` is False,
    in which case an active key is left untouched and None is returned.
    Returns None when the database write fails.
    """
    existing = None
    try:
        result = await db.execute(
            select(ProjectApiKey).where(
                ProjectApiKey.project_id == project_id,
                ProjectApiKey.name == GITHUB_ACTIONS_KEY_NAME,
            )
        )
        existing = result.scalar_one_or_none()

        if existing and existing.revoked_at is None and not rotate_on_ensure:
            logger.warning(
                "Project %s already has an active %s key and rotation is disabled",
                project_id, GITHUB_ACTIONS_KEY_NAME,
            )
            return None

        plaintext = generate_api_key()
        key_hash = await asyncio.to_thread(hash_api_key, plaintext)
        now = datetime.now(timezone.utc).replace(tzinfo=None)

        if existing:
            existing.key_hash = key_hash
            existing.key_prefix = plaintext[:KEY_PREFIX_LENGTH]
            existing.scopes = list(GITHUB_ACTIONS_SCOPES)
            existing.revoked_at = None
            existing.revocation_reason = None
            existing.updated_at = now
        else:
            db.add(
                ProjectApiKey(
                    project_id=project_id,
                    name=GITHUB_ACTIONS_KEY_NAME,
                    key_hash=key_hash,
                    key_prefix=plaintext[:KEY_PREFIX_LENGTH],
                    scopes=list(GITHUB_ACTIONS_SCOPES),
                    updated_at=now,
                )
            )
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        code = exc.orig.__class__.__name__ if isinstance(exc, DBAPIError) else type(exc).__name__
        logger.error(
            "ensure_project_api_key %s failed for project %s: %s (%s)",
            "update" if existing else "insert", project_id, code, exc,
        )
        return None

    logger.info("Issued %s key for project %s", GITHUB_ACTIONS_KEY_NAME, project_id)
    return plaintext


async def verify_project_api_key(db: AsyncSession, plaintext: str) -> Optional[ProjectApiKey]:
    """Return the active key row matching ``plaintext``, or None."""
    if not plaintext.startswith(KEY_TAG):
        return None

    result = await db.execute(
        select(ProjectApiKey).where(
            ProjectApiKey.key_prefix == plaintext[:KEY_PREFIX_LENGTH],
            ProjectApiKey.revoked_at.is_(None),
        )
    )
    for row in result.scalars().all():
        matches = await asyncio.to_thread(
            bcrypt.checkpw, plaintext.encode("utf-8"), row.key_hash.encode("utf-8")
        )
        if matches:
            return row
    return None
