"""SQLAlchemy 2.0 declarative models for the setup flow's two tables.

The Supabase migrations are the source of truth for the schema; these
models mirror them for ORM queries. Dialect-agnostic types (Uuid, JSON)
keep them usable on both PostgreSQL (production) and SQLite (tests).
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, JSON, Text, UniqueConstraint, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Name of the project key row the GitHub Actions secret is minted from.
GITHUB_ACTIONS_KEY_NAME = "github-actions"

# Scopes granted to the github-actions key (matches the CLI).
GITHUB_ACTIONS_SCOPES = [
    "ci:analyze",
    "ci:test",
    "flows:read",
    "insights:read",
    "events:publish",
]


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


class GitHubInstallation(Base):
    """An account (organization or user) that has installed the GitHub App.

    account_login is stored lower-cased so lookups by repo owner are
    case-insensitive. One row per installation; rows are never deleted here.
    """

    __tablename__ = "github_installations"

    installation_id: Mapped[int] = mapped_column(
        BigInteger, primary_key=True, autoincrement=False
    )
    account_login: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    account_type: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), nullable=False
    )


class ProjectApiKey(Base):
    """Hashed API key issued to a project.

    Only the bcrypt hash and a 12-character display prefix are stored;
    the plaintext leaves the process once, as the sealed GitHub secret.
    """

    __tablename__ = "project_api_keys"
    __table_args__ = (
        UniqueConstraint("project_id", "name", name="project_api_keys_project_id_name_key"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    project_id: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    key_hash: Mapped[str] = mapped_column(Text, nullable=False)
    key_prefix: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    scopes: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    revoked_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    revocation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), nullable=False
    )
