"""State token carried through GitHub's install screen.

When an organization has not installed the app yet, configure-repo hands
back an install URL whose ``state`` query parameter encodes which project
and repository the user was setting up. GitHub echoes the parameter to the
setup callback unchanged.

Wire format:
    unsigned   <b64url(json)>
    signed     HS256 JWT keyed with PERCEO_STATE_SECRET

The payload is ``{"projectId", "owner", "repo"}``; signed tokens also carry
an ``exp`` claim. Without a secret a replayed or forged token could point
an installation at another project, so unsigned tokens are for local
development only.

Decoding never raises: anything malformed, tampered with or expired
decodes to None and the callback treats it as an invalid request.
"""

import base64
import json
import logging
import time
from dataclasses import dataclass
from typing import Optional

import jwt

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SetupState:
    project_id: str
    owner: str
    repo: str


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def encode_state(
    state: SetupState,
    secret: str = "",
    ttl_seconds: int = 3600,
    now: Optional[float] = None,
) -> str:
    """Serialise ``state`` into a URL-safe token."""
    data: dict = {
        "projectId": state.project_id,
        "owner": state.owner,
        "repo": state.repo,
    }
    if secret:
        issued = int(time.time() if now is None else now)
        data["exp"] = issued + ttl_seconds
        return jwt.encode(data, secret, algorithm="HS256")

    logger.warning("state: PERCEO_STATE_SECRET not set, issuing unsigned state token")
    return _b64url_encode(json.dumps(data, separators=(",", ":")).encode("utf-8"))


def decode_state(token: Optional[str], secret: str = "") -> Optional[SetupState]:
    """Parse a token produced by :func:`encode_state`, or return None."""
    if not token:
        return None

    try:
        if secret:
            data = jwt.decode(
                token,
                secret,
                algorithms=["HS256"],
                options={"require": ["exp"]},
            )
        else:
            data = json.loads(_b64url_decode(token).decode("utf-8"))
    except jwt.PyJWTError as exc:
        logger.info("state: rejected signed token: %s", exc)
        return None
    except (ValueError, RecursionError):
        # deeply nested JSON exhausts the parser's stack
        return None

    if not isinstance(data, dict):
        return None

    fields = [data.get("projectId"), data.get("owner"), data.get("repo")]
    if not all(isinstance(f, str) and f for f in fields):
        return None

    return SetupState(project_id=fields[0], owner=fields[1], repo=fields[2])
