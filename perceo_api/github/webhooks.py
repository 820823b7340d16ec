"""GitHub App webhook handling.

Signature verification uses HMAC-SHA256 as specified by GitHub:
https://docs.github.com/en/webhooks/using-webhooks/validating-webhook-deliveries

Only installation events are acted on: a new installation is recorded in
the directory even if the user never made it back through the setup
callback. Uninstall events are acknowledged and ignored.
"""

import hashlib
import hmac
from typing import Optional

from perceo_api.core.config import Settings
from perceo_api.core.errors import ConfigurationError
from perceo_api.github.installations import ACCOUNT_TYPES

# Installation actions that mean the app is (still) installed on the account
RECORDED_ACTIONS = frozenset({"created", "new_permissions_accepted", "unsuspend"})


def verify_webhook_signature(settings: Settings, payload_body: bytes, signature_header: str) -> bool:
    """Return True when ``signature_header`` is GitHub's HMAC of the body."""
    if not settings.github_webhook_secret:
        raise ConfigurationError("PERCEO_GITHUB_WEBHOOK_SECRET is not set")

    if not signature_header or not signature_header.startswith("sha256="):
        return False

    expected_signature = hmac.new(
        settings.github_webhook_secret.encode("utf-8"),
        payload_body,
        hashlib.sha256,
    ).hexdigest()

    received_signature = signature_header.removeprefix("sha256=")

    return hmac.compare_digest(expected_signature, received_signature)


def parse_installation_event(payload: dict) -> Optional[dict]:
    """Extract installation id and account from an ``installation`` event.

    Returns None when the payload lacks a numeric id or an account login.
    """
    installation = payload.get("installation")
    if not isinstance(installation, dict):
        return None
    account = installation.get("account")
    if not isinstance(account, dict):
        return None

    installation_id = installation.get("id")
    login = account.get("login")
    if not isinstance(installation_id, int) or isinstance(installation_id, bool):
        return None
    if not isinstance(login, str) or not login:
        return None

    account_type = account.get("type")
    return {
        "action": payload.get("action", ""),
        "installation_id": installation_id,
        "account_login": login,
        "account_type": account_type if account_type in ACCOUNT_TYPES else "User",
    }
