"""Error taxonomy for the GitHub setup flow.

Routers translate these into HTTP status codes (direct configure) or
redirect error tags (install callback). Messages never carry secret
material: API keys, JWTs and installation tokens stay out of them.
"""

from typing import Optional

# GitHub error bodies can be large HTML pages; keep enough to diagnose.
MAX_BODY_CHARS = 500


class PerceoError(Exception):
    pass


class ConfigurationError(PerceoError):
    """Deployment is missing something this request needs (app id, key, ...)."""


class ValidationError(PerceoError):
    """Inbound payload is malformed; the caller must resubmit."""


class StorageError(PerceoError):
    """Database unreachable or the read was rejected."""


class UpstreamError(PerceoError):
    """A GitHub API call failed.

    ``stage`` names the provisioning step ("token", "public-key",
    "create-secret", "installation"). ``status`` is None for transport
    failures where no response was received.
    """

    def __init__(self, stage: str, status: Optional[int], body: str = ""):
        self.stage = stage
        self.status = status
        self.body = body[:MAX_BODY_CHARS]
        super().__init__(f"GitHub {stage}: {status} {self.body}".rstrip())
