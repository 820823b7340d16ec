"""Pydantic schemas for the GitHub setup endpoints.

Field names follow the JSON the CLI and web app already send and read
(camelCase), not Python conventions.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr


class ConfigureRepoRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    project_id: StrictStr = Field(alias="projectId", min_length=1)
    owner: StrictStr = Field(min_length=1)
    repo: StrictStr = Field(min_length=1)


class ConfigureRepoResponse(BaseModel):
    ok: bool = True
    repo: str


class NeedInstallResponse(BaseModel):
    """Returned with 404: the repo owner has not installed the app yet."""

    needInstall: bool = True
    installUrl: Optional[str] = None
    # Raw state token, only when no install URL is configured
    state: Optional[str] = None


class ErrorResponse(BaseModel):
    error: str


class WebhookResponse(BaseModel):
    """Acknowledgement response for webhook events."""

    received: bool
    event: str
    action: str
