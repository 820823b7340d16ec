"""GitHub setup endpoints.

POST /api/github/configure-repo
    Called by the CLI / web app with {projectId, owner, repo}. Provisions
    PERCEO_API_KEY straight away when the owner already installed the app,
    otherwise answers 404 {needInstall: true, installUrl | state}.

GET /api/github/setup-callback
    GitHub's post-install redirect. Always redirects the browser on to the
    web app's /setup (with ?error=) or /setup/complete (with ?repo=).

POST /api/github/webhooks
    Public but HMAC-verified; records new installations.

None of these endpoints authenticate an end user: the CLI holds no
session, and the callback is reached by a browser coming from GitHub.
"""

import json
import logging
from typing import Optional
from urllib.parse import urlencode

import pydantic
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from perceo_api.core.config import Settings, get_settings
from perceo_api.core.errors import ConfigurationError, StorageError, ValidationError
from perceo_api.core.limiter import limiter
from perceo_api.db.session import get_db
from perceo_api.github import installations, service
from perceo_api.github.schemas import (
    ConfigureRepoRequest,
    ConfigureRepoResponse,
    ErrorResponse,
    NeedInstallResponse,
    WebhookResponse,
)
from perceo_api.github.webhooks import (
    RECORDED_ACTIONS,
    parse_installation_event,
    verify_webhook_signature,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/github", tags=["github"])

_configure_limit = get_settings().configure_rate_limit

SETUP_PATH = "/setup"
SETUP_COMPLETE_PATH = "/setup/complete"

# Lets the /setup pages tell "came back from GitHub" from "opened directly".
CALLBACK_COOKIE = "perceo_setup_callback"
CALLBACK_COOKIE_MAX_AGE = 120


def _parse_configure_body(raw: object) -> ConfigureRepoRequest:
    try:
        return ConfigureRepoRequest.model_validate(raw)
    except pydantic.ValidationError as exc:
        raise ValidationError("Missing or invalid projectId, owner, or repo") from exc


def _json(status_code: int, model: pydantic.BaseModel) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=model.model_dump(exclude_none=True))


# ---------------------------------------------------------------------------
# Direct configure (CLI / web app)
# ---------------------------------------------------------------------------


@router.post(
    "/configure-repo",
    response_model=ConfigureRepoResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": NeedInstallResponse},
        500: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
@limiter.limit(_configure_limit)
async def configure_repo(
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    """Set PERCEO_API_KEY on a repo whose owner already installed the app."""
    try:
        raw = await request.json()
    except (ValueError, RecursionError):
        return _json(status.HTTP_400_BAD_REQUEST, ErrorResponse(error="Invalid JSON body"))

    try:
        body = _parse_configure_body(raw)
    except ValidationError as exc:
        return _json(status.HTTP_400_BAD_REQUEST, ErrorResponse(error=str(exc)))

    logger.info("configure-repo: project %s, %s/%s", body.project_id, body.owner, body.repo)

    try:
        result = await service.configure_repository(
            db, settings, body.project_id, body.owner, body.repo
        )
    except StorageError as exc:
        logger.error("configure-repo: %s", exc)
        return _json(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            ErrorResponse(error="Could not read GitHub installations"),
        )

    if result.outcome is service.ConfigureOutcome.NEED_INSTALL:
        return _json(
            status.HTTP_404_NOT_FOUND,
            NeedInstallResponse(installUrl=result.install_url, state=result.state),
        )
    if result.outcome is service.ConfigureOutcome.NO_KEY:
        return _json(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            ErrorResponse(error="Could not create or find API key for this project"),
        )
    if result.outcome is service.ConfigureOutcome.GITHUB_ERROR:
        return _json(
            status.HTTP_502_BAD_GATEWAY,
            ErrorResponse(error="Failed to set repository secret in GitHub"),
        )

    return _json(status.HTTP_200_OK, ConfigureRepoResponse(repo=result.repo))


# ---------------------------------------------------------------------------
# Install callback (browser, redirected from GitHub)
# ---------------------------------------------------------------------------


@router.get("/setup-callback", response_class=RedirectResponse)
async def setup_callback(
    request: Request,
    installation_id: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> RedirectResponse:
    """Record the new installation, provision the secret, redirect on."""
    result = await service.complete_installation(db, settings, installation_id, state)

    if result.outcome is service.CallbackOutcome.COMPLETED:
        path, params = SETUP_COMPLETE_PATH, {"repo": result.repo}
    else:
        path, params = SETUP_PATH, {"error": result.outcome.value}

    base = settings.web_base_url.rstrip("/") or str(request.base_url).rstrip("/")
    response = RedirectResponse(
        f"{base}{path}?{urlencode(params)}",
        status_code=status.HTTP_307_TEMPORARY_REDIRECT,
    )
    response.set_cookie(
        CALLBACK_COOKIE,
        "1",
        max_age=CALLBACK_COOKIE_MAX_AGE,
        path=SETUP_PATH,
        httponly=True,
        samesite="lax",
        secure=request.url.scheme == "https",
    )
    return response


# ---------------------------------------------------------------------------
# Webhooks (public, signature-verified)
# ---------------------------------------------------------------------------


@router.post("/webhooks", response_model=WebhookResponse)
async def handle_webhook(
    request: Request,
    x_hub_signature_256: str = Header(default=""),
    x_github_event: str = Header(default=""),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> WebhookResponse:
    """Record installations announced by GitHub App webhooks."""
    body = await request.body()

    try:
        valid = verify_webhook_signature(settings, body, x_hub_signature_256)
    except ConfigurationError as exc:
        logger.error("webhook: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhook secret not configured",
        )
    if not valid:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook signature",
        )

    try:
        payload = json.loads(body)
    except (ValueError, RecursionError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid JSON body",
        )
    if not isinstance(payload, dict):
        payload = {}

    if x_github_event != "installation":
        return WebhookResponse(received=True, event=x_github_event, action="ignored")

    event = parse_installation_event(payload)
    if event is None or event["action"] not in RECORDED_ACTIONS:
        return WebhookResponse(received=True, event=x_github_event, action="ignored")

    recorded = await installations.upsert_installation(
        db, event["installation_id"], event["account_login"], event["account_type"]
    )
    if not recorded:
        # Non-2xx lets GitHub show the delivery as failed so it can be redelivered
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to record installation",
        )

    return WebhookResponse(received=True, event=x_github_event, action=event["action"])
