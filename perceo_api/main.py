from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from perceo_api.core.config import get_settings
from perceo_api.core.limiter import limiter
from perceo_api.core.middleware import RequestIdMiddleware, SecurityHeadersMiddleware
from perceo_api.github.router import router as github_router


def create_app() -> FastAPI:
    settings = get_settings()

    _app = FastAPI(
        title="Perceo Setup API",
        description="Connects repositories to Perceo through the Perceo GitHub App",
        version="0.1.0",
    )

    # ---------------------------------------------------------------------------
    # Rate limiter state: SlowAPI reads limiter from app.state
    # ---------------------------------------------------------------------------
    _app.state.limiter = limiter
    _app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # ---------------------------------------------------------------------------
    # Middleware (registered outermost -> innermost; executed innermost -> outermost)
    # ---------------------------------------------------------------------------

    _app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # SlowAPI: before security headers so 429s also get security headers
    _app.add_middleware(SlowAPIMiddleware)

    _app.add_middleware(SecurityHeadersMiddleware)

    _app.add_middleware(RequestIdMiddleware)

    # ---------------------------------------------------------------------------
    # Sentry: initialised here so it captures startup errors too
    # ---------------------------------------------------------------------------
    from perceo_api.core.sentry import init_sentry

    init_sentry(
        dsn=settings.sentry_dsn,
        environment="development" if settings.debug else "production",
    )

    # ---------------------------------------------------------------------------
    # Logging: configure structlog before any routers log anything
    # ---------------------------------------------------------------------------
    from perceo_api.core.logging import configure_structlog

    configure_structlog(debug=settings.debug)

    @_app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "ok"}

    _app.include_router(github_router)

    return _app


app = create_app()
