"""Root API router with /api/v1 prefix and middleware registration."""

from fastapi import APIRouter, FastAPI

from tally_api.api.middleware import RateLimitMiddleware, SecurityHeadersMiddleware, setup_cors
from tally_api.core.config import Settings


def create_router(settings: Settings) -> APIRouter:
    """Create the root API router with all sub-routers included."""
    from tally_api.api.v1.audit import audit_router
    from tally_api.api.v1.auth import router as auth_router
    from tally_api.api.v1.declaration import declaration_router
    from tally_api.api.v1.offline_ballots import offline_ballots_router
    from tally_api.api.v1.tally import tally_router

    root_router = APIRouter(prefix=settings.api_v1_prefix)
    root_router.include_router(auth_router)
    root_router.include_router(tally_router)
    root_router.include_router(offline_ballots_router)
    root_router.include_router(declaration_router)
    root_router.include_router(audit_router)

    return root_router


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register all middleware on the FastAPI app."""
    setup_cors(app, settings)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_minute=settings.rate_limit_per_minute,
        trusted_proxy_headers=settings.trusted_proxy_header_list,
        strict_prefixes=(f"{settings.api_v1_prefix}/declaration/challenges",),
        strict_requests_per_minute=settings.declaration_rate_limit_per_minute,
    )
