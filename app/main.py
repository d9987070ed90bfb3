"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
from fastapi.middleware.cors import CORSMiddleware

from app.auth.keycloak import KeycloakAdminClient, KeycloakTokenVerifier
from app.config import get_settings
from app.db.database import init_db
from app.email.service import EmailService
from app.exceptions import register_exception_handlers

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown events.

    Validates external configuration outside development and builds the
    process-wide collaborators that request dependencies read from
    ``app.state``.

    Args:
        app: FastAPI application instance.
    """
    # Startup
    if settings.environment in ("staging", "production"):
        settings.check_required()

    init_db()

    app.state.email_service = EmailService(settings)
    app.state.token_verifier = KeycloakTokenVerifier.from_settings(settings)
    app.state.keycloak_admin = KeycloakAdminClient.from_settings(settings)
    logger.info(
        f"{settings.app_name} started ({settings.environment}, mail backend "
        f"{settings.mail_backend})"
    )
    yield
    # Shutdown (cleanup if needed)


app = FastAPI(
    title=settings.app_name,
    description="Multi-tenant access API: tenants, memberships and email invitations",
    version="0.1.0",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


# Import and include routers
from app.auth.router import router as auth_router
from app.items.router import router as items_router
from app.scheduler.router import router as cron_router
from app.tenants.router import router as tenants_router
from app.users.router import router as users_router

app.include_router(auth_router, prefix="/api/auth", tags=["auth"])
app.include_router(tenants_router, prefix="/api/tenants", tags=["tenants"])
app.include_router(users_router, prefix="/api/users", tags=["users"])
app.include_router(items_router, prefix="/api/items", tags=["items"])
app.include_router(cron_router, prefix="/api/cron", tags=["cron"])


@app.get("/health")
async def health_check():
    """Health check endpoint.

    Returns:
        dict: Health status.
    """
    return {"status": "healthy", "app": settings.app_name}
