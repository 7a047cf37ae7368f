"""
Trek Auth Server

FastAPI application that reconciles redirect-based sign-in for Trek,
the University of Florida ride-sharing app. Restricts sessions to
institutional email addresses and keeps redirect loops bounded.

Supports multiple identity providers:
- local: In-process provider for development
- google: Google OAuth 2.0 / OpenID Connect

Usage:
    uvicorn main:app --host 0.0.0.0 --port 8080 --reload

Or run directly:
    python main.py
"""

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import get_allowed_email_domains, get_allowed_origins, get_production_hostnames, get_settings
from core.logger import get_logger, setup_logging
from routers import auth_router, client_cookie_middleware, session_router
from services import get_runtime_registry

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Attaches the ambient auth-state listeners of client runtimes on startup
    and detaches them on shutdown.
    """
    registry = get_runtime_registry()
    settings = registry.settings

    # Setup logging based on settings
    setup_logging("DEBUG" if settings.debug else "INFO")

    # Startup
    logger.info("=" * 60)
    logger.info("Trek Auth Server Starting")
    logger.info("=" * 60)
    logger.info(f"Identity provider: {settings.identity_provider}")
    logger.info(f"Production hosts: {', '.join(get_production_hostnames(settings))}")
    logger.info(f"Allowed email domains: {', '.join(get_allowed_email_domains(settings))}")
    logger.info(
        f"Redirect limit: {settings.redirect_attempt_limit} per {settings.redirect_attempt_window_seconds:.0f}s"
    )
    logger.info(f"State file: {settings.storage_path}")
    logger.info(f"Max active clients: {settings.max_active_clients}")
    logger.info(f"Debug: {settings.debug}")
    logger.info("=" * 60)

    registry.start()

    yield

    # Shutdown
    logger.info("Shutting down...")
    registry.stop()


# Create FastAPI application
app = FastAPI(
    title="Trek Auth Server",
    description="""
    Redirect sign-in reconciliation for Trek.

    ## Flow

    1. `POST /api/auth/sign-in` - origin and circuit-breaker checks, returns the provider URL
    2. Browser navigates to the provider and back to `GET /api/auth/callback`
    3. Callback validates the email domain and settles the session

    ## Session Stream

    Every browser is identified by a signed client cookie issued on its first
    request; sessions, attempt limits and redirect flags are kept per client.

    Connect to `/ws/session` (with the client cookie) to receive `{"type": "session", "session": {...}}`
    on connect and after every change. Send `{"type": "ping"}` for a heartbeat.
    """,
    version="1.0.0",
    lifespan=lifespan,
)

settings = get_settings()

# Ties every request to one browser client; registered first so CORS wraps it
app.middleware("http")(client_cookie_middleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_allowed_origins(settings),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth_router)
app.include_router(session_router)


@app.get("/")
async def root():
    """Root endpoint with server information."""
    settings = get_settings()
    return {
        "name": "Trek Auth Server",
        "version": "1.0.0",
        "status": "running",
        "identity_provider": settings.identity_provider,
        "session_stream": f"ws://{settings.server_host}:{settings.server_port}/ws/session",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint for container orchestration."""
    registry = get_runtime_registry()
    return {
        "status": "healthy",
        "provider": registry.settings.identity_provider,
        "active_clients": len(registry),
    }


if __name__ == "__main__":
    settings = get_settings()

    uvicorn.run(
        "main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info",
    )
