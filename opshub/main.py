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

from opshub.auth.router import router as auth_router
from opshub.config import get_settings
from opshub.db.database import init_db
from opshub.errors import register_exception_handlers
from opshub.invitations.router import router as invitations_router
from opshub.scheduler.router import router as cron_router

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown events.

    Args:
        app: FastAPI application instance.
    """
    init_db()
    yield


app = FastAPI(
    title=settings.app_name,
    description="Organization membership and invitation management API",
    version="0.1.0",
    lifespan=lifespan,
    debug=settings.debug,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# API routers
app.include_router(auth_router, prefix="/api/auth", tags=["auth"])
app.include_router(invitations_router, prefix="/api/invitations", tags=["invitations"])
app.include_router(cron_router, prefix="/api/cron", tags=["cron"])


@app.get("/health")
async def health_check():
    """Health check endpoint for Docker/Kubernetes.

    Returns:
        dict: Health status.
    """
    return {"status": "healthy", "app": settings.app_name}
