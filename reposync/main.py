"""Main FastAPI application"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from reposync.api import auto_tagging, connections, label_mappings, sync, webhooks
from reposync.config import settings
from reposync.models.base import init_db
from reposync.scheduler import scheduler
from reposync.security import BasicAuthMiddleware

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/api/webhooks/github"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup
    logger.info("Starting RepoSync")
    init_db()
    scheduler.start()
    yield
    # Shutdown
    logger.info("Stopping RepoSync")
    scheduler.stop()


app = FastAPI(
    title="RepoSync",
    description="Synchronize GitHub releases and issues with changelog releases and feedback",
    version="1.0.0",
    lifespan=lifespan,
)

# Optional built-in auth (recommended if exposed beyond localhost/private networks)
if settings.auth_enabled:
    if not settings.auth_username or not settings.auth_password:
        raise RuntimeError("AUTH_ENABLED=true requires AUTH_USERNAME and AUTH_PASSWORD to be set")
    app.add_middleware(
        BasicAuthMiddleware,
        username=settings.auth_username,
        password=settings.auth_password,
        # GitHub cannot send Basic auth; deliveries are signature-verified instead.
        allow_paths={"/health", WEBHOOK_PATH},
    )

# Include API routers
app.include_router(connections.router)
app.include_router(label_mappings.router)
app.include_router(sync.router)
app.include_router(webhooks.router)
app.include_router(auto_tagging.router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "RepoSync"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "reposync.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        log_level=settings.log_level.lower(),
    )
