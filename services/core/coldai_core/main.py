"""Cold AI Dashboard Core API - Main Application."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from coldai_core.api.routes import account as account_routes
from coldai_core.api.routes import icps as icps_routes
from coldai_core.api.routes import knowledge as knowledge_routes
from coldai_core.api.routes import linkedin as linkedin_routes
from coldai_core.api.routes import prospects as prospects_routes
from coldai_core.api.routes import widgets as widgets_routes
from coldai_core.config import get_settings
from coldai_core.infra.db import get_sync_session_factory
from coldai_core.infrastructure.realtime import get_change_publisher, install_change_hooks
from coldai_core.observability.logging import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    settings = get_settings()
    app.state.settings = settings
    configure_logging(settings.log_level, json_format=settings.log_json)
    install_change_hooks(get_sync_session_factory(), get_change_publisher())
    yield
    # Shutdown


app = FastAPI(
    title="Cold AI Dashboard Core API",
    description="Prospect pipeline, widget state and outreach actions for the Cold AI dashboard",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[get_settings().web_base_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(account_routes.auth_router)
app.include_router(account_routes.router)
app.include_router(icps_routes.router)
app.include_router(knowledge_routes.router)
app.include_router(linkedin_routes.router)
app.include_router(prospects_routes.router)
app.include_router(widgets_routes.router)


@app.get("/healthz")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"ok": True, "service": "coldai-core"}


@app.get("/")
async def root() -> dict:
    """Root endpoint."""
    return {
        "name": "Cold AI Dashboard Core API",
        "version": "0.1.0",
        "status": "running",
    }
