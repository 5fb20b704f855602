"""FastAPI application main entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from .middleware import register_error_handlers
from .routes import chat, sessions
from ..services.config import get_config
from ..services.database import init_database
from ..services.providers import init_provider_registry
from ..services.tool_registry import get_tool_registry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler to run startup tasks."""
    config = get_config()

    # Adapters are built once; a missing default-provider key stops startup
    init_provider_registry(config)

    logger.info("Running startup: initializing chat database...")
    db_path = init_database(config.database_path)
    logger.info(f"Chat database ready at {db_path}")

    # Fails fast on a tools.json / executor mismatch
    registry = get_tool_registry()
    logger.info(f"Tool registry loaded with {len(registry.names())} tool(s)")

    yield


app = FastAPI(
    title="Notes Chat API",
    description="LLM chat with tool calling over notes, folders and classeurs",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://localhost:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

app.include_router(chat.router)
app.include_router(sessions.router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


__all__ = ["app"]
