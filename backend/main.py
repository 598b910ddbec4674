"""
ChatChain FastAPI Application

Main entry point for the chat server.
Configures FastAPI with CORS, routes, logging and snapshot persistence.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from app.config import Settings, get_settings
from app.core.chat_store import ChatStore
from app.database import SessionLocal, init_db
from app.services import snapshot_service
from app.api.routes import admin, config, health, messages, rooms, users

settings = get_settings()


def configure_logging(app_settings: Settings) -> logging.Logger:
    """Configure application-wide logging."""
    level = getattr(logging, app_settings.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    return logging.getLogger("chatchain")


logger = configure_logging(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.

    Handles:
    - Database initialisation and snapshot restore on startup
    - Snapshot save on shutdown
    """
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.VERSION}")
    init_db()
    db = SessionLocal()
    try:
        snapshot_service.restore_latest_snapshot(db, app.state.chat_store)
    finally:
        db.close()
    logger.info(f"Server ready on {settings.server.HOST}:{settings.server.PORT}")

    yield

    # Shutdown
    logger.info("Shutting down server, saving chat store snapshot")
    db = SessionLocal()
    try:
        snapshot_service.save_snapshot(db, app.state.chat_store)
    finally:
        db.close()


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    description="Group chat backend with moderation and abuse controls",
    lifespan=lifespan,
    debug=settings.DEBUG,
)
app.state.chat_store = ChatStore(settings=settings)

# Configure CORS for the polling frontend in development
origins = [
    "http://localhost:5173",  # Vite default port
    "http://localhost:3000",  # Alternative React port
    "http://127.0.0.1:5173",
    "http://127.0.0.1:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(config.router)
app.include_router(users.router)
app.include_router(messages.router)
app.include_router(rooms.router)
app.include_router(admin.router)


@app.get("/")
async def root() -> dict:
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API information.
    """
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.VERSION,
        "docs": "/docs",
        "health": "/health",
    }
