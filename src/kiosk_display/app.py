"""Application factory for the FastAPI service."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import PROJECT_ROOT, Settings, get_settings
from .routers.display_settings import kiosk_router
from .routers.display_settings import router as display_settings_router
from .services.display_settings import DisplaySettingsService
from .services.object_storage import (
    GcsObjectStorage,
    ObjectStorage,
    SupabaseObjectStorage,
)
from .services.settings_store import (
    SettingsStore,
    SqliteSettingsStore,
    SupabaseSettingsStore,
)
from .services.supabase import SupabaseClient


def _configure_logging() -> None:
    """Configure logging based on LOG_LEVEL environment variable."""
    # Load .env file first to ensure LOG_FILE is available
    load_dotenv()

    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handlers: list[logging.Handler] = []

    log_file = os.getenv("LOG_FILE")
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    logging.basicConfig(
        level=log_level,
        handlers=handlers,
        force=True,  # Override any existing configuration
    )

    logging.getLogger("kiosk_display").setLevel(log_level)
    logging.getLogger("uvicorn").setLevel(log_level)
    logging.getLogger("uvicorn.access").setLevel(log_level)
    logging.getLogger("uvicorn.error").setLevel(log_level)

    # Quiet down noisy third-party libraries
    if log_level > logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)


def _resolve_under(base: Path, p: Path) -> Path:
    # Allow absolute paths as-is (useful for tests and external mounts).
    if p.is_absolute():
        return p.resolve()
    resolved = (base / p).resolve()
    if not resolved.is_relative_to(base):
        raise ValueError(f"Configured path {resolved} escapes project root {base}")
    return resolved


def build_backends(
    settings: Settings,
    *,
    supabase_client: SupabaseClient | None = None,
) -> tuple[SettingsStore, ObjectStorage]:
    """Create the settings store and object storage selected by configuration."""

    def _supabase() -> SupabaseClient:
        nonlocal supabase_client
        if supabase_client is None:
            supabase_client = SupabaseClient(settings)
        return supabase_client

    store: SettingsStore
    if settings.settings_backend == "sqlite":
        store = SqliteSettingsStore(
            _resolve_under(PROJECT_ROOT, settings.settings_database_path),
            table=settings.settings_table,
        )
    else:
        store = SupabaseSettingsStore(_supabase(), table=settings.settings_table)

    storage: ObjectStorage
    if settings.storage_backend == "gcs":
        storage = GcsObjectStorage(settings)
    else:
        storage = SupabaseObjectStorage(_supabase(), bucket=settings.storage_bucket)

    return store, storage


def create_app() -> FastAPI:
    # Configure logging first thing
    _configure_logging()

    settings = get_settings()
    store, storage = build_backends(settings)

    display_settings_service = DisplaySettingsService(
        store,
        storage,
        row_id=settings.settings_row_id,
        background_folder=settings.background_folder,
        cache_seconds=settings.background_cache_seconds,
        max_size_bytes=settings.background_max_size_bytes,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await store.initialize()
        try:
            yield
        finally:
            try:
                await store.close()
            except Exception as exc:
                logging.warning("Error closing settings store: %s", exc)
            try:
                await storage.close()
            except Exception as exc:
                logging.warning("Error closing object storage: %s", exc)

    app = FastAPI(
        title="Kiosk Display Settings",
        version="0.1.0",
        description="Background image, color and screensaver settings for the kiosk display.",
        lifespan=lifespan,
    )

    app.state.settings_store = store
    app.state.object_storage = storage
    app.state.display_settings_service = display_settings_service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(display_settings_router)
    app.include_router(kiosk_router)

    @app.get("/health", tags=["health"])
    async def healthcheck() -> dict[str, str]:
        return {
            "status": "ok",
            "settings_backend": settings.settings_backend,
            "storage_backend": settings.storage_backend,
        }

    return app


__all__ = ["build_backends", "create_app"]
