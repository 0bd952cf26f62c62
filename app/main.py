from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from app.config import get_storage_root, get_upload_settings, load_env_files
from app.schemas.uploads import HealthResponse
from uploads.types import normalize_subdirectory


def _validate_env() -> None:
    """
    Validate upload-related environment variables at startup.

    Raises RuntimeError listing every invalid variable so the operator can fix
    all problems in one restart cycle. Unset variables fall back to defaults.
    """

    load_env_files()

    errors: list[str] = []

    # --- Byte limits ----------------------------------------------------
    for name in ("UPLOAD_MAX_BYTES", "UPLOAD_FILE_MAX_BYTES"):
        raw = os.getenv(name)
        if raw is None or not raw.strip():
            continue
        try:
            value = int(raw)
        except ValueError:
            errors.append(f"{name}='{raw}' is not an integer.")
            continue
        if value < 0:
            errors.append(f"{name}={value} must be >= 0.")

    # --- Storage layout -------------------------------------------------
    subdirectory = os.getenv("UPLOAD_SUBDIRECTORY")
    if subdirectory:
        try:
            normalize_subdirectory(subdirectory)
        except ValueError as exc:
            errors.append(str(exc))

    public_prefix = os.getenv("UPLOAD_PUBLIC_PREFIX")
    if public_prefix is not None and public_prefix.strip() and not public_prefix.strip("/ "):
        errors.append("UPLOAD_PUBLIC_PREFIX must not be the site root.")

    # --- MIME allow-list ------------------------------------------------
    mime_types = os.getenv("UPLOAD_ALLOWED_MIME_TYPES", "")
    for mime_type in (item.strip() for item in mime_types.split(",")):
        if mime_type and "/" not in mime_type:
            errors.append(f"UPLOAD_ALLOWED_MIME_TYPES entry '{mime_type}' is not a MIME type.")

    if errors:
        raise RuntimeError(
            "Startup validation failed, invalid environment variables:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _prepare_storage() -> None:
    """Create the storage root if needed. Raises RuntimeError if it cannot be created."""
    storage_root = get_storage_root()
    try:
        storage_root.upload_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise RuntimeError(f"Upload directory '{storage_root.upload_dir}' is unavailable.") from exc


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Make sure the storage root exists before serving traffic."""
    _prepare_storage()
    storage_root = get_storage_root()
    logging.getLogger(__name__).info(
        "Upload storage ready at %s (default limit %d bytes)",
        storage_root.upload_dir,
        storage_root.default_max_upload_size(),
    )
    yield


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _validate_env()
    _configure_logging()

    settings = get_upload_settings()

    application = FastAPI(
        title="Upload Ingestor API",
        version="1.0.0",
        lifespan=_lifespan,
    )

    from app.api.routers import uploads_router

    application.include_router(uploads_router)
    application.mount(
        settings.public_prefix,
        StaticFiles(directory=settings.storage_dir, check_dir=False),
        name="stored-files",
    )

    @application.get("/health")
    def healthcheck() -> HealthResponse:
        storage_root = get_storage_root()
        return HealthResponse(
            storage_ready=storage_root.upload_dir.is_dir(),
            default_max_upload_bytes=storage_root.default_max_upload_size(),
        )

    return application


app = create_app()
