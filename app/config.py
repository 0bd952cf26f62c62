"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from uploads.limits import DEFAULT_POST_MAX_SIZE, DEFAULT_UPLOAD_MAX_FILESIZE
from uploads.types import StorageRoot, UploadConfig

PROJECT_ROOT = Path(__file__).resolve().parents[1]

DEFAULT_MAX_UPLOAD_BYTES = 5 * 1024 * 1024


def load_env_files() -> None:
    """
    Load simple KEY=VALUE pairs from `.env` and `.env.local` (if present).
    Existing process environment variables are not overwritten.
    """

    for filename in (".env", ".env.local"):
        env_path = PROJECT_ROOT / filename
        if not env_path.exists():
            continue

        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue

            key, value = line.split("=", 1)
            key = key.strip()
            value = value.strip().strip('"').strip("'")
            if key and key not in os.environ:
                os.environ[key] = value


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    """
    Read an optional string value from environment variables.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


def _get_csv_env(name: str) -> tuple[str, ...]:
    raw_value = _get_optional_str_env(name)
    if raw_value is None:
        return ()
    return tuple(item.strip() for item in raw_value.split(",") if item.strip())


@dataclass(frozen=True)
class UploadSettings:
    """
    Runtime settings for upload storage and the upload endpoint.
    """

    storage_dir: Path = Path("data/uploads")
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    upload_max_filesize: str = DEFAULT_UPLOAD_MAX_FILESIZE
    post_max_size: str = DEFAULT_POST_MAX_SIZE
    allowed_mime_types: tuple[str, ...] = ()
    file_max_bytes: int = 0
    subdirectory: str = "files"
    staging_dir: Path | None = None
    public_prefix: str = "/files"

    def storage_root(self) -> StorageRoot:
        return StorageRoot(
            upload_dir=self.storage_dir,
            max_upload_size_bytes=self.max_upload_bytes,
            upload_max_filesize=self.upload_max_filesize,
            post_max_size=self.post_max_size,
        )

    def upload_config(self) -> UploadConfig:
        return UploadConfig.build(
            max_file_size_bytes=self.file_max_bytes,
            allowed_mime_types=self.allowed_mime_types,
            storage_subdirectory=self.subdirectory,
        )


@lru_cache(maxsize=1)
def get_upload_settings() -> UploadSettings:
    """
    Return cached upload settings from environment variables.
    """

    staging_dir = _get_optional_str_env("UPLOAD_STAGING_DIR")
    public_prefix = "/" + _get_str_env("UPLOAD_PUBLIC_PREFIX", "/files").strip("/")
    return UploadSettings(
        storage_dir=Path(_get_str_env("UPLOAD_STORAGE_DIR", "data/uploads")),
        max_upload_bytes=max(0, _get_int_env("UPLOAD_MAX_BYTES", DEFAULT_MAX_UPLOAD_BYTES)),
        upload_max_filesize=_get_str_env("UPLOAD_MAX_FILESIZE", DEFAULT_UPLOAD_MAX_FILESIZE),
        post_max_size=_get_str_env("POST_MAX_SIZE", DEFAULT_POST_MAX_SIZE),
        allowed_mime_types=_get_csv_env("UPLOAD_ALLOWED_MIME_TYPES"),
        file_max_bytes=max(0, _get_int_env("UPLOAD_FILE_MAX_BYTES", 0)),
        subdirectory=_get_str_env("UPLOAD_SUBDIRECTORY", "files"),
        staging_dir=Path(staging_dir) if staging_dir else None,
        public_prefix=public_prefix,
    )


@lru_cache(maxsize=1)
def get_storage_root() -> StorageRoot:
    """
    Return the process-wide storage root.
    """

    return get_upload_settings().storage_root()
