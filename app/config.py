"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from db.config import load_env_files


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


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


@dataclass(frozen=True)
class UploadSettings:
    """
    Runtime settings for the upload admission pipeline.
    """

    final_dir: Path = Path("uploads")
    staging_dir: Path = Path("uploads/temp")
    id_min: int = 10000
    id_max: int = 99999
    max_allocation_attempts: int = 1000
    allocation_warn_attempts: int = 20
    max_upload_bytes: int = 25 * 1024 * 1024
    max_image_pixels: int = 89_478_485
    canonical_extension: str = ".png"
    canonical_format: str = "PNG"


@dataclass(frozen=True)
class CatalogSettings:
    """
    Catalog database lifecycle settings.
    """

    auto_create_schema: bool = False
    stale_reservation_minutes: int = 60


@lru_cache(maxsize=1)
def get_upload_settings() -> UploadSettings:
    """
    Return cached upload pipeline settings from environment variables.
    """

    return UploadSettings(
        final_dir=Path(_get_str_env("UPLOAD_FINAL_DIR", "uploads")),
        staging_dir=Path(_get_str_env("UPLOAD_STAGING_DIR", "uploads/temp")),
        id_min=_get_int_env("UPLOAD_ID_MIN", 10000),
        id_max=_get_int_env("UPLOAD_ID_MAX", 99999),
        max_allocation_attempts=_get_int_env("UPLOAD_MAX_ALLOCATION_ATTEMPTS", 1000),
        allocation_warn_attempts=max(1, _get_int_env("UPLOAD_ALLOCATION_WARN_ATTEMPTS", 20)),
        max_upload_bytes=_get_int_env("UPLOAD_MAX_BYTES", 25 * 1024 * 1024),
        max_image_pixels=_get_int_env("UPLOAD_MAX_IMAGE_PIXELS", 89_478_485),
    )


@lru_cache(maxsize=1)
def get_catalog_settings() -> CatalogSettings:
    """
    Return cached catalog settings from environment variables.
    """

    return CatalogSettings(
        auto_create_schema=_get_bool_env("CATALOG_AUTO_CREATE_SCHEMA", False),
        stale_reservation_minutes=max(1, _get_int_env("CATALOG_STALE_RESERVATION_MINUTES", 60)),
    )


def validate_upload_settings(settings: UploadSettings) -> list[str]:
    """
    Return every problem with the upload settings; empty when valid.
    """

    errors: list[str] = []
    if settings.id_min < 0 or settings.id_min > settings.id_max:
        errors.append(
            f"UPLOAD_ID_MIN={settings.id_min} / UPLOAD_ID_MAX={settings.id_max} is not a valid range."
        )
    if settings.max_allocation_attempts < 1:
        errors.append("UPLOAD_MAX_ALLOCATION_ATTEMPTS must be at least 1.")
    if settings.max_upload_bytes < 1:
        errors.append("UPLOAD_MAX_BYTES must be positive.")
    if settings.max_image_pixels < 1:
        errors.append("UPLOAD_MAX_IMAGE_PIXELS must be positive.")
    if settings.final_dir.resolve() == settings.staging_dir.resolve():
        errors.append("UPLOAD_STAGING_DIR and UPLOAD_FINAL_DIR must be different directories.")
    return errors
