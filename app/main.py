from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI

from app.config import get_catalog_settings, get_upload_settings, validate_upload_settings


def _validate_env() -> None:
    """
    Validate upload settings at startup.

    Raises RuntimeError listing every invalid variable so the operator can
    fix all problems in one restart cycle.
    """

    errors = validate_upload_settings(get_upload_settings())
    if errors:
        raise RuntimeError(
            "Startup validation failed: invalid environment variables:\n"
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


def _check_db() -> None:
    """Open a session and run SELECT 1. Raises RuntimeError if the DB is unreachable."""
    from sqlalchemy import text

    from db.session import SessionLocal

    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
    except Exception as exc:
        raise RuntimeError("Database unavailable.") from exc


def _check_schema() -> None:
    """
    Compare Base.metadata table names against the live DB schema.

    With CATALOG_AUTO_CREATE_SCHEMA enabled missing tables are created;
    otherwise a missing table aborts startup so migrations run first.
    """
    from sqlalchemy import inspect as sa_inspect

    import db.models  # noqa: F401  registers all ORM models on Base.metadata
    from db.base import Base
    from db.session import get_engine

    engine = get_engine()
    inspector = sa_inspect(engine)
    actual: set[str] = set(inspector.get_table_names())
    expected: set[str] = set(Base.metadata.tables.keys())
    missing = expected - actual
    if not missing:
        return

    log = logging.getLogger(__name__)
    if get_catalog_settings().auto_create_schema:
        Base.metadata.create_all(engine)
        log.warning("Created missing catalog table(s): %s", ", ".join(sorted(missing)))
        return

    log.critical(
        "Schema mismatch: %d table(s) defined in ORM metadata are absent from "
        "the database: %s. Run 'alembic upgrade head' and restart.",
        len(missing),
        ", ".join(sorted(missing)),
    )
    raise RuntimeError(
        f"Schema mismatch: {len(missing)} table(s) missing from the database "
        f"({', '.join(sorted(missing))}). Run migrations and restart."
    )


def _prepare_storage() -> None:
    settings = get_upload_settings()
    settings.final_dir.mkdir(parents=True, exist_ok=True)
    settings.staging_dir.mkdir(parents=True, exist_ok=True)


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Validate DB connectivity and schema and create storage directories on boot."""
    _check_db()
    logging.getLogger(__name__).info("Database connectivity confirmed")
    _check_schema()
    logging.getLogger(__name__).info("Database schema validated")
    _prepare_storage()
    logging.getLogger(__name__).info("Upload directories ready")
    yield


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _validate_env()
    _configure_logging()

    application = FastAPI(
        title="Media Catalog API",
        version="1.0.0",
        lifespan=_lifespan,
    )

    from app.api.routers import images_router, uploads_router

    application.include_router(uploads_router)
    application.include_router(images_router)

    @application.get("/health")
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return application


app = create_app()
