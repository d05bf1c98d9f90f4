"""
Engine and session factories for the catalog database.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker

from db.config import is_sqlite_url, resolve_database_url


def create_catalog_engine(url: str) -> Engine:
    """
    Build an engine for the given URL.

    SQLite connections are shared across request threads, so the
    same-thread check is disabled and the database directory is created.
    """

    if is_sqlite_url(url):
        database = make_url(url).database
        if database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)
        return create_engine(
            url,
            future=True,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
    return create_engine(url, future=True, pool_pre_ping=True)


def build_session_factory(url: str) -> sessionmaker[Session]:
    return sessionmaker(
        bind=create_catalog_engine(url),
        autoflush=False,
        expire_on_commit=False,
    )


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_catalog_engine(resolve_database_url())


SessionLocal = sessionmaker(bind=get_engine(), autoflush=False, expire_on_commit=False)
