"""
Shared fixtures: a SQLite catalog and filesystem stores under tmp_path.
"""

from __future__ import annotations

import io
import threading
from collections.abc import Callable, Iterator, Sequence
from pathlib import Path

import pytest
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.services.canonicalizer import ImageCanonicalizer
from app.services.upload_orchestrator_service import UploadOrchestratorService
from db.base import Base
from db.models import UploadRecord  # noqa: F401
from db.repositories.allocator import IdentifierAllocator
from db.repositories.catalog import CatalogRepository
from db.repositories.storage import LocalFinalStore, LocalStagingStore


class SequenceRandom:
    """
    Deterministic stand-in for random.Random.randint.

    Yields the given values in order, then repeats the last one.
    """

    def __init__(self, values: Sequence[int]) -> None:
        self._values = list(values)
        self._index = 0
        self._lock = threading.Lock()

    def randint(self, a: int, b: int) -> int:
        with self._lock:
            value = self._values[min(self._index, len(self._values) - 1)]
            self._index += 1
        assert a <= value <= b
        return value


@pytest.fixture()
def session_factory(tmp_path: Path) -> Iterator[sessionmaker[Session]]:
    engine = create_engine(
        f"sqlite:///{tmp_path / 'catalog.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture()
def catalog(session_factory: sessionmaker[Session]) -> CatalogRepository:
    return CatalogRepository(session_factory=session_factory)


@pytest.fixture()
def final_store(tmp_path: Path) -> LocalFinalStore:
    return LocalFinalStore(tmp_path / "uploads")


@pytest.fixture()
def staging_store(tmp_path: Path) -> LocalStagingStore:
    return LocalStagingStore(tmp_path / "uploads" / "temp")


@pytest.fixture()
def sequence_rng() -> Callable[..., SequenceRandom]:
    def _factory(*values: int) -> SequenceRandom:
        return SequenceRandom(values)

    return _factory


@pytest.fixture()
def make_orchestrator(
    catalog: CatalogRepository,
    final_store: LocalFinalStore,
    staging_store: LocalStagingStore,
) -> Callable[..., UploadOrchestratorService]:
    def _factory(
        *,
        rng: SequenceRandom | None = None,
        max_attempts: int = 1000,
        staging: LocalStagingStore | None = None,
        max_upload_bytes: int = 5 * 1024 * 1024,
    ) -> UploadOrchestratorService:
        allocator = IdentifierAllocator(
            catalog,
            max_attempts=max_attempts,
            rng=rng,
            filename_for=final_store.filename_for,
            occupied=final_store.exists,
        )
        return UploadOrchestratorService(
            catalog=catalog,
            allocator=allocator,
            staging_store=staging or staging_store,
            final_store=final_store,
            canonicalizer=ImageCanonicalizer(final_store),
            max_upload_bytes=max_upload_bytes,
        )

    return _factory


@pytest.fixture()
def orchestrator(make_orchestrator: Callable[..., UploadOrchestratorService]) -> UploadOrchestratorService:
    return make_orchestrator()


@pytest.fixture()
def image_bytes() -> Callable[..., bytes]:
    """Encode a solid-colour image in the requested format."""

    def _encode(
        image_format: str = "JPEG",
        size: tuple[int, int] = (10, 10),
        mode: str = "RGB",
        color: object = (200, 40, 40),
    ) -> bytes:
        buffer = io.BytesIO()
        Image.new(mode, size, color).save(buffer, format=image_format)
        return buffer.getvalue()

    return _encode
