"""
Filesystem stores used by the upload pipeline.

The staging store holds raw inbound bytes while an upload is in flight.
The final store holds canonical images under id-derived names and is the
only directory external viewers may serve.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
import uuid
from pathlib import Path
from typing import Protocol

from db.repositories.errors import FileStorageError, StagingError
from db.repositories.types import StagedFile

logger = logging.getLogger(__name__)

_EXTENSION_PATTERN = re.compile(r"^\.[a-z0-9]{1,10}$")
FALLBACK_EXTENSION = ".bin"


class StagingStore(Protocol):
    """
    Abstract staging backend used by the upload orchestrator.
    """

    def stage(self, upload_id: int, content: bytes, original_extension: str) -> StagedFile:
        ...

    def delete(self, staged: StagedFile) -> None:
        ...

    def list_entries(self) -> list[Path]:
        ...


class FinalStore(Protocol):
    """
    Abstract store for canonical files.
    """

    canonical_extension: str

    def filename_for(self, upload_id: int) -> str:
        ...

    def path_for(self, upload_id: int) -> Path:
        ...

    def temp_path_for(self, upload_id: int) -> Path:
        ...

    def promote(self, temp_path: Path, upload_id: int) -> Path:
        ...

    def exists(self, upload_id: int) -> bool:
        ...

    def delete(self, upload_id: int) -> None:
        ...

    def list_ids(self) -> list[int]:
        ...

    def total_size_bytes(self) -> int:
        ...


def normalize_extension(extension: str | None) -> str:
    """
    Lower-case an extension and force a leading dot.

    Anything that is not a short alphanumeric suffix becomes ".bin" so it
    can never escape the staging directory.
    """

    if not extension:
        return FALLBACK_EXTENSION
    candidate = extension.strip().lower()
    if not candidate.startswith("."):
        candidate = f".{candidate}"
    if not _EXTENSION_PATTERN.match(candidate):
        return FALLBACK_EXTENSION
    return candidate


def _fsync_write(path: Path, content: bytes) -> None:
    with path.open("xb") as handle:
        handle.write(content)
        handle.flush()
        os.fsync(handle.fileno())


def _unlink_quietly(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Could not remove partial file %s: %s", path, exc)


class LocalStagingStore:
    """
    Local filesystem staging backend.

    Files are named "<id><ext>" and written through a ".part" sibling so a
    staged path is only returned once its bytes are on disk.
    """

    def __init__(self, root_dir: str | Path = "uploads/temp") -> None:
        self._root_dir = Path(root_dir)

    @property
    def root_dir(self) -> Path:
        return self._root_dir

    def path_for(self, upload_id: int, original_extension: str) -> Path:
        return self._root_dir / f"{upload_id}{normalize_extension(original_extension)}"

    def stage(self, upload_id: int, content: bytes, original_extension: str) -> StagedFile:
        extension = normalize_extension(original_extension)
        target = self._root_dir / f"{upload_id}{extension}"
        part_path = self._root_dir / f".{target.name}.part"

        try:
            self._root_dir.mkdir(parents=True, exist_ok=True)
            if target.exists():
                raise StagingError(f"Upload {upload_id} is already staged.")
            _fsync_write(part_path, content)
            os.replace(part_path, target)
        except StagingError:
            raise
        except OSError as exc:
            raise StagingError(f"Failed to stage upload {upload_id}.") from exc
        finally:
            if part_path.exists():
                _unlink_quietly(part_path)

        return StagedFile(
            upload_id=upload_id,
            path=target,
            extension=extension,
            size_bytes=len(content),
            checksum=hashlib.sha256(content).hexdigest(),
        )

    def delete(self, staged: StagedFile) -> None:
        try:
            staged.path.unlink(missing_ok=True)
        except OSError as exc:
            raise FileStorageError(f"Failed to delete staged file {staged.path.name}.") from exc

    def list_entries(self) -> list[Path]:
        if not self._root_dir.is_dir():
            return []
        try:
            return sorted(path for path in self._root_dir.iterdir() if path.is_file())
        except OSError as exc:
            raise FileStorageError("Failed to list staging directory.") from exc


class LocalFinalStore:
    """
    Local filesystem store for canonical images.

    Only names matching "<id><canonical-ext>" are final files; writers use
    dot-prefixed temporary names in the same directory and rename into
    place, so a canonical name never refers to a partially written file.
    """

    def __init__(self, root_dir: str | Path = "uploads", canonical_extension: str = ".png") -> None:
        self._root_dir = Path(root_dir)
        self.canonical_extension = normalize_extension(canonical_extension)
        self._final_name = re.compile(rf"^(\d+){re.escape(self.canonical_extension)}$")

    @property
    def root_dir(self) -> Path:
        return self._root_dir

    def filename_for(self, upload_id: int) -> str:
        return f"{upload_id}{self.canonical_extension}"

    def path_for(self, upload_id: int) -> Path:
        return self._root_dir / self.filename_for(upload_id)

    def temp_path_for(self, upload_id: int) -> Path:
        self._root_dir.mkdir(parents=True, exist_ok=True)
        return self._root_dir / f".{self.filename_for(upload_id)}.{uuid.uuid4().hex}.tmp"

    def promote(self, temp_path: Path, upload_id: int) -> Path:
        target = self.path_for(upload_id)
        os.replace(temp_path, target)
        return target

    def exists(self, upload_id: int) -> bool:
        return self.path_for(upload_id).is_file()

    def delete(self, upload_id: int) -> None:
        target = self.path_for(upload_id)
        try:
            target.unlink(missing_ok=True)
        except OSError as exc:
            raise FileStorageError(f"Failed to delete final file {target.name}.") from exc

    def list_ids(self) -> list[int]:
        if not self._root_dir.is_dir():
            return []
        try:
            names = [path.name for path in self._root_dir.iterdir() if path.is_file()]
        except OSError as exc:
            raise FileStorageError("Failed to list final store.") from exc
        ids = []
        for name in names:
            match = self._final_name.match(name)
            if match:
                ids.append(int(match.group(1)))
        return sorted(ids)

    def total_size_bytes(self) -> int:
        total = 0
        for upload_id in self.list_ids():
            try:
                total += self.path_for(upload_id).stat().st_size
            except FileNotFoundError:
                continue
        return total
