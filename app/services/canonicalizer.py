"""
app/services/canonicalizer.py

Converts staged uploads into the canonical on-disk image encoding (PNG).
"""

from __future__ import annotations

import logging
import os
import warnings
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from db.repositories.errors import ConversionError
from db.repositories.storage import FinalStore
from db.repositories.types import CanonicalFile, StagedFile

logger = logging.getLogger(__name__)

# Modes the PNG encoder writes natively.
PNG_NATIVE_MODES = {"1", "L", "LA", "I", "I;16", "P", "RGB", "RGBA"}


def normalize_mode(image: Image.Image) -> Image.Image:
    """
    Return an image in a mode the PNG encoder accepts.

    CMYK, YCbCr, LAB, HSV and float images become RGB, or RGBA when the
    source carries transparency.
    """

    if image.mode in PNG_NATIVE_MODES:
        return image
    has_alpha = image.mode.endswith("A") or "transparency" in image.info
    return image.convert("RGBA" if has_alpha else "RGB")


class ImageCanonicalizer:
    """
    Decode a staged file with Pillow and re-encode it into the final store.

    The encoded bytes go to a private temporary name inside the final store
    and are renamed to "<id>.png" only after the encoder finished and the
    file was fsynced. The staged file is left in place.
    """

    def __init__(
        self,
        final_store: FinalStore,
        *,
        image_format: str = "PNG",
        max_image_pixels: int | None = None,
    ) -> None:
        self._final_store = final_store
        self._image_format = image_format
        self._max_image_pixels = max_image_pixels

    def canonicalize(self, staged: StagedFile) -> CanonicalFile:
        upload_id = staged.upload_id
        temp_path: Path | None = None
        try:
            temp_path = self._final_store.temp_path_for(upload_id)
            width, height = self._encode(staged.path, temp_path)
            size_bytes = temp_path.stat().st_size
            final_path = self._final_store.promote(temp_path, upload_id)
        except ConversionError:
            self._discard(temp_path)
            raise
        except OSError as exc:
            self._discard(temp_path)
            raise ConversionError(f"Failed to write canonical file for upload {upload_id}.") from exc
        except BaseException:
            self._discard(temp_path)
            raise

        return CanonicalFile(
            upload_id=upload_id,
            filename=self._final_store.filename_for(upload_id),
            path=final_path,
            width=width,
            height=height,
            size_bytes=size_bytes,
        )

    def _encode(self, source: Path, target: Path) -> tuple[int, int]:
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("error", Image.DecompressionBombWarning)
                with Image.open(source) as image:
                    if self._max_image_pixels is not None:
                        pixels = image.width * image.height
                        if pixels > self._max_image_pixels:
                            raise ConversionError(
                                f"Image has {pixels} pixels; limit is {self._max_image_pixels}."
                            )
                    try:
                        image.load()
                        canonical = normalize_mode(image)
                    except OSError as exc:
                        raise ConversionError(f"{source.name} is truncated or corrupt.") from exc
                    size = canonical.size
                    with target.open("wb") as handle:
                        canonical.save(handle, format=self._image_format)
                        handle.flush()
                        os.fsync(handle.fileno())
        except UnidentifiedImageError as exc:
            raise ConversionError(f"{source.name} is not a decodable image.") from exc
        except (Image.DecompressionBombError, Image.DecompressionBombWarning) as exc:
            raise ConversionError(f"{source.name} exceeds the decompression limit.") from exc
        except (SyntaxError, ValueError) as exc:
            # Pillow plugins signal malformed headers with SyntaxError/ValueError.
            raise ConversionError(f"{source.name} could not be decoded.") from exc
        return size

    def _discard(self, temp_path: Path | None) -> None:
        if temp_path is None:
            return
        try:
            temp_path.unlink(missing_ok=True)
        except OSError:
            logger.warning("Could not remove temporary canonical file %s", temp_path)
