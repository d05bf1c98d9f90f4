"""
Identifier allocation for new uploads.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from typing import Protocol

from db.repositories.catalog import Catalog
from db.repositories.errors import AllocationError, CatalogError

logger = logging.getLogger(__name__)

DEFAULT_ID_MIN = 10000
DEFAULT_ID_MAX = 99999


class RandomSource(Protocol):
    def randint(self, a: int, b: int) -> int:
        ...


class IdentifierAllocator:
    """
    Draws uniformly random five-digit ids and reserves the first free one.

    The existence check and the reservation are a single catalog call
    (`Catalog.reserve`), so two allocators racing on the same candidate can
    never both win it. Draws are bounded by `max_attempts`.
    """

    def __init__(
        self,
        catalog: Catalog,
        *,
        id_min: int = DEFAULT_ID_MIN,
        id_max: int = DEFAULT_ID_MAX,
        max_attempts: int = 1000,
        warn_attempts: int = 20,
        rng: RandomSource | None = None,
        filename_for: Callable[[int], str] = lambda upload_id: f"{upload_id}.png",
        occupied: Callable[[int], bool] | None = None,
    ) -> None:
        if id_min > id_max:
            raise ValueError("id_min must not exceed id_max.")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1.")
        self._catalog = catalog
        self._id_min = id_min
        self._id_max = id_max
        self._max_attempts = max_attempts
        self._warn_attempts = warn_attempts
        self._rng = rng or random.SystemRandom()
        self._filename_for = filename_for
        self._occupied = occupied

    def draw_candidate(self) -> int:
        return self._rng.randint(self._id_min, self._id_max)

    def allocate(self, owner_id: str) -> int:
        """
        Reserve and return an id not held by any catalog row.

        `occupied` lets the caller veto candidates that still have a file on
        disk (an orphan awaiting reconciliation), so they are never reused.
        """

        for attempt in range(1, self._max_attempts + 1):
            candidate = self.draw_candidate()
            if self._occupied is not None and self._occupied(candidate):
                logger.debug("Upload id %s skipped: final file already present", candidate)
                continue
            try:
                reserved = self._catalog.reserve(
                    candidate,
                    owner_id=owner_id,
                    filename=self._filename_for(candidate),
                )
            except CatalogError as exc:
                raise AllocationError("Catalog unavailable during id allocation.") from exc
            if not reserved:
                logger.debug("Upload id %s collided on attempt %d", candidate, attempt)
                continue
            if attempt > self._warn_attempts:
                logger.warning(
                    "Upload id allocation needed %d attempts; id space %d-%d may be filling up",
                    attempt,
                    self._id_min,
                    self._id_max,
                )
            return candidate

        raise AllocationError(
            f"No free upload id after {self._max_attempts} attempts "
            f"in range {self._id_min}-{self._id_max}."
        )
