"""Per-job accumulation of tile results."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

import numpy as np

from analysis_backend.core.csvio import write_grid_to_csv
from analysis_backend.core.schema import TileResult
from analysis_backend.core.validation import validate_dimensions

if TYPE_CHECKING:
    from analysis_backend.infrastructure.storage import ObjectStorage

logger = logging.getLogger(__name__)


class JobState(str, Enum):
    ACTIVE = "active"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self is not JobState.ACTIVE


class InvalidTileResult(ValueError):
    """Raised when a tile result can never be applied to its job."""


@dataclass(frozen=True, slots=True)
class JobStatus:
    """Point-in-time progress of a regional analysis job."""

    job_id: str
    total: int
    complete: int
    state: JobState
    error: str | None = None
    failed_tiles: int = 0
    output: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "jobId": self.job_id,
            "total": self.total,
            "complete": self.complete,
            "state": self.state.value,
            "error": self.error,
            "failedTiles": self.failed_tiles,
            "output": self.output,
        }


class JobAssembler:
    """Collects tile results for one job and finalizes its output grid.

    Merges, state transitions and status snapshots are serialised by a
    per-job lock. Storing the finished grid happens outside the lock so
    status polls never wait on storage I/O; the thread whose merge brings
    ``complete`` up to ``total`` is the only one that finalizes.
    """

    def __init__(
        self,
        job_id: str,
        width: int,
        height: int,
        *,
        storage: "ObjectStorage | None" = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        validate_dimensions(width, height)
        self.job_id = job_id
        self.width = width
        self.height = height
        self.total = width * height

        self._storage = storage
        self._clock = clock
        self._lock = threading.Lock()
        self._done = threading.Event()

        self._values = np.full((height, width), np.nan, dtype=np.float64)
        self._applied = np.zeros((height, width), dtype=bool)
        self._complete = 0
        self._failed_tiles = 0
        self._state = JobState.ACTIVE
        self._finalizing = False
        self._error: str | None = None
        self._output: str | None = None

        self.created_at = clock()
        self._last_progress_at = self.created_at
        self._finished_at: float | None = None

    # ------------------------------------------------------------------
    # read side
    # ------------------------------------------------------------------
    @property
    def state(self) -> JobState:
        with self._lock:
            return self._state

    @property
    def last_progress_at(self) -> float:
        with self._lock:
            return self._last_progress_at

    @property
    def finished_at(self) -> float | None:
        with self._lock:
            return self._finished_at

    def status(self) -> JobStatus:
        with self._lock:
            return JobStatus(
                job_id=self.job_id,
                total=self.total,
                complete=self._complete,
                state=self._state,
                error=self._error,
                failed_tiles=self._failed_tiles,
                output=self._output,
            )

    def values(self) -> np.ndarray:
        """Copy of the accessibility grid, ``NaN`` where no value has arrived."""
        with self._lock:
            return self._values.copy()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the job reaches a terminal state."""
        return self._done.wait(timeout)

    # ------------------------------------------------------------------
    # write side
    # ------------------------------------------------------------------
    def _check(self, result: TileResult) -> None:
        if result.job_id != self.job_id:
            raise InvalidTileResult(f"result for job {result.job_id} routed to job {self.job_id}")
        if not (0 <= result.x < self.width and 0 <= result.y < self.height):
            raise InvalidTileResult(
                f"cell ({result.x}, {result.y}) outside {self.width}x{self.height} grid of job {self.job_id}"
            )
        if (result.accessibility is None) == (result.error is None):
            raise InvalidTileResult("tile result must carry exactly one of accessibility or error")

    def merge(self, result: TileResult) -> bool:
        """Apply a tile result; returns ``False`` when it had no effect."""

        self._check(result)
        with self._lock:
            if self._state is not JobState.ACTIVE:
                return False
            if self._applied[result.y, result.x]:
                return False

            self._applied[result.y, result.x] = True
            if result.error is None:
                self._values[result.y, result.x] = result.accessibility
            else:
                self._failed_tiles += 1
            self._complete += 1
            self._last_progress_at = self._clock()

            finalize = self._complete == self.total
            if finalize:
                self._finalizing = True

        if result.error is not None:
            logger.warning("worker reported error for job %s cell (%d, %d): %s", self.job_id, result.x, result.y, result.error)
        if finalize:
            self._finalize()
        return True

    def _finalize(self) -> None:
        output: str | None = None
        error: str | None = None
        if self._storage is not None:
            # every cell is applied, nothing writes to the grid any more
            try:
                output = self._storage.put(
                    f"{self.job_id}.csv.gz",
                    write_grid_to_csv(self._values),
                    content_type="application/gzip",
                )
            except Exception as exc:
                logger.exception("failed to store results for job %s", self.job_id)
                error = f"failed to store results: {exc}"

        with self._lock:
            self._finished_at = self._clock()
            self._finalizing = False
            if error is None:
                self._state = JobState.COMPLETE
                self._output = output
            else:
                self._state = JobState.FAILED
                self._error = error
        self._done.set()
        if error is None:
            logger.info("job %s complete: %d tiles, %d with errors", self.job_id, self.total, self._failed_tiles)

    def fail(self, reason: str) -> bool:
        """Move an active job to FAILED; returns ``False`` if it already finished."""

        with self._lock:
            if self._state is not JobState.ACTIVE or self._finalizing:
                return False
            self._state = JobState.FAILED
            self._error = reason
            self._finished_at = self._clock()
        self._done.set()
        logger.warning("job %s failed: %s", self.job_id, reason)
        return True
