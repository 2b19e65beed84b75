"""Process-wide map of in-flight regional analysis jobs."""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from analysis_backend.domain import JobAssembler, JobState

logger = logging.getLogger(__name__)


class JobRegistry:
    """Thread-safe job id → assembler map.

    The submission pool inserts, the result listener looks up and the status
    reporter reads. Terminal jobs are kept for ``retention_seconds`` so
    trailing polls still see their final status, then evicted by ``sweep``.
    """

    def __init__(
        self,
        *,
        retention_seconds: float = 3600.0,
        stall_timeout_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._assemblers: dict[str, JobAssembler] = {}
        self._lock = threading.Lock()
        self.retention_seconds = retention_seconds
        self.stall_timeout_seconds = stall_timeout_seconds
        self._clock = clock

    def register(self, assembler: JobAssembler) -> None:
        with self._lock:
            if assembler.job_id in self._assemblers:
                raise KeyError(f"Job '{assembler.job_id}' is already registered")
            self._assemblers[assembler.job_id] = assembler

    def get(self, job_id: str) -> JobAssembler | None:
        with self._lock:
            return self._assemblers.get(job_id)

    def evict(self, job_id: str) -> JobAssembler | None:
        with self._lock:
            return self._assemblers.pop(job_id, None)

    def list(self) -> list[JobAssembler]:
        with self._lock:
            return list(self._assemblers.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._assemblers)

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._assemblers

    def sweep(self, now: float | None = None) -> list[str]:
        """Fail stalled jobs and evict terminal ones past retention; returns evicted ids."""

        now = self._clock() if now is None else now
        evicted: list[str] = []
        for assembler in self.list():
            state = assembler.state
            if (
                state is JobState.ACTIVE
                and self.stall_timeout_seconds is not None
                and now - assembler.last_progress_at >= self.stall_timeout_seconds
            ):
                assembler.fail(f"stalled: no progress for {self.stall_timeout_seconds:g}s")
                state = assembler.state

            finished_at = assembler.finished_at
            if state.terminal and finished_at is not None and now - finished_at >= self.retention_seconds:
                with self._lock:
                    if self._assemblers.get(assembler.job_id) is assembler:
                        del self._assemblers[assembler.job_id]
                        evicted.append(assembler.job_id)

        if evicted:
            logger.info("evicted %d finished jobs: %s", len(evicted), ", ".join(evicted))
        return evicted


__all__ = ["JobRegistry"]
