from __future__ import annotations

from analysis_backend.domain import JobStatus
from analysis_backend.infrastructure import JobRegistry


class StatusReporter:
    """Read-only progress view over the job registry."""

    def __init__(self, registry: JobRegistry) -> None:
        self._registry = registry

    def status(self, job_id: str) -> JobStatus | None:
        assembler = self._registry.get(job_id)
        if assembler is None:
            return None
        return assembler.status()

    def list(self) -> list[JobStatus]:
        return [assembler.status() for assembler in self._registry.list()]
