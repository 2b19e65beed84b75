"""Domain layer definitions."""

from .assembler import InvalidTileResult, JobAssembler, JobState, JobStatus

__all__ = [
    "InvalidTileResult",
    "JobAssembler",
    "JobState",
    "JobStatus",
]
