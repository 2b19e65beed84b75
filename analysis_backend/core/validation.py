from __future__ import annotations

from analysis_backend.core.schema import RegionalAnalysisDefinition

MAX_ZOOM = 24


class ValidationError(Exception):
    """Raised when a regional analysis definition cannot be run."""


def validate_dimensions(width: int, height: int) -> None:
    if width < 1 or height < 1:
        raise ValidationError(f"grid must be at least 1x1, got {width}x{height}")


def validate_definition(definition: RegionalAnalysisDefinition) -> None:
    validate_dimensions(definition.width, definition.height)
    if definition.cutoff_minutes < 1:
        raise ValidationError("cutoffMinutes must be positive")
    if not 0 <= definition.zoom <= MAX_ZOOM:
        raise ValidationError(f"zoom must be between 0 and {MAX_ZOOM}")
    if not definition.bundle_id.strip():
        raise ValidationError("bundleId is required")
    if not definition.worker_version.strip():
        raise ValidationError("workerVersion is required")
    if not definition.grid.strip():
        raise ValidationError("grid is required")
