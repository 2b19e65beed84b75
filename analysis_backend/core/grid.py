"""Partitioning of a regional analysis into per-origin tile requests.

Tiles are produced column-major: ``x`` is the outer loop and ``y`` the inner
one, so the first request is always the ``(0, 0)`` cell and the order is
stable for a given definition.
"""
from __future__ import annotations

from analysis_backend.core.schema import RegionalAnalysisDefinition, TileRequest, TravelTimeQuery
from analysis_backend.core.validation import validate_dimensions


def tile_count(definition: RegionalAnalysisDefinition) -> int:
    validate_dimensions(definition.width, definition.height)
    return definition.width * definition.height


def partition(
    definition: RegionalAnalysisDefinition,
    job_id: str,
    *,
    output_queue: str,
    grid: str,
    request: TravelTimeQuery | None = None,
) -> list[TileRequest]:
    """Build one request per grid cell, all bound to ``job_id``.

    ``request`` overrides the definition's travel-time query, which is how the
    submitter swaps an embedded scenario for a reference to stored data.
    """

    validate_dimensions(definition.width, definition.height)
    query = request or definition.request

    requests: list[TileRequest] = []
    for x in range(definition.width):
        for y in range(definition.height):
            requests.append(
                TileRequest(
                    job_id=job_id,
                    graph_id=definition.bundle_id,
                    worker_version=definition.worker_version,
                    north=definition.north,
                    west=definition.west,
                    zoom=definition.zoom,
                    width=definition.width,
                    height=definition.height,
                    x=x,
                    y=y,
                    cutoff_minutes=definition.cutoff_minutes,
                    output_queue=output_queue,
                    grid=grid,
                    request=query,
                )
            )
    return requests
