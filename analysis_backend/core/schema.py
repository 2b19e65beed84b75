from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for models exchanged with workers and API clients (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Scenario(WireModel):
    id: str
    modifications: list[dict[str, Any]] = Field(default_factory=list)


class TravelTimeQuery(WireModel):
    # routing parameters the worker understands but we never look at pass through untouched
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True, extra="allow")

    date: str | None = None
    from_time: int = 25200
    to_time: int = 32400
    access_modes: str = "WALK"
    egress_modes: str = "WALK"
    direct_modes: str = "WALK"
    transit_modes: str = "TRANSIT"
    walk_speed: float = 1.3
    bike_speed: float = 4.1
    max_walk_time: int = 20
    max_bike_time: int = 20
    monte_carlo_draws: int = 200
    scenario: Scenario | None = None
    scenario_id: str | None = None


class RegionalAnalysisDefinition(WireModel):
    name: str | None = None
    bundle_id: str
    grid: str
    north: int
    west: int
    width: int
    height: int
    zoom: int
    cutoff_minutes: int
    worker_version: str
    request: TravelTimeQuery = Field(default_factory=TravelTimeQuery)


class TileRequest(WireModel):
    job_id: str
    graph_id: str
    worker_version: str
    north: int
    west: int
    zoom: int
    width: int
    height: int
    x: int
    y: int
    cutoff_minutes: int
    output_queue: str
    grid: str
    request: TravelTimeQuery


class TileResult(WireModel):
    job_id: str
    x: int
    y: int
    accessibility: float | None = None
    error: str | None = None
