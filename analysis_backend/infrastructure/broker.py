"""Client for the broker that schedules tile requests onto workers."""
from __future__ import annotations

import json
from typing import Protocol, Sequence

import httpx

from analysis_backend.core.schema import TileRequest


class BrokerError(RuntimeError):
    """Raised when the broker cannot be reached or rejects a batch."""


class BrokerClient(Protocol):
    """Contract for broker integrations."""

    def dispatch(self, job_id: str, tiles: Sequence[TileRequest]) -> None:
        """Hand all tiles of ``job_id`` to the broker in one call."""


class HttpBrokerClient:
    """Posts regional tile batches to the broker's HTTP enqueue endpoint."""

    def __init__(
        self,
        broker_url: str,
        *,
        timeout: float = 30.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        if not broker_url.startswith(("http://", "https://")):
            raise ValueError("broker_url must include scheme and host")
        self._enqueue_url = f"{broker_url.rstrip('/')}/enqueue/regional"
        self._client = http_client or httpx.Client(timeout=timeout)
        self._owns_client = http_client is None

    def dispatch(self, job_id: str, tiles: Sequence[TileRequest]) -> None:
        body = json.dumps([tile.to_wire() for tile in tiles]).encode("utf-8")
        try:
            response = self._client.post(
                self._enqueue_url,
                content=body,
                headers={"Content-Type": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise BrokerError(f"broker unreachable for job {job_id}: {exc}") from exc

        if response.is_error:
            raise BrokerError(
                f"broker rejected job {job_id} with HTTP {response.status_code}: {response.text[:200]}"
            )

    def close(self) -> None:  # pragma: no cover - best effort cleanup
        if self._owns_client:
            self._client.close()


__all__ = ["BrokerClient", "BrokerError", "HttpBrokerClient"]
