from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from pydantic import ValidationError as PydanticValidationError

from analysis_backend.core.schema import TileResult
from analysis_backend.domain import InvalidTileResult
from analysis_backend.infrastructure import JobRegistry, QueueMessage, ResultQueue

logger = logging.getLogger(__name__)


class ResultListener:
    """Drains the result queue and routes each tile result to its job.

    A message is acknowledged once it has been merged or deliberately
    dropped (unknown job, unparseable or invalid result). When a merge
    raises unexpectedly the message is released for redelivery instead.
    """

    def __init__(
        self,
        result_queue: ResultQueue,
        registry: JobRegistry,
        *,
        max_messages: int = 10,
        wait_seconds: float = 20.0,
        backoff_initial: float = 1.0,
        backoff_max: float = 60.0,
        sweep_interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._queue = result_queue
        self._registry = registry
        self.max_messages = max_messages
        self.wait_seconds = wait_seconds
        self.backoff_initial = backoff_initial
        self.backoff_max = backoff_max
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._last_sweep = clock()

        self.merged = 0
        self.dropped = 0

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            raise RuntimeError("result listener is already running")
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="result-listener", daemon=True)
        self._thread.start()
        logger.info("result listener started on %s", self._queue.address)

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        thread, self._thread = self._thread, None
        if thread is not None:
            thread.join(timeout)
            logger.info("result listener stopped")

    def _run(self) -> None:
        backoff = self.backoff_initial
        while not self._stop.is_set():
            try:
                self.poll_once()
            except Exception:
                logger.exception("error reading result queue, retrying in %.1fs", backoff)
                self._stop.wait(backoff)
                backoff = min(backoff * 2, self.backoff_max)
                continue
            backoff = self.backoff_initial
            self._maybe_sweep()

    def _maybe_sweep(self) -> None:
        now = self._clock()
        if now - self._last_sweep < self.sweep_interval:
            return
        self._last_sweep = now
        try:
            self._registry.sweep()
        except Exception:
            logger.exception("error sweeping job registry")

    # ------------------------------------------------------------------
    # message handling
    # ------------------------------------------------------------------
    def poll_once(self) -> int:
        """Receive one batch and handle it; returns how many results were merged."""
        messages = self._queue.receive(self.max_messages, self.wait_seconds)
        return sum(1 for message in messages if self.handle_message(message))

    def handle_message(self, message: QueueMessage) -> bool:
        try:
            result = TileResult.model_validate_json(message.body)
        except PydanticValidationError:
            logger.warning("dropping unparseable result message %s", message.message_id)
            self._drop(message)
            return False

        assembler = self._registry.get(result.job_id)
        if assembler is None:
            logger.info("dropping result for unknown job %s (%d, %d)", result.job_id, result.x, result.y)
            self._drop(message)
            return False

        try:
            applied = assembler.merge(result)
        except InvalidTileResult as exc:
            logger.warning("dropping invalid result for job %s: %s", result.job_id, exc)
            self._drop(message)
            return False
        except Exception:
            logger.exception("error merging result for job %s (%d, %d)", result.job_id, result.x, result.y)
            self._queue.release(message)
            return False

        self._queue.acknowledge(message)
        if applied:
            self.merged += 1
        else:
            logger.debug("duplicate result for job %s (%d, %d)", result.job_id, result.x, result.y)
        return applied

    def _drop(self, message: QueueMessage) -> None:
        self.dropped += 1
        self._queue.acknowledge(message)


__all__ = ["ResultListener"]
