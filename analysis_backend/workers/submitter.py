from __future__ import annotations

import json
import logging
import queue
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Callable

from analysis_backend.core.grid import partition
from analysis_backend.core.schema import RegionalAnalysisDefinition, TravelTimeQuery
from analysis_backend.core.validation import validate_definition
from analysis_backend.domain import JobAssembler
from analysis_backend.infrastructure import (
    BrokerClient,
    BrokerError,
    DocumentStore,
    JobRegistry,
    ObjectStorage,
)

logger = logging.getLogger(__name__)


class BackpressureError(RuntimeError):
    """Raised when the submission queue cannot take more work."""


@dataclass(frozen=True)
class SubmissionTask:
    job_id: str
    definition: RegionalAnalysisDefinition
    assembler: JobAssembler


class JobSubmitter:
    """Ships regional analyses to the broker from a small pool of threads.

    ``submit`` validates and registers the job on the calling thread, so the
    job is known to the registry (and to the result listener) before any of
    its tiles can possibly be dispatched; everything involving network I/O
    runs on the pool.
    """

    def __init__(
        self,
        registry: JobRegistry,
        broker: BrokerClient,
        documents: DocumentStore,
        *,
        output_queue: str,
        scenario_storage: ObjectStorage | None = None,
        result_storage: ObjectStorage | None = None,
        workers: int = 2,
        max_pending: int = 512,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._registry = registry
        self._broker = broker
        self._documents = documents
        self._output_queue = output_queue
        self._scenario_storage = scenario_storage
        self._result_storage = result_storage
        self._worker_count = workers
        self._clock = clock
        self._tasks: queue.Queue[SubmissionTask | None] = queue.Queue(maxsize=max_pending)
        self._threads: list[threading.Thread] = []
        self._stopping: list[threading.Thread] = []
        self._lifecycle = threading.Lock()

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    @property
    def running(self) -> bool:
        return any(thread.is_alive() for thread in self._threads + self._stopping)

    def start(self) -> None:
        with self._lifecycle:
            if self.running:
                raise RuntimeError("job submitter is already running")
            self._threads = [
                threading.Thread(target=self._work, name=f"job-submitter-{index}", daemon=True)
                for index in range(self._worker_count)
            ]
            for thread in self._threads:
                thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """Finish queued submissions, then stop the pool.

        Threads still busy when ``timeout`` expires keep their stop marker and
        block ``start`` until they exit.
        """
        with self._lifecycle:
            threads, self._threads = self._threads, []
            for _ in threads:
                self._tasks.put(None)
            self._stopping.extend(threads)
            for thread in self._stopping:
                thread.join(timeout)
            self._stopping = [thread for thread in self._stopping if thread.is_alive()]
            if self._stopping:
                logger.warning("%d submitter threads still busy after stop", len(self._stopping))

    def drain(self) -> None:
        """Block until every queued submission has been processed."""
        self._tasks.join()

    @property
    def pending(self) -> int:
        return self._tasks.qsize()

    # ------------------------------------------------------------------
    # submission
    # ------------------------------------------------------------------
    def submit(self, definition: RegionalAnalysisDefinition) -> str:
        validate_definition(definition)
        job_id = uuid.uuid4().hex
        assembler = JobAssembler(
            job_id,
            definition.width,
            definition.height,
            storage=self._result_storage,
            clock=self._clock,
        )
        self._registry.register(assembler)
        try:
            self._tasks.put_nowait(SubmissionTask(job_id=job_id, definition=definition, assembler=assembler))
        except queue.Full:
            self._registry.evict(job_id)
            raise BackpressureError(
                f"submission queue is full ({self._tasks.maxsize} pending analyses)"
            ) from None
        logger.info(
            "queued regional analysis %s: %dx%d tiles for bundle %s (%d pending)",
            job_id,
            definition.width,
            definition.height,
            definition.bundle_id,
            self.pending,
        )
        return job_id

    def _work(self) -> None:
        while True:
            task = self._tasks.get()
            try:
                if task is None:
                    return
                self.process(task)
            finally:
                self._tasks.task_done()

    def process(self, task: SubmissionTask) -> None:
        """Store the scenario, partition the grid and dispatch every tile."""

        try:
            request = self._store_scenario(task.definition)
            grid = self._resolve_grid(task.definition)
            tiles = partition(
                task.definition,
                task.job_id,
                output_queue=self._output_queue,
                grid=grid,
                request=request,
            )
            self._broker.dispatch(task.job_id, tiles)
        except LookupError as exc:
            task.assembler.fail(str(exc))
        except BrokerError as exc:
            logger.error("error enqueueing requests for job %s: %s", task.job_id, exc)
            task.assembler.fail(f"dispatch failed: {exc}")
        except Exception as exc:
            logger.exception("unexpected error submitting job %s", task.job_id)
            task.assembler.fail(f"submission failed: {exc}")
        else:
            logger.info("dispatched %d tiles for job %s", len(tiles), task.job_id)

    def _store_scenario(self, definition: RegionalAnalysisDefinition) -> TravelTimeQuery:
        """Upload the embedded scenario so workers can fetch it by id.

        Falls back to the unchanged request (scenario inline) when storing fails.
        """

        request = definition.request
        scenario = request.scenario
        if scenario is None or self._scenario_storage is None:
            return request

        key = f"{definition.bundle_id}_{scenario.id}.json"
        try:
            self._scenario_storage.put(
                key,
                json.dumps(scenario.to_wire()).encode("utf-8"),
                content_type="application/json",
            )
        except Exception:
            logger.exception("error saving scenario %s, sending it inline", key)
            return request
        return request.model_copy(update={"scenario": None, "scenario_id": scenario.id})

    def _resolve_grid(self, definition: RegionalAnalysisDefinition) -> str:
        bundle = self._documents.get_bundle(definition.bundle_id)
        if bundle is None:
            raise LookupError(f"bundle {definition.bundle_id} not found")
        project = self._documents.get_project(bundle.project_id)
        if project is None:
            raise LookupError(f"project {bundle.project_id} of bundle {bundle.id} not found")
        return f"{project.id}/{definition.grid}.grid"


__all__ = ["BackpressureError", "JobSubmitter", "SubmissionTask"]
