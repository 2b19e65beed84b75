"""Application service wiring the regional analysis components together."""
from __future__ import annotations

import logging
from typing import Callable

from analysis_backend.core.config import AnalysisSettings
from analysis_backend.core.schema import RegionalAnalysisDefinition, TileResult
from analysis_backend.domain import JobStatus
from analysis_backend.infrastructure import (
    BrokerClient,
    DocumentStore,
    HttpBrokerClient,
    InMemoryDocumentStore,
    InMemoryResultQueue,
    JobRegistry,
    LocalFileStorage,
    ObjectStorage,
    ResultQueue,
    S3Storage,
    SqsResultQueue,
    YamlDocumentStore,
)
from analysis_backend.workers.listener import ResultListener
from analysis_backend.workers.submitter import JobSubmitter

from .status import StatusReporter

logger = logging.getLogger(__name__)


class ResultsNotAccepted(RuntimeError):
    """Raised when results are posted but the service reads them from an external queue."""


class RegionalAnalysisService:
    """Coordinates submission, result routing and status polling."""

    def __init__(
        self,
        registry: JobRegistry,
        submitter: JobSubmitter,
        listener: ResultListener,
        result_queue: ResultQueue,
    ) -> None:
        self.registry = registry
        self.submitter = submitter
        self.listener = listener
        self.result_queue = result_queue
        self.reporter = StatusReporter(registry)

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        self.submitter.start()
        self.listener.start()

    def stop(self, timeout: float | None = 10.0) -> None:
        self.submitter.stop(timeout)
        self.listener.stop(timeout)

    # ------------------------------------------------------------------
    # use cases
    # ------------------------------------------------------------------
    def submit(self, definition: RegionalAnalysisDefinition) -> str:
        return self.submitter.submit(definition)

    def status(self, job_id: str) -> JobStatus | None:
        return self.reporter.status(job_id)

    def list(self) -> list[JobStatus]:
        return self.reporter.list()

    def clear(self, job_id: str) -> bool:
        """Stop tracking a job; late results for it are dropped by the listener."""
        return self.registry.evict(job_id) is not None

    def publish_result(self, result: TileResult) -> str:
        """Accept a tile result posted over HTTP by a worker on the local queue."""
        if not isinstance(self.result_queue, InMemoryResultQueue):
            raise ResultsNotAccepted(f"results are read from {self.result_queue.address}")
        return self.result_queue.publish(result)


def _build_storage(settings: AnalysisSettings, bucket: str | None, zone: str) -> ObjectStorage:
    if settings.storage_backend == "s3":
        if not bucket:
            raise ValueError(f"an S3 bucket is required for {zone} storage")
        return S3Storage(bucket, region=settings.aws_region)
    return LocalFileStorage(settings.storage_root / zone)


def _build_queue(settings: AnalysisSettings) -> ResultQueue:
    if settings.queue_backend == "sqs":
        return SqsResultQueue(settings.results_queue, region=settings.aws_region)
    return InMemoryResultQueue(settings.results_url)


def _build_documents(settings: AnalysisSettings) -> DocumentStore:
    if settings.documents_path is not None:
        return YamlDocumentStore(settings.documents_path)
    return InMemoryDocumentStore()


def build_analysis_service(
    settings: AnalysisSettings,
    *,
    broker: BrokerClient | None = None,
    result_queue: ResultQueue | None = None,
    scenario_storage: ObjectStorage | None = None,
    result_storage: ObjectStorage | None = None,
    documents: DocumentStore | None = None,
    clock: Callable[[], float] | None = None,
) -> RegionalAnalysisService:
    """Assemble a service from settings; any collaborator may be injected instead."""

    extra = {"clock": clock} if clock is not None else {}
    registry = JobRegistry(
        retention_seconds=settings.retention_seconds,
        stall_timeout_seconds=settings.stall_timeout_seconds,
        **extra,
    )
    result_queue = result_queue or _build_queue(settings)
    broker = broker or HttpBrokerClient(
        settings.effective_broker_url,
        timeout=settings.broker_timeout_seconds,
    )
    submitter = JobSubmitter(
        registry,
        broker,
        documents or _build_documents(settings),
        output_queue=result_queue.address,
        scenario_storage=scenario_storage or _build_storage(settings, settings.bundle_bucket, "scenarios"),
        result_storage=result_storage or _build_storage(settings, settings.results_bucket, "results"),
        workers=settings.submit_workers,
        max_pending=settings.submit_queue_size,
        **extra,
    )
    listener = ResultListener(
        result_queue,
        registry,
        max_messages=settings.listener_max_messages,
        wait_seconds=settings.listener_wait_seconds,
        backoff_initial=settings.listener_backoff_initial,
        backoff_max=settings.listener_backoff_max,
        sweep_interval=settings.sweep_interval_seconds,
        **extra,
    )
    logger.debug("regional analysis service built (offline=%s)", settings.offline)
    return RegionalAnalysisService(registry, submitter, listener, result_queue)
