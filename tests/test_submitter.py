import json
import sys
import threading
import time
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from analysis_backend.core.schema import RegionalAnalysisDefinition, Scenario, TravelTimeQuery
from analysis_backend.core.validation import ValidationError
from analysis_backend.domain import JobState
from analysis_backend.infrastructure import (
    BrokerError,
    Bundle,
    InMemoryDocumentStore,
    JobRegistry,
    LocalFileStorage,
    Project,
)
from analysis_backend.workers.submitter import BackpressureError, JobSubmitter


class RecordingBroker:
    def __init__(self, registry: JobRegistry, error: Exception | None = None) -> None:
        self.registry = registry
        self.error = error
        self.calls: list[tuple[str, list]] = []
        self.registered_at_dispatch: list[bool] = []

    def dispatch(self, job_id, tiles):
        self.registered_at_dispatch.append(self.registry.get(job_id) is not None)
        self.calls.append((job_id, list(tiles)))
        if self.error is not None:
            raise self.error


class BlockingBroker(RecordingBroker):
    def __init__(self, registry: JobRegistry) -> None:
        super().__init__(registry)
        self.release = threading.Event()

    def dispatch(self, job_id, tiles):
        self.release.wait(5)
        super().dispatch(job_id, tiles)


class BrokenStorage:
    def put(self, key, data, content_type=None):
        raise OSError("bucket unavailable")

    def get(self, key):
        raise KeyError(key)


def _wait_until(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def _definition(width: int = 2, height: int = 1, **overrides) -> RegionalAnalysisDefinition:
    values = {
        "bundle_id": "bundle-1",
        "grid": "jobs",
        "north": 100,
        "west": 200,
        "width": width,
        "height": height,
        "zoom": 9,
        "cutoff_minutes": 45,
        "worker_version": "v3",
    }
    values.update(overrides)
    return RegionalAnalysisDefinition(**values)


@pytest.fixture()
def registry():
    return JobRegistry()


@pytest.fixture()
def documents():
    return InMemoryDocumentStore(
        bundles=[Bundle(id="bundle-1", project_id="project-1")],
        projects=[Project(id="project-1")],
    )


@pytest.fixture()
def make_submitter(registry, documents):
    started: list[JobSubmitter] = []

    def factory(broker, **kwargs) -> JobSubmitter:
        kwargs.setdefault("output_queue", "memory://results")
        submitter = JobSubmitter(registry, broker, documents, **kwargs)
        submitter.start()
        started.append(submitter)
        return submitter

    yield factory
    for submitter in started:
        submitter.stop(timeout=5)


def test_submit_registers_and_dispatches_all_tiles(registry, make_submitter):
    broker = RecordingBroker(registry)
    submitter = make_submitter(broker)

    job_id = submitter.submit(_definition(2, 1))
    submitter.drain()

    status = registry.get(job_id).status()
    assert (status.total, status.complete, status.state) == (2, 0, JobState.ACTIVE)

    (dispatched_job, tiles), = broker.calls
    assert dispatched_job == job_id
    assert [(tile.x, tile.y) for tile in tiles] == [(0, 0), (1, 0)]
    assert {tile.job_id for tile in tiles} == {job_id}
    assert all(tile.grid == "project-1/jobs.grid" for tile in tiles)
    assert all(tile.output_queue == "memory://results" for tile in tiles)
    assert broker.registered_at_dispatch == [True]


def test_submit_returns_before_dispatch(registry, make_submitter):
    broker = BlockingBroker(registry)
    submitter = make_submitter(broker)

    job_id = submitter.submit(_definition())

    assert broker.calls == []
    assert registry.get(job_id) is not None
    broker.release.set()
    submitter.drain()
    assert len(broker.calls) == 1


def test_validation_errors_are_synchronous(registry, make_submitter):
    broker = RecordingBroker(registry)
    submitter = make_submitter(broker)

    with pytest.raises(ValidationError):
        submitter.submit(_definition(width=0))

    submitter.drain()
    assert len(registry) == 0
    assert broker.calls == []


def test_dispatch_failure_marks_job_failed(registry, make_submitter):
    broker = RecordingBroker(registry, error=BrokerError("connection refused"))
    submitter = make_submitter(broker)

    job_id = submitter.submit(_definition(3, 3))
    submitter.drain()

    status = registry.get(job_id).status()
    assert status.state is JobState.FAILED
    assert status.complete == 0
    assert "connection refused" in status.error


def test_unexpected_dispatch_error_does_not_escape(registry, make_submitter):
    broker = RecordingBroker(registry, error=ValueError("bad payload"))
    submitter = make_submitter(broker)

    job_id = submitter.submit(_definition())
    submitter.drain()

    assert registry.get(job_id).status().state is JobState.FAILED
    assert submitter.running


def test_missing_bundle_fails_job(registry, make_submitter):
    broker = RecordingBroker(registry)
    submitter = make_submitter(broker)

    job_id = submitter.submit(_definition(bundle_id="unknown-bundle"))
    submitter.drain()

    status = registry.get(job_id).status()
    assert status.state is JobState.FAILED
    assert "unknown-bundle" in status.error
    assert broker.calls == []


def test_scenario_is_stored_and_referenced(tmp_path, registry, make_submitter):
    broker = RecordingBroker(registry)
    storage = LocalFileStorage(tmp_path)
    submitter = make_submitter(broker, scenario_storage=storage)
    scenario = Scenario(id="scn-1", modifications=[{"type": "add-trip-pattern"}])

    submitter.submit(_definition(request=TravelTimeQuery(scenario=scenario)))
    submitter.drain()

    stored = json.loads(storage.get("bundle-1_scn-1.json"))
    assert stored == {"id": "scn-1", "modifications": [{"type": "add-trip-pattern"}]}
    (_, tiles), = broker.calls
    assert tiles[0].request.scenario is None
    assert tiles[0].request.scenario_id == "scn-1"


def test_scenario_storage_failure_keeps_scenario_inline(registry, make_submitter):
    broker = RecordingBroker(registry)
    submitter = make_submitter(broker, scenario_storage=BrokenStorage())
    scenario = Scenario(id="scn-1")

    job_id = submitter.submit(_definition(request=TravelTimeQuery(scenario=scenario)))
    submitter.drain()

    (_, tiles), = broker.calls
    assert tiles[0].request.scenario == scenario
    assert registry.get(job_id).status().state is JobState.ACTIVE


def test_full_queue_rejects_submission(registry, documents):
    broker = RecordingBroker(registry)
    submitter = JobSubmitter(registry, broker, documents, output_queue="q", max_pending=1)

    first = submitter.submit(_definition())
    with pytest.raises(BackpressureError):
        submitter.submit(_definition())

    assert len(registry) == 1
    assert submitter.pending == 1
    assert registry.get(first) is not None

    submitter.start()
    submitter.drain()
    submitter.stop(timeout=5)
    assert len(broker.calls) == 1


def test_restart_waits_for_threads_still_busy_after_stop(registry, documents):
    broker = BlockingBroker(registry)
    submitter = JobSubmitter(registry, broker, documents, output_queue="q", workers=1)
    submitter.start()
    submitter.submit(_definition())
    assert _wait_until(lambda: submitter.pending == 0)

    submitter.stop(timeout=0.05)
    assert submitter.running
    with pytest.raises(RuntimeError):
        submitter.start()

    broker.release.set()
    submitter.stop(timeout=5)
    assert not submitter.running

    submitter.start()
    try:
        submitter.submit(_definition())
        submitter.drain()
        assert submitter.running
    finally:
        submitter.stop(timeout=5)
    assert len(broker.calls) == 2
