"""Tests for the in-memory job store."""

from datetime import datetime, timedelta, timezone

from catalog_harvester.worker.cancellation import CancellationToken
from catalog_harvester.worker.job_store import InMemoryJobStore, JobStatus
from catalog_harvester.worker.scheduler import setup_scheduler, sweep_job_records


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds: int):
        self.now += timedelta(seconds=seconds)


def test_create_generates_unique_ids(store):
    first = store.create()
    second = store.create()
    assert first != second
    assert store.get(first).status == JobStatus.RUNNING
    assert store.get(first).stage == "init"


def test_create_uses_supplied_id(store):
    job_id = store.create("client-job-1")
    assert job_id == "client-job-1"
    assert store.get("client-job-1") is not None


def test_update_unknown_id_is_noop(store):
    assert store.update("missing", stage="x") is None
    assert store.get("missing") is None


def test_update_merges_patch_and_stamps_updated_at():
    clock = FakeClock()
    store = InMemoryJobStore(ttl_seconds=60, clock=clock)
    job_id = store.create()
    created = store.get(job_id)

    clock.advance(5)
    store.update(job_id, stage="scanning_items", sections_total=4)

    record = store.get(job_id)
    assert record.stage == "scanning_items"
    assert record.sections_total == 4
    assert record.updated_at > created.updated_at
    assert record.started_at == created.started_at


def test_update_replaces_record_instead_of_mutating(store):
    job_id = store.create()
    before = store.get(job_id)
    store.update(job_id, processed=3)
    assert before.processed == 0
    assert store.get(job_id).processed == 3


def test_terminal_status_is_final(store):
    job_id = store.create()
    store.mark_completed(job_id, processed=2, success=2, fail=0, total=2)

    store.mark_error(job_id, "late failure")
    store.update(job_id, status=JobStatus.RUNNING)

    record = store.get(job_id)
    assert record.status == JobStatus.COMPLETED


def test_unknown_fields_are_ignored(store):
    job_id = store.create()
    store.update(job_id, bogus=1, stage="navigating")
    assert store.get(job_id).stage == "navigating"


def test_request_cancel_sets_flag_only(store):
    job_id = store.create()
    store.request_cancel(job_id)
    store.request_cancel(job_id)

    record = store.get(job_id)
    assert record.cancel_requested is True
    assert record.status == JobStatus.RUNNING
    assert CancellationToken(store, job_id).cancelled is True


def test_request_cancel_leaves_finished_jobs_untouched(store):
    job_id = store.create()
    store.mark_completed(job_id, message="completed")

    record = store.request_cancel(job_id)

    assert record.status == JobStatus.COMPLETED
    assert record.message == "completed"
    assert record.cancel_requested is False


def test_never_token_is_not_cancelled():
    assert CancellationToken.never().cancelled is False


def test_cleanup_only_removes_terminal_records(store):
    job_id = store.create()
    assert store.cleanup(job_id) is False
    assert store.get(job_id) is not None

    store.mark_cancelled(job_id)
    assert store.cleanup(job_id) is True
    assert store.get(job_id) is None


def test_sweep_expires_old_terminal_records():
    clock = FakeClock()
    store = InMemoryJobStore(ttl_seconds=60, clock=clock)
    finished = store.create()
    running = store.create()
    store.mark_completed(finished)

    clock.advance(61)
    assert store.sweep_expired() == 1
    assert store.get(finished) is None
    assert store.get(running) is not None


def test_create_sweeps_lazily():
    clock = FakeClock()
    store = InMemoryJobStore(ttl_seconds=10, clock=clock)
    old = store.create()
    store.mark_error(old, "boom")

    clock.advance(11)
    store.create()
    assert store.get(old) is None
    assert len(store) == 1


def test_to_dict_serializes_status_and_dates(store):
    job_id = store.create()
    data = store.get(job_id).to_dict()
    assert data["status"] == "running"
    assert isinstance(data["started_at"], str)
    assert data["cancel_requested"] is False


def test_sweep_job_records_uses_given_store():
    clock = FakeClock()
    store = InMemoryJobStore(ttl_seconds=30, clock=clock)
    store.mark_completed(store.create())

    clock.advance(31)
    assert sweep_job_records(store) == 1
    assert len(store) == 0


def test_setup_scheduler_registers_sweep(store):
    scheduler = setup_scheduler(store)

    job = scheduler.get_job("job_record_sweep")
    assert job is not None
    assert job.args == (store,)
