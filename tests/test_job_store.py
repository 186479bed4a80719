from __future__ import annotations

import pytest

from reelworks.errors import NotFoundError, PersistenceError
from reelworks.pipeline.job_store import JobStore
from reelworks.pipeline.models import JobKind, JobStatus, can_transition


def _new_job(store: JobStore, owner: str = "user-1"):
    return store.create(owner, JobKind.STANDARD, {"niche": "space facts"})


def test_create_persists_draft_job_with_request_metadata(fake_db) -> None:
    store = JobStore(fake_db)
    job = _new_job(store)

    assert job.status is JobStatus.DRAFT
    stored = store.get(job.id)
    assert stored.owner_id == "user-1"
    assert stored.request == {"niche": "space facts"}
    assert stored.result_url is None and stored.error_message is None


def test_get_hides_jobs_owned_by_someone_else(fake_db) -> None:
    store = JobStore(fake_db)
    job = _new_job(store, owner="alice")

    with pytest.raises(NotFoundError):
        store.get(job.id, owner_id="bob")
    assert store.get(job.id, owner_id="alice").id == job.id


def test_transition_is_guarded_by_current_status(fake_db) -> None:
    store = JobStore(fake_db)
    job = _new_job(store)

    assert store.transition(job.id, JobStatus.DRAFT, JobStatus.SCRIPTING) is not None
    # A second claim from draft finds the job already moved on
    assert store.transition(job.id, JobStatus.DRAFT, JobStatus.SCRIPTING) is None
    assert store.get(job.id).status is JobStatus.SCRIPTING


def test_illegal_transition_is_rejected_before_touching_the_store(fake_db) -> None:
    store = JobStore(fake_db)
    job = _new_job(store)

    with pytest.raises(ValueError):
        store.transition(job.id, JobStatus.DRAFT, JobStatus.COMPLETED)
    assert store.get(job.id).status is JobStatus.DRAFT


def test_transition_table_only_allows_forward_moves_and_failure() -> None:
    assert can_transition(JobStatus.VOICING, JobStatus.IMAGING)
    assert can_transition(JobStatus.IMAGING, JobStatus.FAILED)
    assert not can_transition(JobStatus.RENDERING, JobStatus.VOICING)
    assert not can_transition(JobStatus.SCRIPTING, JobStatus.RENDERING)
    assert not can_transition(JobStatus.COMPLETED, JobStatus.FAILED)


def test_provider_backed_jobs_skip_the_asset_stages() -> None:
    assert can_transition(JobStatus.DRAFT, JobStatus.RENDERING)
    assert can_transition(JobStatus.DRAFT, JobStatus.SCRIPTING)
    assert not can_transition(JobStatus.DRAFT, JobStatus.VOICING)
    assert not can_transition(JobStatus.DRAFT, JobStatus.IMAGING)


def test_completed_sets_result_url_and_failed_sets_error_message(fake_db) -> None:
    store = JobStore(fake_db)
    done = _new_job(store)
    store.transition(done.id, JobStatus.DRAFT, JobStatus.RENDERING)
    completed = store.mark_completed(done.id, "http://cdn/x.mp4")
    assert completed.result_url == "http://cdn/x.mp4"
    assert completed.error_message is None

    broken = _new_job(store)
    store.transition(broken.id, JobStatus.DRAFT, JobStatus.SCRIPTING)
    failed = store.mark_failed(broken.id, "script model unavailable")
    assert failed.status is JobStatus.FAILED
    assert failed.error_message == "script model unavailable"
    assert failed.result_url is None


def test_mark_failed_does_not_overwrite_a_terminal_job(fake_db) -> None:
    store = JobStore(fake_db)
    job = _new_job(store)
    store.transition(job.id, JobStatus.DRAFT, JobStatus.RENDERING)
    store.mark_completed(job.id, "http://cdn/x.mp4")

    assert store.mark_failed(job.id, "late failure") is None
    assert store.get(job.id).status is JobStatus.COMPLETED


def test_reset_for_regenerate_clears_output_but_keeps_id(fake_db) -> None:
    store = JobStore(fake_db)
    job = _new_job(store)
    store.transition(job.id, JobStatus.DRAFT, JobStatus.RENDERING)
    store.mark_completed(job.id, "http://cdn/x.mp4")

    reset = store.reset_for_regenerate(job.id, {"request": {"niche": "space facts"}, "regeneratedAt": "now"})
    assert reset.id == job.id
    assert reset.status is JobStatus.DRAFT
    assert reset.result_url is None
    assert reset.scenes == []
    assert reset.metadata["regeneratedAt"] == "now"


def test_store_failure_surfaces_as_persistence_error(fake_db) -> None:
    store = JobStore(fake_db)
    fake_db.fail_next = True
    with pytest.raises(PersistenceError):
        _new_job(store)
