import pytest

from fabquote.backoffice.models.conversion import ConversionStatus, EntityKind
from fabquote.backoffice.services.conversion_state import (
    ALLOWED_TRANSITIONS,
    ConversionStateStore,
    sources_for,
)
from fabquote.backoffice.tests.fakes import add_part
from fabquote.exceptions.handlers import InvalidTransitionError, NotFoundError

S = ConversionStatus


@pytest.fixture()
def store(session_factory):
    return ConversionStateStore(EntityKind.PART, session_factory)


def test_terminal_statuses_have_no_exits():
    assert ALLOWED_TRANSITIONS[S.COMPLETED] == frozenset()
    assert ALLOWED_TRANSITIONS[S.SKIPPED] == frozenset()
    assert sources_for(S.FAILED) == {S.QUEUED, S.IN_PROGRESS}
    assert sources_for(S.PENDING) == {S.FAILED}


def test_happy_path_sets_mesh_only_on_completion(session_factory, store):
    add_part(session_factory, "p1")

    queued = store.mark_queued("p1")
    assert queued.status is S.QUEUED
    assert queued.started_at is not None
    assert queued.mesh_file_ref is None

    running = store.mark_in_progress("p1", "job-9")
    assert running.job_id == "job-9"
    assert running.mesh_file_ref is None

    done = store.mark_completed("p1", "parts/p1/mesh/bracket.glb")
    assert done.status is S.COMPLETED
    assert done.mesh_file_ref == "parts/p1/mesh/bracket.glb"
    assert done.error is None
    assert done.completed_at is not None


def test_failed_records_error_and_clears_mesh(session_factory, store):
    add_part(session_factory, "p1", part_mesh_url="parts/p1/mesh/stale.glb")
    store.mark_queued("p1")

    failed = store.mark_failed("p1", "   ")
    assert failed.status is S.FAILED
    assert failed.error == "Conversion failed"
    assert failed.mesh_file_ref is None


def test_completed_requires_mesh_ref(session_factory, store):
    add_part(session_factory, "p1")
    store.mark_queued("p1")
    store.mark_in_progress("p1", "job-1")

    with pytest.raises(ValueError):
        store.mark_completed("p1", "")


@pytest.mark.parametrize("status", [S.QUEUED, S.IN_PROGRESS, S.COMPLETED, S.SKIPPED, S.FAILED])
def test_mark_queued_only_from_pending(session_factory, store, status):
    add_part(session_factory, "p1", status=status)

    with pytest.raises(InvalidTransitionError) as excinfo:
        store.mark_queued("p1")
    assert excinfo.value.details["current"] == status.value
    assert store.require("p1").status is status


def test_unknown_entity(store):
    assert store.get("missing") is None
    with pytest.raises(NotFoundError):
        store.mark_queued("missing")


def test_reset_to_pending_defaults_to_failed_only(session_factory, store):
    add_part(session_factory, "p1", status=S.COMPLETED, part_mesh_url="parts/p1/mesh/a.glb")

    with pytest.raises(InvalidTransitionError):
        store.reset_to_pending("p1")

    reset = store.reset_to_pending(
        "p1",
        from_statuses=list(S),
        source_file_ref="parts/p1/source/v2/new.step",
        clear_thumbnail=True,
    )
    assert reset.status is S.PENDING
    assert reset.source_file_ref == "parts/p1/source/v2/new.step"
    assert reset.mesh_file_ref is None
    assert reset.thumbnail_ref is None


def test_stats_and_list_pending(session_factory, store):
    add_part(session_factory, "a")
    add_part(session_factory, "b", file_name=None)
    add_part(session_factory, "c", status=S.COMPLETED, part_mesh_url="parts/c/mesh/c.glb")
    add_part(session_factory, "d", status=S.FAILED, mesh_conversion_error="boom")

    stats = store.stats()
    assert stats["pending"] == 2
    assert stats["completed"] == 1
    assert stats["failed"] == 1
    assert stats["queued"] == 0
    assert stats["total"] == 4

    assert [s.entity_id for s in store.list_pending()] == ["a"]
