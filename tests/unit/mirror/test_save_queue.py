"""Unit tests for mirror.save_queue module."""

import threading

import pytest

from cms_mirror.mirror.errors import PartialBatchFailure
from cms_mirror.mirror.models import ObjectKind, ObjectRef
from cms_mirror.mirror.save_queue import DrainState, SaveQueue
from cms_mirror.remote_client.errors import APIAccessError
from tests.fixtures.sample_objects import make_component, make_style

WAIT = 5


@pytest.fixture
def queue(store, layout, remote):
    return SaveQueue("main", store, layout, remote)


def style_ref(container, handle):
    container.layout.write_object(make_style(handle, content=f".{handle} {{}}"))
    return container.ref(ObjectKind.STYLE, handle)


def local_style_ref(layout, handle):
    return ObjectRef(
        kind=ObjectKind.STYLE,
        handle=handle,
        id=None,
        revision=None,
        checksum=None,
        local_path=layout.object_path(ObjectKind.STYLE, handle),
    )


class TestSave:
    """Test cases for SaveQueue.save()."""

    def test_first_save_creates_remote_object(self, container, remote):
        """A local-only object is created and gets the server's id and revision."""
        container.layout.write_object(make_component("foo"))
        ref = container.ref(ObjectKind.COMPONENT, "foo")
        assert ref.id is None

        saved = container.queue.save(ref)

        assert saved.id == "123"
        assert saved.revision == "1"
        assert container.store.get_id(ObjectKind.COMPONENT, "foo") == "123"
        assert container.store.get_revision("123") == "1"
        assert remote.calls_of("create") == [(ObjectKind.COMPONENT, "create", "foo")]

    def test_second_save_updates(self, container, remote):
        """A synced object is updated and its revision advances."""
        ref = style_ref(container, "base")
        container.queue.save(ref)

        saved = container.queue.save(container.ref(ObjectKind.STYLE, "base"))

        assert saved.revision == "2"
        assert remote.calls_of("update") == [(ObjectKind.STYLE, "update", "123")]
        assert container.store.get_checksum("123") == saved.checksum

    def test_uploads_local_edits(self, container, remote):
        ref = style_ref(container, "base")
        container.queue.save(ref)
        ref.local_path.write_text("p { color: blue; }")

        container.queue.save(container.ref(ObjectKind.STYLE, "base"))

        assert remote.stored(ObjectKind.STYLE, "123").content == "p { color: blue; }"


class TestEnqueue:
    """Test cases for the drain state machine."""

    def test_starts_idle(self, queue):
        assert queue.state is DrainState.IDLE
        assert not queue.is_busy()
        assert queue.wait_idle(timeout=0)

    def test_single_enqueue_drains_to_idle(self, container):
        ref = style_ref(container, "base")

        container.enqueue_save(ref)

        assert container.queue.wait_idle(WAIT)
        reports = container.queue.reports
        assert len(reports) == 1
        assert [saved.handle for saved in reports[0].saved] == ["base"]

    def test_enqueue_during_drain_runs_second_pass(self, container, remote):
        """Items enqueued while a pass runs are processed in a later pass, in order."""
        first = style_ref(container, "a")
        later = [style_ref(container, handle) for handle in ("b", "c", "d")]
        started = threading.Event()
        release = threading.Event()

        def gate(obj):
            started.set()
            assert release.wait(WAIT)

        remote.before_write = gate
        container.enqueue_save(first)
        assert started.wait(WAIT)

        for ref in later:
            container.enqueue_save(ref)
        assert container.queue.is_draining
        assert container.queue.pending_count == 3

        release.set()
        assert container.queue.wait_idle(WAIT)

        reports = container.queue.reports
        assert [report.pass_number for report in reports] == [1, 2]
        assert [saved.handle for saved in reports[0].saved] == ["a"]
        assert [saved.handle for saved in reports[1].saved] == ["b", "c", "d"]
        assert [call[2] for call in remote.calls_of("create")] == ["a", "b", "c", "d"]

    def test_every_item_processed_exactly_once(self, container, remote):
        refs = [style_ref(container, f"s{index}") for index in range(10)]

        for ref in refs:
            container.enqueue_save(ref)
        assert container.queue.wait_idle(WAIT)

        created = [call[2] for call in remote.calls_of("create")]
        assert sorted(created) == sorted(f"s{index}" for index in range(10))
        assert sum(report.attempted_count for report in container.queue.reports) == 10

    def test_same_new_object_enqueued_twice_is_created_once(self, container, remote):
        """A second queued save of a new object updates the one the first created."""
        ref = style_ref(container, "foo")
        assert ref.id is None

        container.enqueue_save(ref)
        container.enqueue_save(ref)
        assert container.queue.wait_idle(WAIT)

        assert remote.calls_of("create") == [(ObjectKind.STYLE, "create", "foo")]
        assert remote.calls_of("update") == [(ObjectKind.STYLE, "update", "123")]
        assert all(not report.failures for report in container.queue.reports)
        assert container.store.get_revision("123") == "2"

    def test_stale_ref_saved_directly_updates(self, container, remote):
        ref = style_ref(container, "foo")
        container.queue.save(ref)

        saved = container.queue.save(ref)

        assert saved.id == "123"
        assert len(remote.calls_of("create")) == 1


class TestFailures:
    """Test cases for per-item failure isolation."""

    def test_failed_item_does_not_abort_siblings(self, container, remote):
        """One failing save is reported while the others succeed."""
        remote.fail_on("create", "b", APIAccessError("rejected", 422))
        refs = [style_ref(container, handle) for handle in ("a", "b", "c")]

        for ref in refs:
            container.enqueue_save(ref)
        assert container.queue.wait_idle(WAIT)

        reports = container.queue.reports
        saved = sorted(ref.handle for report in reports for ref in report.saved)
        failures = [failure for report in reports for failure in report.failures]
        assert saved == ["a", "c"]
        assert len(failures) == 1
        assert isinstance(failures[0], PartialBatchFailure)
        assert failures[0].handle == "b"
        assert isinstance(failures[0].cause, APIAccessError)
        assert container.store.get_id(ObjectKind.STYLE, "b") is None

    def test_callbacks_receive_results(self, store, layout, remote):
        saved, failed = [], []
        queue = SaveQueue("main", store, layout, remote, on_saved=saved.append, on_failed=failed.append)
        layout.write_object(make_style("ok"))
        layout.write_object(make_style("bad"))
        remote.fail_on("create", "bad", APIAccessError("rejected", 422))

        queue.enqueue(local_style_ref(layout, "ok"))
        queue.enqueue(local_style_ref(layout, "bad"))
        assert queue.wait_idle(WAIT)

        assert [ref.handle for ref in saved] == ["ok"]
        assert [failure.handle for failure in failed] == ["bad"]

    def test_raising_callback_does_not_stop_queue(self, store, layout, remote):
        def explode(ref):
            raise RuntimeError("listener bug")

        queue = SaveQueue("main", store, layout, remote, on_saved=explode)
        layout.write_object(make_style("base"))

        queue.enqueue(local_style_ref(layout, "base"))

        assert queue.wait_idle(WAIT)
        assert queue.reports[0].saved[0].id == "123"


class TestReports:
    """Test cases for pass report retention."""

    def test_take_reports_empties_history(self, container):
        container.enqueue_save(style_ref(container, "base"))
        assert container.queue.wait_idle(WAIT)

        taken = container.queue.take_reports()

        assert [saved.handle for saved in taken[0].saved] == ["base"]
        assert container.queue.reports == []

    def test_history_is_bounded(self, store, layout, remote, monkeypatch):
        """Only the most recent pass reports are kept."""
        monkeypatch.setattr("cms_mirror.mirror.save_queue.REPORT_HISTORY", 2)
        queue = SaveQueue("main", store, layout, remote)

        for handle in ("a", "b", "c"):
            layout.write_object(make_style(handle))
            queue.enqueue(local_style_ref(layout, handle))
            assert queue.wait_idle(WAIT)

        assert [report.saved[0].handle for report in queue.reports] == ["b", "c"]
