"""Per-question progress: store routing, counters, flags, notes and time on screen."""
import pytest

from conftest import FakeClock
from assessment.errors import LoadFailure
from assessment.progress import (
    PROGRESS_TABLE, LocalProgressStore, ProgressTracker, QuestionWatch, SupabaseProgressStore, device_id,
)


@pytest.fixture
def tracker(client, tmp_path):
    return ProgressTracker(
        local=LocalProgressStore(tmp_path / "progress.json"),
        device="device-abc",
        remote=SupabaseProgressStore(client),
    )


def test_flag_toggle_is_its_own_inverse(tracker):
    before = tracker.get_or_create("user-1", "q1")
    tracker.toggle_flag("user-1", "q1")
    after = tracker.toggle_flag("user-1", "q1")
    assert after.is_flagged == before.is_flagged
    assert after.attempts == before.attempts == 0


def test_record_answer_counts_each_call_once(tracker):
    tracker.record_answer("user-1", "q1", "B", False, exam="MRCEM Primary")
    progress = tracker.record_answer("user-1", "q1", "C", True)
    assert progress.attempts == 2
    assert progress.last_selected == "C"
    assert progress.is_correct
    assert progress.exam == "MRCEM Primary"


def test_signed_in_progress_goes_remote(tracker, client, tmp_path):
    tracker.set_notes("user-1", "q1", "check the ECG again")
    rows = client.tables[PROGRESS_TABLE]
    assert len(rows) == 1
    assert rows[0]["user_id"] == "user-1"
    assert rows[0]["notes"] == "check the ECG again"
    assert not (tmp_path / "progress.json").exists()


def test_anonymous_progress_stays_on_device(tracker, client, tmp_path):
    tracker.record_answer(None, "q1", "A", True)
    assert not client.tables.get(PROGRESS_TABLE)
    reloaded = LocalProgressStore(tmp_path / "progress.json").get("device-abc", "q1")
    assert reloaded.attempts == 1
    assert reloaded.owner_id == "device-abc"


def test_no_merge_after_sign_in(tracker):
    tracker.toggle_flag(None, "q1")
    assert not tracker.get_or_create("user-1", "q1").is_flagged
    assert tracker.get_or_create(None, "q1").is_flagged


def test_accrue_time_ignores_non_positive(tracker):
    tracker.accrue_time("user-1", "q1", 3.7)
    tracker.accrue_time("user-1", "q1", 0)
    progress = tracker.accrue_time("user-1", "q1", -5)
    assert progress.time_spent_seconds == 3


def test_update_only_editable_fields(tracker):
    progress = tracker.update("user-1", "q1", is_flagged=True, notes="tricky")
    assert progress.is_flagged
    assert progress.notes == "tricky"
    with pytest.raises(ValueError):
        tracker.update("user-1", "q1", attempts=10)


def test_remote_read_failure_is_load_failure(tracker, client):
    client.failing.add(PROGRESS_TABLE)
    with pytest.raises(LoadFailure):
        tracker.get_or_create("user-1", "q1")


def test_remote_write_failure_is_dropped(client):
    store = SupabaseProgressStore(client)
    tracker = ProgressTracker(local=store, device="d", remote=store)
    tracker.get_or_create("user-1", "q1")
    original = client.table

    class WriteFails:
        def __init__(self, query):
            self.query = query

        def __getattr__(self, name):
            return getattr(self.query, name)

        def upsert(self, *args, **kwargs):
            raise ConnectionError("write refused")

    client.table = lambda name: WriteFails(original(name))
    progress = tracker.toggle_flag("user-1", "q1")
    assert progress.is_flagged
    client.table = original
    assert not tracker.get_or_create("user-1", "q1").is_flagged


def test_question_watch_counts_visible_seconds(tracker):
    clock = FakeClock()
    watch = QuestionWatch(tracker, "user-1", "q1", clock=clock)
    watch.start()
    clock.advance(3)
    watch.tick()
    assert tracker.get_or_create("user-1", "q1").time_spent_seconds == 0
    clock.advance(3)
    watch.tick()
    assert tracker.get_or_create("user-1", "q1").time_spent_seconds == 6

    watch.set_visible(False)
    clock.advance(100)
    watch.set_visible(True)
    clock.advance(2.5)
    watch.close()
    assert tracker.get_or_create("user-1", "q1").time_spent_seconds == 8


def test_device_id_is_stable(tmp_path):
    first = device_id(tmp_path)
    assert first.startswith("device-")
    assert device_id(tmp_path) == first


def test_service_progress_api(service, client):
    progress = service.get_or_create_progress("user-1", "card-0", exam="MRCEM Intermediate SBA")
    assert progress.exam == "MRCEM Intermediate SBA"
    updated = service.update_progress("user-1", "card-0", is_flagged=True)
    assert updated.is_flagged
    assert client.tables[PROGRESS_TABLE][0]["is_flagged"] is True


def test_review_answers_update_progress(service, client):
    session = service.start_review(["card-2"], user_id="user-1")
    session.select(session.correct_key("card-2"))
    session.submit()
    row = client.tables[PROGRESS_TABLE][0]
    assert row["question_id"] == "card-2"
    assert row["attempts"] == 1
    assert row["is_correct"] is True
    assert row["exam"] == "MRCEM Intermediate SBA"
