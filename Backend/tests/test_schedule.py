import json

import pytest

import migrate_schedule
from services.quiz_service.errors import ConflictError, ValidationError
from services.quiz_service.store import SCHEDULE

TODAY = "2025-03-10"


@pytest.fixture
def schedule(services, add_v2, add_legacy):
    add_v2("quiz_campus_aaaaaa", prompt="One")
    add_v2("quiz_campus_bbbbbb", prompt="Two")
    add_legacy("puzzle9", [{"prompt": "Old", "answer": "a", "other": ["b"]}])
    return services.schedule


def test_assign_creates_entry(schedule):
    entry = schedule.assign("2025-03-12", "quiz_campus_aaaaaa", TODAY)
    assert entry["dateKey"] == "2025-03-12"
    assert entry["questionId"] == "quiz_campus_aaaaaa"
    assert entry["puzzleId"] == "quiz_campus_aaaaaa"
    assert entry["createdAt"] == entry["updatedAt"]
    assert schedule.get_question_id("2025-03-12") == "quiz_campus_aaaaaa"


def test_assign_legacy_question_records_container(schedule):
    entry = schedule.assign(TODAY, "puzzle9_q0", TODAY)
    assert entry["puzzleId"] == "puzzle9"


def test_assign_twice_conflicts(schedule):
    schedule.assign("2025-03-12", "quiz_campus_aaaaaa", TODAY)
    with pytest.raises(ConflictError) as exc:
        schedule.assign("2025-03-12", "quiz_campus_bbbbbb", TODAY)
    assert exc.value.code == "already_scheduled"
    assert exc.value.context["existing"]["questionId"] == "quiz_campus_aaaaaa"
    assert schedule.get_question_id("2025-03-12") == "quiz_campus_aaaaaa"


@pytest.mark.parametrize("date", ["2024-02-30", "2025-3-12", "2025-13-01", "tomorrow", None])
def test_assign_rejects_bad_dates(schedule, date):
    with pytest.raises(ValidationError) as exc:
        schedule.assign(date, "quiz_campus_aaaaaa", TODAY)
    assert exc.value.code == "invalid_date"


def test_assign_rejects_past_dates(schedule):
    with pytest.raises(ValidationError) as exc:
        schedule.assign("2025-03-09", "quiz_campus_aaaaaa", TODAY)
    assert exc.value.code == "date_in_past"


@pytest.mark.parametrize("question_id", ["nope", "", None, "puzzle9_q5"])
def test_assign_rejects_unresolvable_question(schedule, question_id):
    with pytest.raises(ValidationError) as exc:
        schedule.assign("2025-03-12", question_id, TODAY)
    assert exc.value.code == "invalid_question"


def test_overwrite_keeps_created_at(schedule, clock, store):
    original = schedule.assign("2025-03-12", "quiz_campus_aaaaaa", TODAY)
    clock.advance(hours=2)
    updated = schedule.overwrite("2025-03-12", "quiz_campus_bbbbbb", TODAY)
    assert updated["questionId"] == "quiz_campus_bbbbbb"
    assert updated["createdAt"] == original["createdAt"]
    assert updated["updatedAt"] != original["updatedAt"]
    assert store.get(SCHEDULE, "2025-03-12") == updated


def test_overwrite_of_empty_date_creates(schedule):
    entry = schedule.overwrite("2025-03-15", "quiz_campus_bbbbbb", TODAY)
    assert entry["createdAt"] == entry["updatedAt"]


def test_list_is_sorted_and_bounded(schedule):
    for day, qid in [("2025-03-20", "quiz_campus_aaaaaa"), ("2025-03-11", "quiz_campus_bbbbbb"),
                     ("2025-03-15", "quiz_campus_aaaaaa")]:
        schedule.assign(day, qid, TODAY)
    assert [e["dateKey"] for e in schedule.list()] == ["2025-03-11", "2025-03-15", "2025-03-20"]
    assert [e["dateKey"] for e in schedule.list("2025-03-12", "2025-03-20")] == ["2025-03-15", "2025-03-20"]
    with pytest.raises(ValidationError):
        schedule.list(start="March")


def test_get_ignores_invalid_keys(schedule):
    assert schedule.get("2024-02-30") is None


def test_migrate_counts_and_skips(schedule, store):
    store.put(SCHEDULE, "2025-01-02", {"dateKey": "2025-01-02", "questionId": "quiz_campus_aaaaaa",
                                       "createdAt": "2024-12-01T00:00:00.000Z"})
    entries = [
        {"dateKey": "2025-01-01", "questionId": "quiz_campus_bbbbbb", "assignedAt": "2024-12-20T10:00:00Z"},
        {"dateKey": "2025-01-02", "questionId": "quiz_campus_bbbbbb"},
        {"dateKey": "2025-02-30", "questionId": "quiz_campus_bbbbbb"},
        {"dateKey": "2025-01-03", "questionId": "missing"},
        "garbage",
    ]
    result = schedule.migrate(entries)
    assert result.to_dict() == {
        "written": 1,
        "skippedExisting": 1,
        "skippedInvalid": 2,
        "skippedUnknownQuestion": 1,
    }
    migrated = store.get(SCHEDULE, "2025-01-01")
    assert migrated["createdAt"] == "2024-12-20T10:00:00.000Z"
    assert migrated["source"] == "migration"


def test_migrate_force_keeps_existing_created_at(schedule, store):
    store.put(SCHEDULE, "2025-01-02", {"dateKey": "2025-01-02", "questionId": "quiz_campus_aaaaaa",
                                       "createdAt": "2024-12-01T00:00:00.000Z"})
    schedule.migrate([{"dateKey": "2025-01-02", "questionId": "quiz_campus_bbbbbb"}], force=True)
    entry = store.get(SCHEDULE, "2025-01-02")
    assert entry["questionId"] == "quiz_campus_bbbbbb"
    assert entry["createdAt"] == "2024-12-01T00:00:00.000Z"


def test_migrate_dry_run_writes_nothing(schedule, store):
    result = schedule.migrate([{"dateKey": "2025-01-01", "questionId": "quiz_campus_bbbbbb"}], dry_run=True)
    assert result.written == 1
    assert store.get(SCHEDULE, "2025-01-01") is None


def test_migrate_cli_reads_wrapped_schedule(schedule, store, tmp_path, capsys):
    path = tmp_path / "schedule.json"
    path.write_text(json.dumps({"schedule": [
        {"dateKey": "2025-01-05", "questionId": "puzzle9_q0"},
    ]}), encoding="utf-8")
    assert migrate_schedule.main([str(path)], store=store) == 0
    assert json.loads(capsys.readouterr().out)["written"] == 1
    assert store.get(SCHEDULE, "2025-01-05")["puzzleId"] == "puzzle9"
