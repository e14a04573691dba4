from services.quiz_service.mapper import map_v2_document
from services.quiz_service.schedule import ScheduleStore
from services.quiz_service.selection import SelectionService, date_hash, order_candidates
from services.quiz_service.store import SCHEDULE

DAY = "2025-03-10"


def test_date_hash_base31_polynomial():
    assert date_hash("") == 0
    assert date_hash("a") == 97
    assert date_hash("ab") == 97 * 31 + 98


def test_date_hash_wraps_to_unsigned_32_bit():
    h = date_hash("2025-03-10" * 20)
    assert 0 <= h < 2 ** 32


def test_candidates_sorted_by_numeric_suffix_then_id(v2_doc):
    ids = ["q10", "alpha", "q2", "beta", "q1"]
    qs = [map_v2_document(i, v2_doc(prompt=f"Prompt {i}")) for i in ids]
    assert [q.id for q in order_candidates(qs)] == ["q1", "q2", "q10", "alpha", "beta"]


def test_fallback_is_deterministic_and_pinned(services, add_v2, store):
    for i in range(1, 4):
        add_v2(f"q{i}", prompt=f"Question number {i}")
    expected = f"q{date_hash(DAY) % 3 + 1}"

    first = services.selection.resolve(DAY)
    second = services.selection.resolve(DAY)
    assert first.id == second.id == expected

    entry = store.get(SCHEDULE, DAY)
    assert entry["questionId"] == expected
    assert entry["source"] == "fallback"


def test_pinned_fallback_survives_bank_changes(services, add_v2):
    for i in range(1, 4):
        add_v2(f"q{i}", prompt=f"Question number {i}")
    chosen = services.selection.resolve(DAY).id
    for i in range(4, 12):
        add_v2(f"q{i}", prompt=f"Question number {i}")
    assert services.selection.resolve(DAY).id == chosen


def test_resolve_without_persist_does_not_pin(services, add_v2, store):
    for i in range(1, 4):
        add_v2(f"q{i}", prompt=f"Question number {i}")
    previewed = services.selection.resolve(DAY, persist=False)
    assert store.get(SCHEDULE, DAY) is None
    assert services.selection.resolve(DAY).id == previewed.id
    assert store.get(SCHEDULE, DAY)["questionId"] == previewed.id


def test_scheduled_question_wins(services, add_v2):
    add_v2("q1", prompt="One")
    add_v2("q2", prompt="Two")
    services.schedule.assign(DAY, "q2", DAY)
    assert services.selection.resolve(DAY).id == "q2"


def test_no_questions_means_no_quiz(services, store):
    assert services.selection.resolve(DAY) is None
    assert store.get(SCHEDULE, DAY) is None


def test_unresolvable_schedule_entry_falls_back_without_overwriting(services, add_v2, store):
    add_v2("q1", prompt="One")
    store.put(SCHEDULE, DAY, {"dateKey": DAY, "questionId": "deleted_q", "puzzleId": "deleted_q"})
    assert services.selection.resolve(DAY).id == "q1"
    assert store.get(SCHEDULE, DAY)["questionId"] == "deleted_q"


class _BlindSchedule(ScheduleStore):
    """Reports no entry on get(), as if another request pinned in between."""

    def get(self, date_key):
        return None


def test_concurrent_pin_loser_uses_winner(store, clock, services, add_v2):
    for i in range(1, 4):
        add_v2(f"q{i}", prompt=f"Question number {i}")
    ours = f"q{date_hash(DAY) % 3 + 1}"
    winner = next(f"q{i}" for i in range(1, 4) if f"q{i}" != ours)
    store.put(SCHEDULE, DAY, {"dateKey": DAY, "questionId": winner, "puzzleId": winner})

    blind = _BlindSchedule(store, services.questions, clock)
    selection = SelectionService(services.questions, blind)
    assert selection.resolve(DAY).id == winner
    assert store.get(SCHEDULE, DAY)["questionId"] == winner


def test_legacy_and_v2_share_candidate_pool(services, add_v2, add_legacy):
    add_legacy("p", [{"prompt": "Legacy one", "answer": "a", "other": ["b"]}])
    add_v2("quiz_campus_aaaaaa", prompt="Modern one")
    ids = {q.id for q in services.questions.list_all()}
    assert ids == {"p_q0", "quiz_campus_aaaaaa"}


def test_migrated_legacy_copy_is_dropped(services, add_v2, add_legacy):
    add_legacy("p", [{"prompt": "Same question", "answer": "a", "other": ["b"]}], topic="campus")
    add_v2("quiz_campus_bbbbbb", prompt="Same question", choices=("a", "b"), correct_index=0,
           tags=("campus",))
    assert [q.id for q in services.questions.list_all()] == ["quiz_campus_bbbbbb"]
