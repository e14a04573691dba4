import re

import pytest

from conftest import QuizTestConfig, make_legacy
from services.quiz_service import admin_questions
from services.quiz_service.container import build_services
from services.quiz_service.errors import ConflictError, NotFoundError, ValidationError
from services.quiz_service.store import LEGACY_PUZZLES, V2_QUESTIONS, MemoryDocumentStore


def payload(**overrides):
    body = {
        "type": "mcq",
        "prompt": "Which hall hosts the career fair?",
        "choices": ["North Hall", "South Hall", "East Hall"],
        "correctIndex": 1,
        "basePoints": 150,
        "tags": ["Campus Life"],
    }
    body.update(overrides)
    return body


@pytest.fixture
def admin(services):
    return services.admin


@pytest.fixture
def two_legacy(add_legacy):
    add_legacy("p", [
        {"prompt": "Oldest building?", "answer": "Main Hall", "other": ["Gym", "Library"]},
        {"prompt": "School colors?", "answer": "Blue", "other": ["Red"], "SV": 120},
    ])
    return "p"


# -------------------- create --------------------

def test_create_assigns_topic_slug_id(admin, store):
    created = admin.create(payload())
    assert re.match(r"^quiz_campus-life_[0-9a-f]{6}$", created["id"])
    assert created["source"] == "v2"
    doc = store.get(V2_QUESTIONS, created["id"])
    assert doc["schemaVersion"] == 2
    assert doc["topic"] == "campus life"
    assert doc["createdAt"] == doc["updatedAt"] == "2025-03-10T15:00:00.000Z"


@pytest.mark.parametrize("bad", [
    {"type": "true-false"},
    {"prompt": "   "},
    {"choices": ["only one"]},
    {"choices": ["A", " A "]},
    {"correctIndex": 3},
    {"basePoints": -1},
    {"difficulty": 5},
])
def test_create_rejects_invalid_payload(admin, store, bad):
    with pytest.raises(ValidationError) as exc:
        admin.create(payload(**bad))
    assert exc.value.code == "invalid_question"
    assert store.query(V2_QUESTIONS) == []


def test_create_retries_on_id_clash(admin, add_v2, monkeypatch):
    add_v2("quiz_campus-life_aaaaaa", prompt="Taken")
    ids = iter(["quiz_campus-life_aaaaaa", "quiz_campus-life_bbbbbb"])
    monkeypatch.setattr(admin_questions, "make_question_id", lambda topic: next(ids))
    assert admin.create(payload())["id"] == "quiz_campus-life_bbbbbb"


def test_create_gives_up_after_retries(admin, add_v2, monkeypatch):
    add_v2("quiz_campus-life_aaaaaa", prompt="Taken")
    monkeypatch.setattr(admin_questions, "make_question_id", lambda topic: "quiz_campus-life_aaaaaa")
    with pytest.raises(ConflictError) as exc:
        admin.create(payload())
    assert exc.value.code == "id_exhausted"


# -------------------- read --------------------

def test_list_includes_answers(admin, add_v2, two_legacy):
    add_v2("quiz_campus_aaaaaa", prompt="Modern")
    listed = {q["id"]: q for q in admin.list()}
    assert set(listed) == {"p_q0", "p_q1", "quiz_campus_aaaaaa"}
    assert listed["p_q0"]["correctIndex"] == 0
    assert listed["p_q0"]["puzzleId"] == "p"


def test_get_unknown_is_not_found(admin):
    with pytest.raises(NotFoundError):
        admin.get("nope")


# -------------------- update --------------------

def test_update_v2_keeps_created_at_and_legacy_id(admin, add_v2, store, clock):
    add_v2("quiz_campus_aaaaaa", prompt="Before", legacyId="OLD-7")
    clock.advance(days=1)
    updated = admin.update("quiz_campus_aaaaaa", payload(prompt="After"))
    assert updated["id"] == "quiz_campus_aaaaaa"
    assert updated["prompt"] == "After"
    doc = store.get(V2_QUESTIONS, "quiz_campus_aaaaaa")
    assert doc["createdAt"] == "2025-01-01T00:00:00.000Z"
    assert doc["updatedAt"] == "2025-03-11T15:00:00.000Z"
    assert doc["legacyId"] == "OLD-7"


def test_update_legacy_rewrites_only_target(admin, store, two_legacy):
    before = store.get(LEGACY_PUZZLES, "p")
    updated = admin.update("p_q1", payload(prompt="Mascot?", choices=["Owl", "Bear"], correctIndex=1))
    assert updated["id"] == "p_q1"
    assert updated["source"] == "legacy"
    assert updated["choices"] == ["Bear", "Owl"]
    assert updated["correctIndex"] == 0

    after = store.get(LEGACY_PUZZLES, "p")
    assert after["Questions"][0] == before["Questions"][0]
    assert after["Questions"][1]["answer"] == "Bear"
    assert after["Name"] == "Oldest building?"


def test_update_first_legacy_element_refreshes_summary(admin, store, two_legacy):
    admin.update("p_q0", payload(prompt="Founding year?", choices=["1890", "1901"],
                                 correctIndex=0, basePoints=200, tags=["history"]))
    container = store.get(LEGACY_PUZZLES, "p")
    assert container["Name"] == "Founding year?"
    assert container["Reward"] == 200
    assert container["Topic"] == "history"


def test_update_unknown_is_not_found(admin, two_legacy):
    with pytest.raises(NotFoundError):
        admin.update("p_q7", payload())
    with pytest.raises(NotFoundError):
        admin.update("missing", payload())


def test_update_invalid_payload_leaves_document(admin, add_v2, store):
    add_v2("quiz_campus_aaaaaa", prompt="Before")
    with pytest.raises(ValidationError):
        admin.update("quiz_campus_aaaaaa", payload(choices=[]))
    assert store.get(V2_QUESTIONS, "quiz_campus_aaaaaa")["prompt"] == "Before"


# -------------------- delete --------------------

def test_delete_v2(admin, add_v2, store):
    add_v2("quiz_campus_aaaaaa")
    assert admin.delete("quiz_campus_aaaaaa") == {"ok": True, "deleted": "quiz_campus_aaaaaa"}
    assert store.get(V2_QUESTIONS, "quiz_campus_aaaaaa") is None


def test_delete_legacy_keeps_sibling_ids(admin, services, store, two_legacy):
    out = admin.delete("p_q0")
    assert out["containerDeleted"] is False
    assert store.get(LEGACY_PUZZLES, "p")["Questions"][0] is None

    sibling = services.questions.get("p_q1")
    assert sibling is not None
    assert sibling.prompt == "School colors?"
    assert services.questions.get("p_q0") is None
    assert store.get(LEGACY_PUZZLES, "p")["Name"] == "School colors?"
    assert store.get(LEGACY_PUZZLES, "p")["Reward"] == 120

    with pytest.raises(NotFoundError):
        admin.delete("p_q0")


def test_delete_last_legacy_element_removes_container(admin, store, two_legacy):
    admin.delete("p_q0")
    out = admin.delete("p_q1")
    assert out == {"ok": True, "deleted": "p_q1", "containerDeleted": True}
    assert store.get(LEGACY_PUZZLES, "p") is None


# -------------------- test submit --------------------

def test_test_submit_scores_as_first_attempt(admin, add_v2):
    add_v2("quiz_campus_aaaaaa", correct_index=2, explanation="It moved in 2019.")
    right = admin.test_submit("quiz_campus_aaaaaa", 2, 0)
    assert right["correct"] is True
    assert right["pointsEarned"] == 175
    assert right["correctIndex"] == 2
    assert right["explanation"] == "It moved in 2019."

    wrong = admin.test_submit("quiz_campus_aaaaaa", {"selectedIndex": 0})
    assert wrong["correct"] is False
    assert "pointsEarned" not in wrong
    assert wrong["feedback"] == {"selectedIndex": 0}


def test_test_submit_validates_input(admin, add_v2):
    add_v2("quiz_campus_aaaaaa")
    with pytest.raises(ValidationError):
        admin.test_submit("", 0)
    with pytest.raises(ValidationError):
        admin.test_submit("quiz_campus_aaaaaa", 0, "fast")
    with pytest.raises(NotFoundError):
        admin.test_submit("missing", 0)


# -------------------- legacy writes are transactional --------------------

class TxnStore(MemoryDocumentStore):
    """Records writes made outside a transaction; can inject a write just before one."""

    def __init__(self):
        super().__init__()
        self.before_txn = None
        self.outside_writes = []
        self._in_txn = False

    def put(self, collection, doc_id, data):
        if not self._in_txn:
            self.outside_writes.append(("put", collection, doc_id))
        super().put(collection, doc_id, data)

    def delete(self, collection, doc_id):
        if not self._in_txn:
            self.outside_writes.append(("delete", collection, doc_id))
        super().delete(collection, doc_id)

    def transaction(self, fn):
        hook, self.before_txn = self.before_txn, None
        if hook:
            hook()
        self._in_txn = True
        try:
            return super().transaction(fn)
        finally:
            self._in_txn = False


@pytest.fixture
def txn_store():
    store = TxnStore()
    store.put(LEGACY_PUZZLES, "p", make_legacy([
        {"prompt": "Oldest building?", "answer": "Main Hall", "other": ["Gym", "Library"]},
        {"prompt": "School colors?", "answer": "Blue", "other": ["Red"], "SV": 120},
    ]))
    store.outside_writes.clear()
    return store


def test_legacy_delete_keeps_concurrent_sibling_edit(txn_store, clock):
    admin = build_services(QuizTestConfig, store=txn_store, clock=clock).admin

    def sibling_edit():
        container = MemoryDocumentStore.get(txn_store, LEGACY_PUZZLES, "p")
        container["Questions"][1]["prompt"] = "Official school colors?"
        MemoryDocumentStore.put(txn_store, LEGACY_PUZZLES, "p", container)

    txn_store.before_txn = sibling_edit
    assert admin.delete("p_q0")["containerDeleted"] is False

    container = txn_store.get(LEGACY_PUZZLES, "p")
    assert container["Questions"][0] is None
    assert container["Questions"][1]["prompt"] == "Official school colors?"
    assert txn_store.outside_writes == []


def test_legacy_container_removal_runs_in_transaction(txn_store, clock):
    admin = build_services(QuizTestConfig, store=txn_store, clock=clock).admin
    admin.delete("p_q0")
    assert admin.delete("p_q1")["containerDeleted"] is True
    assert txn_store.get(LEGACY_PUZZLES, "p") is None
    assert txn_store.outside_writes == []


def test_legacy_delete_sees_element_removed_by_another_request(txn_store, clock):
    admin = build_services(QuizTestConfig, store=txn_store, clock=clock).admin

    def concurrent_delete():
        container = MemoryDocumentStore.get(txn_store, LEGACY_PUZZLES, "p")
        container["Questions"][0] = None
        MemoryDocumentStore.put(txn_store, LEGACY_PUZZLES, "p", container)

    txn_store.before_txn = concurrent_delete
    with pytest.raises(NotFoundError):
        admin.delete("p_q0")
    assert txn_store.get(LEGACY_PUZZLES, "p")["Questions"][1]["prompt"] == "School colors?"


def test_memory_transaction_delete():
    store = MemoryDocumentStore()
    store.put("C", "a", {"v": 1})

    def _apply(txn):
        txn.delete("C", "a")
        assert txn.get("C", "a") is None
        txn.set("C", "b", {"v": 2})

    store.transaction(_apply)
    assert store.get("C", "a") is None
    assert store.get("C", "b") == {"v": 2}
