from datetime import datetime, timedelta, timezone

import pytest

import auth_middleware
from app import create_app
from config import Config
from services.quiz_service.container import build_services
from services.quiz_service.store import LEGACY_PUZZLES, PLAYERS, V2_QUESTIONS, MemoryDocumentStore


class QuizTestConfig(Config):
    QUIZ_STORE_BACKEND = "memory"
    QUIZ_TIMEZONE = "UTC"
    QUIZ_MAX_ATTEMPTS = 10
    GUEST_SESSION_TTL_SECONDS = 3600
    PRACTICE_SESSION_TTL_SECONDS = 600
    SESSION_CACHE_MAXSIZE = 1000
    LEADERBOARD_DEFAULT_LIMIT = 50
    LEADERBOARD_MAX_LIMIT = 200
    LOG_LEVEL = "WARNING"
    TESTING = True


class FixedClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


def make_v2(
    prompt="Which building houses the main library?",
    choices=("North Hall", "South Hall", "East Hall"),
    correct_index=0,
    base_points=100,
    tags=("campus",),
    qtype="mcq",
    correct_indices=None,
    **extra,
):
    doc = {
        "schemaVersion": 2,
        "type": qtype,
        "prompt": prompt,
        "choices": list(choices),
        "basePoints": base_points,
        "tags": list(tags),
        "createdAt": "2025-01-01T00:00:00.000Z",
        "updatedAt": "2025-01-01T00:00:00.000Z",
    }
    if qtype == "mcq":
        doc["correctIndex"] = correct_index
    else:
        doc["correctIndices"] = list(correct_indices or [])
    doc.update(extra)
    return doc


def make_legacy(questions, name="Campus Basics", topic="Campus", reward=100):
    return {"Type": "Quiz", "Name": name, "Topic": topic, "Reward": reward,
            "Threshold": 1, "Questions": list(questions)}


FAKE_TOKENS = {
    "alice-token": {"uid": "alice", "name": "Alice", "email": "alice@example.edu"},
    "bob-token": {"uid": "bob", "name": "Bob"},
    "admin-token": {"uid": "root", "name": "Root", "admin": True},
    "staff-token": {"uid": "staff", "name": "Staff"},
}


@pytest.fixture
def clock():
    return FixedClock(datetime(2025, 3, 10, 15, 0, tzinfo=timezone.utc))


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def v2_doc():
    return make_v2


@pytest.fixture
def legacy_doc():
    return make_legacy


@pytest.fixture
def add_v2(store):
    def _add(doc_id, **kwargs):
        store.put(V2_QUESTIONS, doc_id, make_v2(**kwargs))
        return doc_id
    return _add


@pytest.fixture
def add_legacy(store):
    def _add(puzzle_id, questions, **kwargs):
        store.put(LEGACY_PUZZLES, puzzle_id, make_legacy(questions, **kwargs))
        return puzzle_id
    return _add


@pytest.fixture
def add_player(store):
    def _add(uid, **data):
        store.put(PLAYERS, uid, data)
        return uid
    return _add


@pytest.fixture
def services(store, clock):
    return build_services(QuizTestConfig, store=store, clock=clock)


@pytest.fixture
def fake_tokens(monkeypatch):
    def _verify(token):
        if token not in FAKE_TOKENS:
            raise ValueError("token rejected")
        return dict(FAKE_TOKENS[token])
    monkeypatch.setattr(auth_middleware.fb_auth, "verify_id_token", _verify)
    return FAKE_TOKENS


@pytest.fixture
def app(store, clock, fake_tokens):
    return create_app(QuizTestConfig, store=store, clock=clock, init_firebase=False)


@pytest.fixture
def client(app):
    return app.test_client()


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth():
    return bearer
