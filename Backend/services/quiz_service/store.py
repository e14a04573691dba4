# services/quiz_service/store.py
"""
Document store adapter used by every quiz component.

The quiz code only talks to collections of key -> dict documents:

    get(collection, doc_id)            -> dict | None
    put(collection, doc_id, data)      full replace
    delete(collection, doc_id)
    query(collection, field, value)    -> [(doc_id, dict)]
    create(collection, doc_id, data)   -> (created, current)   write-if-absent
    transaction(fn)                    fn(txn) with txn.get / txn.set, atomic

Two backends:
- FirestoreDocumentStore: firebase-admin client (production)
- MemoryDocumentStore: process-local dicts behind a lock (local dev, tests)

Subcollections are addressed with slash paths, e.g. "Player/<uid>/QuizCompletions".
"""

from __future__ import annotations
import copy
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

# ============================================================================
# Collection names
# ============================================================================

LEGACY_PUZZLES = "Puzzle"
V2_QUESTIONS = "QuizQuestions"
SCHEDULE = "QUIZ_SCHEDULE"
PLAYERS = "Player"


def completions_path(uid: str) -> str:
    return f"{PLAYERS}/{uid}/QuizCompletions"


def attempts_path(uid: str) -> str:
    return f"{PLAYERS}/{uid}/QuizAttempts"


Document = Dict[str, Any]

# ============================================================================
# Interface
# ============================================================================

class DocumentStore:
    """Narrow repository interface over a document database."""

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        raise NotImplementedError

    def put(self, collection: str, doc_id: str, data: Document) -> None:
        raise NotImplementedError

    def delete(self, collection: str, doc_id: str) -> None:
        raise NotImplementedError

    def query(
        self, collection: str, field: Optional[str] = None, value: Any = None
    ) -> List[Tuple[str, Document]]:
        raise NotImplementedError

    def create(self, collection: str, doc_id: str, data: Document) -> Tuple[bool, Document]:
        """
        Atomically write `data` only if no document exists at doc_id.
        Returns (True, data) when written, (False, existing) otherwise.
        """
        raise NotImplementedError

    def transaction(self, fn: Callable[[Any], Any]) -> Any:
        """
        Run fn(txn) as one atomic read-modify-write. txn exposes
        get(collection, doc_id), set(collection, doc_id, data) and
        delete(collection, doc_id).
        Reads must happen before writes. fn may be re-run on contention.
        """
        raise NotImplementedError


# ============================================================================
# In-memory backend
# ============================================================================

class _MemoryTransaction:
    def __init__(self, store: "MemoryDocumentStore"):
        self._store = store
        self._writes: Dict[Tuple[str, str], Optional[Document]] = {}

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        key = (collection, doc_id)
        if key in self._writes:
            # None marks a pending delete
            return copy.deepcopy(self._writes[key])
        return self._store.get(collection, doc_id)

    def set(self, collection: str, doc_id: str, data: Document) -> None:
        self._writes[(collection, doc_id)] = copy.deepcopy(data)

    def delete(self, collection: str, doc_id: str) -> None:
        self._writes[(collection, doc_id)] = None

    def commit(self) -> None:
        for (collection, doc_id), data in self._writes.items():
            if data is None:
                self._store.delete(collection, doc_id)
            else:
                self._store.put(collection, doc_id, data)


class MemoryDocumentStore(DocumentStore):
    """Dict-of-dicts store. All operations are serialized by one re-entrant lock."""

    def __init__(self, seed: Optional[Dict[str, Dict[str, Document]]] = None):
        self._lock = threading.RLock()
        self._collections: Dict[str, Dict[str, Document]] = {}
        for collection, docs in (seed or {}).items():
            for doc_id, data in docs.items():
                self.put(collection, doc_id, data)

    def get(self, collection, doc_id):
        with self._lock:
            data = self._collections.get(collection, {}).get(doc_id)
            return copy.deepcopy(data) if data is not None else None

    def put(self, collection, doc_id, data):
        with self._lock:
            self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(data)

    def delete(self, collection, doc_id):
        with self._lock:
            self._collections.get(collection, {}).pop(doc_id, None)

    def query(self, collection, field=None, value=None):
        with self._lock:
            docs = self._collections.get(collection, {})
            out = []
            for doc_id, data in docs.items():
                if field is not None and data.get(field) != value:
                    continue
                out.append((doc_id, copy.deepcopy(data)))
            return out

    def create(self, collection, doc_id, data):
        with self._lock:
            existing = self.get(collection, doc_id)
            if existing is not None:
                return False, existing
            self.put(collection, doc_id, data)
            return True, copy.deepcopy(data)

    def transaction(self, fn):
        with self._lock:
            txn = _MemoryTransaction(self)
            result = fn(txn)
            txn.commit()
            return result


# ============================================================================
# Firestore backend
# ============================================================================

def init_firebase_admin():
    """Initialize the default Firebase Admin app once per process."""
    import firebase_admin
    from config import Config

    if firebase_admin._apps:
        return
    cred = Config.firebase_credential()
    if cred is not None:
        firebase_admin.initialize_app(cred)
    else:
        logger.info("[store] No explicit credentials; using application defaults")
        firebase_admin.initialize_app()
    logger.info("[store] Firebase initialized")


def get_db():
    """Return a Firestore client, initializing Firebase Admin if needed."""
    from firebase_admin import firestore

    init_firebase_admin()
    return firestore.client()


class _FirestoreTransaction:
    def __init__(self, db, txn):
        self._db = db
        self._txn = txn

    def get(self, collection, doc_id):
        snap = self._db.collection(collection).document(doc_id).get(transaction=self._txn)
        return snap.to_dict() if snap.exists else None

    def set(self, collection, doc_id, data):
        self._txn.set(self._db.collection(collection).document(doc_id), data)

    def delete(self, collection, doc_id):
        self._txn.delete(self._db.collection(collection).document(doc_id))


class FirestoreDocumentStore(DocumentStore):
    def __init__(self, db=None):
        self._db = db if db is not None else get_db()

    def _ref(self, collection, doc_id):
        return self._db.collection(collection).document(doc_id)

    def get(self, collection, doc_id):
        snap = self._ref(collection, doc_id).get()
        return snap.to_dict() if snap.exists else None

    def put(self, collection, doc_id, data):
        self._ref(collection, doc_id).set(data)

    def delete(self, collection, doc_id):
        self._ref(collection, doc_id).delete()

    def query(self, collection, field=None, value=None):
        from google.cloud.firestore_v1.base_query import FieldFilter

        ref = self._db.collection(collection)
        if field is not None:
            ref = ref.where(filter=FieldFilter(field, "==", value))
        return [(snap.id, snap.to_dict() or {}) for snap in ref.stream()]

    def create(self, collection, doc_id, data):
        from google.api_core.exceptions import AlreadyExists

        try:
            self._ref(collection, doc_id).create(data)
            return True, dict(data)
        except AlreadyExists:
            existing = self.get(collection, doc_id) or {}
            return False, existing

    def transaction(self, fn):
        from firebase_admin import firestore

        @firestore.transactional
        def _run(txn):
            return fn(_FirestoreTransaction(self._db, txn))

        return _run(self._db.transaction())
