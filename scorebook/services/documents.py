"""
Document Store Client
=====================
Narrow interface over the hosted document database.

Two collection shapes are used:
- user_profiles/{id}
- grades/{student_id}/data/{grade_id}

MemoryDocumentStore keeps documents in-process and pushes query results to
subscribers as soon as a write lands. The Supabase-backed implementation
lives in supabase_backend.py.
"""
import logging
import threading
import uuid
from collections import defaultdict
from datetime import datetime, timezone

from scorebook.errors import DocumentStoreError

logger = logging.getLogger(__name__)

PROFILES_COLLECTION = "user_profiles"
GRADES_ROOT = "grades"


def grades_collection(student_id: str) -> str:
    """Collection path holding one student's grade records."""
    if not student_id or "/" in str(student_id):
        raise DocumentStoreError(f"Invalid student id: {student_id!r}")
    return f"{GRADES_ROOT}/{student_id}/data"


def parse_collection(collection: str):
    """
    Split a collection path into (root, owner_id).

    user_profiles       -> ("user_profiles", None)
    grades/<sid>/data   -> ("grades", "<sid>")
    """
    parts = collection.split("/")
    if parts == [PROFILES_COLLECTION]:
        return PROFILES_COLLECTION, None
    if len(parts) == 3 and parts[0] == GRADES_ROOT and parts[2] == "data" and parts[1]:
        return GRADES_ROOT, parts[1]
    raise DocumentStoreError(f"Unknown collection: {collection}")


def now_utc():
    return datetime.now(timezone.utc)


class Subscription:
    """Cancellable handle for a live query or auth-state listener."""

    def __init__(self, on_cancel=None):
        self._on_cancel = on_cancel
        self._cancelled = False
        self._lock = threading.Lock()

    @property
    def active(self):
        return not self._cancelled

    def cancel(self):
        """Stop delivering updates. Safe to call more than once."""
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
        if self._on_cancel:
            self._on_cancel(self)

    def refresh(self):
        """Ask for an early delivery. Push-based stores deliver on write anyway."""
        return None


class DocumentStore:
    """Interface implemented by the memory and Supabase stores."""

    def get(self, collection, doc_id):
        raise NotImplementedError

    def query(self, collection, where=None, order_by=None, descending=False, limit=None):
        raise NotImplementedError

    def add(self, collection, data):
        raise NotImplementedError

    def set(self, collection, doc_id, data):
        raise NotImplementedError

    def delete(self, collection, doc_id):
        raise NotImplementedError

    def subscribe(self, collection, callback, where=None, order_by=None,
                  descending=False, on_error=None):
        raise NotImplementedError


def _sort_key(field):
    def key(doc):
        value = doc.get(field)
        # None sorts first, matching a missing timestamp
        return (value is not None, value if value is not None else 0, doc.get("_seq", 0))
    return key


def apply_query(docs, where=None, order_by=None, descending=False, limit=None):
    """Run equality filters, ordering and limit over a list of documents."""
    results = list(docs)
    for field, value in (where or []):
        results = [d for d in results if d.get(field) == value]
    if order_by:
        results.sort(key=_sort_key(order_by), reverse=descending)
    else:
        results.sort(key=lambda d: d.get("_seq", 0))
    if limit is not None:
        results = results[:limit]
    return results


def _public(doc):
    return {k: v for k, v in doc.items() if k != "_seq"}


class _Listener(Subscription):

    def __init__(self, store, collection, callback, where, order_by, descending, on_error):
        super().__init__(on_cancel=store._remove_listener)
        self.collection = collection
        self.callback = callback
        self.where = where
        self.order_by = order_by
        self.descending = descending
        self.on_error = on_error


class MemoryDocumentStore(DocumentStore):
    """
    In-process document store.

    Writes notify every listener on the written collection with the re-run
    query result. Callbacks run on the writing thread, outside the store lock.
    """

    def __init__(self):
        self._collections = defaultdict(dict)
        self._listeners = []
        self._seq = 0
        self._lock = threading.RLock()

    # ---- reads ----

    def get(self, collection, doc_id):
        parse_collection(collection)
        with self._lock:
            doc = self._collections[collection].get(doc_id)
            return _public(doc) if doc else None

    def query(self, collection, where=None, order_by=None, descending=False, limit=None):
        parse_collection(collection)
        with self._lock:
            docs = list(self._collections[collection].values())
        return [_public(d) for d in apply_query(docs, where, order_by, descending, limit)]

    # ---- writes ----

    def add(self, collection, data):
        doc_id = uuid.uuid4().hex[:20]
        self._write(collection, doc_id, data)
        return doc_id

    def set(self, collection, doc_id, data):
        if not doc_id:
            raise DocumentStoreError("Document id is required")
        self._write(collection, doc_id, data)
        return doc_id

    def delete(self, collection, doc_id):
        parse_collection(collection)
        with self._lock:
            removed = self._collections[collection].pop(doc_id, None)
        if removed is not None:
            self._notify(collection)

    def _write(self, collection, doc_id, data):
        parse_collection(collection)
        with self._lock:
            self._seq += 1
            doc = dict(data)
            doc["id"] = doc_id
            doc.setdefault("created_at", now_utc())
            doc["_seq"] = self._seq
            self._collections[collection][doc_id] = doc
        self._notify(collection)

    # ---- live queries ----

    def subscribe(self, collection, callback, where=None, order_by=None,
                  descending=False, on_error=None):
        parse_collection(collection)
        listener = _Listener(self, collection, callback, where, order_by, descending, on_error)
        with self._lock:
            self._listeners.append(listener)
        self._deliver(listener)
        return listener

    def _remove_listener(self, listener):
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _notify(self, collection):
        with self._lock:
            targets = [l for l in self._listeners if l.collection == collection]
        for listener in targets:
            self._deliver(listener)

    def _deliver(self, listener):
        if not listener.active:
            return
        try:
            results = self.query(listener.collection, listener.where, listener.order_by,
                                 listener.descending)
        except Exception as e:
            logger.error("Live query on %s failed: %s", listener.collection, e)
            if listener.on_error:
                listener.on_error(e)
            listener.cancel()
            return
        listener.callback(results)
