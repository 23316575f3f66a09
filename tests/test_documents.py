"""
Test: Document store paths, the in-memory store and live subscriptions.
"""
import pytest

from scorebook.errors import DocumentStoreError
from scorebook.services.documents import (
    PROFILES_COLLECTION, apply_query, grades_collection, parse_collection,
)


class TestCollectionPaths:
    def test_grades_path(self):
        assert grades_collection("abc") == "grades/abc/data"

    @pytest.mark.parametrize("bad", ["", None, "a/b"])
    def test_invalid_student_id(self, bad):
        with pytest.raises(DocumentStoreError):
            grades_collection(bad)

    def test_parse(self):
        assert parse_collection(PROFILES_COLLECTION) == (PROFILES_COLLECTION, None)
        assert parse_collection("grades/abc/data") == ("grades", "abc")

    @pytest.mark.parametrize("bad", ["grades", "grades//data", "other/abc/data", "users"])
    def test_parse_unknown(self, bad):
        with pytest.raises(DocumentStoreError):
            parse_collection(bad)


class TestApplyQuery:
    DOCS = [
        {"id": "a", "score": 50, "_seq": 1},
        {"id": "b", "score": 90, "_seq": 2},
        {"id": "c", "score": 70, "_seq": 3},
    ]

    def test_order_and_limit(self):
        top = apply_query(self.DOCS, order_by="score", descending=True, limit=1)
        assert [d["id"] for d in top] == ["b"]

    def test_where(self):
        assert [d["id"] for d in apply_query(self.DOCS, where=[("score", 70)])] == ["c"]

    def test_insertion_order_without_order_by(self):
        shuffled = [self.DOCS[2], self.DOCS[0], self.DOCS[1]]
        assert [d["id"] for d in apply_query(shuffled)] == ["a", "b", "c"]


class TestMemoryDocumentStore:
    def test_set_get(self, store):
        store.set(PROFILES_COLLECTION, "alice", {"name": "Alice"})
        doc = store.get(PROFILES_COLLECTION, "alice")
        assert doc["id"] == "alice"
        assert doc["name"] == "Alice"
        assert "created_at" in doc
        assert "_seq" not in doc

    def test_get_missing(self, store):
        assert store.get(PROFILES_COLLECTION, "nobody") is None

    def test_add_generates_ids(self, store):
        col = grades_collection("alice")
        first = store.add(col, {"score": 1})
        second = store.add(col, {"score": 2})
        assert first != second
        assert [d["score"] for d in store.query(col, order_by="created_at")] == [1, 2]

    def test_latest_first_limit(self, store):
        col = grades_collection("alice")
        for score in (10, 20, 30):
            store.add(col, {"score": score})
        latest = store.query(col, order_by="created_at", descending=True, limit=1)
        assert [d["score"] for d in latest] == [30]

    def test_collections_are_separate(self, store):
        store.add(grades_collection("alice"), {"score": 1})
        assert store.query(grades_collection("bob")) == []

    def test_delete(self, store):
        col = grades_collection("alice")
        grade_id = store.add(col, {"score": 1})
        store.delete(col, grade_id)
        assert store.get(col, grade_id) is None

    def test_set_requires_id(self, store):
        with pytest.raises(DocumentStoreError):
            store.set(PROFILES_COLLECTION, "", {"name": "x"})


class TestSubscriptions:
    def test_immediate_and_pushed_results(self, store):
        col = grades_collection("alice")
        seen = []
        sub = store.subscribe(col, seen.append, order_by="created_at")
        assert seen == [[]]

        grade_id = store.add(col, {"score": 80})
        assert [d["score"] for d in seen[-1]] == [80]

        store.delete(col, grade_id)
        assert seen[-1] == []
        sub.cancel()

    def test_cancel_stops_delivery(self, store):
        col = grades_collection("alice")
        seen = []
        sub = store.subscribe(col, seen.append)
        sub.cancel()
        sub.cancel()
        store.add(col, {"score": 1})
        assert seen == [[]]
        assert not sub.active

    def test_other_collection_not_notified(self, store):
        seen = []
        store.subscribe(grades_collection("alice"), seen.append)
        store.add(grades_collection("bob"), {"score": 1})
        assert len(seen) == 1

    def test_query_failure_reports_and_cancels(self, store, monkeypatch):
        col = grades_collection("alice")
        errors = []
        sub = store.subscribe(col, lambda rows: None, on_error=errors.append)

        def broken_query(*args, **kwargs):
            raise DocumentStoreError("permission denied")

        monkeypatch.setattr(store, "query", broken_query)
        store.add(col, {"score": 1})

        assert len(errors) == 1
        assert not sub.active
