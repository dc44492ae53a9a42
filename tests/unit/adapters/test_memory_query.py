"""Filter matching and update application of the in-memory backend."""

from __future__ import annotations

from datetime import datetime, timezone

from pymongo.errors import OperationFailure, WriteError
import pytest

from docstore.adapters.memory_query import apply_update, matches, project, sort_documents


pytestmark = pytest.mark.unit

DOC = {
    "_id": "u1",
    "name": "Ada",
    "age": 36,
    "tags": ["math", "code"],
    "profile": {"city": "London"},
    "pets": [{"kind": "cat"}, {"kind": "dog"}],
    "nickname": None,
}


@pytest.mark.parametrize(
    "query",
    [
        {},
        {"name": "Ada"},
        {"profile.city": "London"},
        {"tags": "code"},
        {"pets.kind": "dog"},
        {"deletedOn": {"$exists": False}},
        {"nickname": {"$exists": True}},
        {"nickname": None},
        {"missing": None},
        {"age": {"$gt": 30, "$lte": 36}},
        {"name": {"$in": ["Ada", "Grace"]}},
        {"name": {"$nin": ["Grace"]}},
        {"name": {"$ne": "Grace"}},
        {"$or": [{"name": "Grace"}, {"age": 36}]},
        {"$and": [{"name": "Ada"}, {"_id": {"$in": ["u1", "u2"]}}]},
        {"$nor": [{"name": "Grace"}]},
        {"age": {"$not": {"$lt": 18}}},
    ],
)
def test_matching_queries(query) -> None:
    assert matches(DOC, query) is True


@pytest.mark.parametrize(
    "query",
    [
        {"name": "Grace"},
        {"profile.city": "Paris"},
        {"tags": "art"},
        {"age": {"$lt": 18}},
        {"name": {"$exists": False}},
        {"$or": [{"name": "Grace"}, {"age": 12}]},
        {"$nor": [{"name": "Ada"}]},
        {"tags": {"$nin": ["math"]}},
    ],
)
def test_non_matching_queries(query) -> None:
    assert matches(DOC, query) is False


def test_unknown_operator_is_rejected() -> None:
    with pytest.raises(OperationFailure):
        matches(DOC, {"name": {"$regex": "A"}})


def test_comparisons_across_types_do_not_match() -> None:
    assert matches({"at": datetime.now(timezone.utc)}, {"at": {"$gt": 5}}) is False


def test_set_unset_and_inc() -> None:
    updated = apply_update(
        DOC,
        {"$set": {"profile.city": "Paris", "name": "Ada"}, "$unset": {"nickname": ""}, "$inc": {"age": 1}},
    )

    assert updated["profile"] == {"city": "Paris"}
    assert updated["age"] == 37
    assert "nickname" not in updated
    assert DOC["age"] == 36


def test_replacement_keeps_id() -> None:
    assert apply_update(DOC, {"name": "Grace"}) == {"_id": "u1", "name": "Grace"}


def test_id_is_immutable() -> None:
    with pytest.raises(WriteError) as exc_info:
        apply_update(DOC, {"$set": {"_id": "other"}})

    assert exc_info.value.code == 66


def test_unknown_modifier_is_rejected() -> None:
    with pytest.raises(WriteError):
        apply_update(DOC, {"$push": {"tags": "art"}})


def test_sort_and_project() -> None:
    documents = [{"_id": 1, "n": "b"}, {"_id": 2, "n": "a"}, {"_id": 3}]

    assert [doc["_id"] for doc in sort_documents(documents, [("n", 1)])] == [3, 2, 1]
    assert [doc["_id"] for doc in sort_documents(documents, {"n": -1})] == [1, 2, 3]
    assert project({"_id": 1, "a": 1, "b": 2}, {"a": 1}) == {"_id": 1, "a": 1}
    assert project({"_id": 1, "a": 1, "b": 2}, {"b": 0, "_id": 0}) == {"a": 1}
