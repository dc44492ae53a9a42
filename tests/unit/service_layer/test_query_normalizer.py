"""Default soft-delete filter and the validation hook."""

from __future__ import annotations

import pytest

from docstore.domain.errors import InvalidArgumentError
from docstore.domain.model import QueryOptions, ServiceOptions
from docstore.service_layer.query_normalizer import QueryNormalizer


pytestmark = pytest.mark.unit


class RecordingNormalizer(QueryNormalizer):
    def __init__(self) -> None:
        super().__init__()
        self.validated: list[dict] = []

    def validate(self, query, options) -> None:
        self.validated.append(dict(query))
        if query.get("forbidden"):
            raise InvalidArgumentError("forbidden query")


def test_adds_live_document_filter() -> None:
    query = QueryNormalizer().add_default_filter({"name": "Ada"}, QueryOptions())

    assert query == {"name": "Ada", "deletedOn": {"$exists": False}}


def test_mutates_and_returns_the_same_query() -> None:
    query = {"name": "Ada"}

    assert QueryNormalizer().add_default_filter(query, QueryOptions()) is query
    assert "deletedOn" in query


@pytest.mark.parametrize(
    ("query", "service_options", "query_options"),
    [
        ({"deletedOn": {"$exists": True}}, ServiceOptions(), QueryOptions()),
        ({"deletedOn": None}, ServiceOptions(), QueryOptions()),
        ({"name": "Ada"}, ServiceOptions(require_deleted_on=False), QueryOptions()),
        ({"name": "Ada"}, ServiceOptions(), QueryOptions(do_not_add_deleted_on=True)),
    ],
)
def test_leaves_query_unchanged(query, service_options, query_options) -> None:
    expected = dict(query)

    result = QueryNormalizer(service_options).add_default_filter(query, query_options)

    assert result == expected


def test_normalize_treats_none_as_empty_query() -> None:
    assert QueryNormalizer().normalize(None, QueryOptions()) == {"deletedOn": {"$exists": False}}


def test_normalize_validates_augmented_query() -> None:
    normalizer = RecordingNormalizer()

    normalizer.normalize({"name": "Ada"}, QueryOptions())

    assert normalizer.validated == [{"name": "Ada", "deletedOn": {"$exists": False}}]


def test_validation_failure_rejects_query() -> None:
    with pytest.raises(InvalidArgumentError):
        RecordingNormalizer().normalize({"forbidden": True}, QueryOptions())


def test_skip_query_validation() -> None:
    normalizer = RecordingNormalizer()

    normalizer.normalize({"forbidden": True}, QueryOptions(skip_query_validation=True))

    assert normalizer.validated == []


def test_check_validates_without_default_filter() -> None:
    normalizer = RecordingNormalizer()

    assert normalizer.check({"name": "Ada"}, QueryOptions()) == {"name": "Ada"}
    assert normalizer.validated == [{"name": "Ada"}]


def test_bind_replaces_service_options() -> None:
    normalizer = QueryNormalizer()

    assert normalizer.bind(ServiceOptions(require_deleted_on=False)) is normalizer
    assert normalizer.add_default_filter({}, QueryOptions()) == {}
