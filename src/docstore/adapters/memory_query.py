"""Filter matching, update application and sorting for the in-memory backend.

Covers the subset of the MongoDB query language the services and their tests
rely on. Anything outside it raises ``pymongo.errors.OperationFailure`` the way
a server would reject an unknown operator.
"""

from __future__ import annotations

from collections.abc import Mapping
import copy
from typing import Any

from pymongo.errors import OperationFailure, WriteError

from docstore.domain.model import ID_FIELD, Document


BAD_VALUE = 2
FAILED_TO_PARSE = 9
IMMUTABLE_FIELD = 66


def resolve(document: Any, path: str) -> list[Any]:
    """All values reachable through ``path``; arrays of sub-documents fan out."""
    return _resolve(document, path.split("."))


def _resolve(current: Any, parts: list[str]) -> list[Any]:
    if not parts:
        return [current]
    head, rest = parts[0], parts[1:]
    if isinstance(current, Mapping):
        if head not in current:
            return []
        return _resolve(current[head], rest)
    if isinstance(current, list):
        if head.isdigit():
            index = int(head)
            return _resolve(current[index], rest) if index < len(current) else []
        values: list[Any] = []
        for item in current:
            if isinstance(item, Mapping):
                values.extend(_resolve(item, parts))
        return values
    return []


def _equals(candidate: Any, expected: Any) -> bool:
    if candidate == expected:
        return True
    return isinstance(candidate, list) and not isinstance(expected, list) and expected in candidate


def _compare(candidate: Any, expected: Any, operator: str) -> bool:
    values = candidate if isinstance(candidate, list) else [candidate]
    for value in values:
        try:
            if operator == "$gt" and value > expected:
                return True
            if operator == "$gte" and value >= expected:
                return True
            if operator == "$lt" and value < expected:
                return True
            if operator == "$lte" and value <= expected:
                return True
        except TypeError:
            continue
    return False


def _is_operator_expression(value: Any) -> bool:
    return isinstance(value, Mapping) and bool(value) and all(str(key).startswith("$") for key in value)


def _match_field(document: Document, path: str, condition: Any) -> bool:
    candidates = resolve(document, path)

    if not _is_operator_expression(condition):
        if condition is None:
            return not candidates or any(candidate is None for candidate in candidates)
        return any(_equals(candidate, condition) for candidate in candidates)

    for operator, operand in condition.items():
        if operator == "$exists":
            if bool(candidates) != bool(operand):
                return False
        elif operator == "$eq":
            if not _match_field(document, path, operand):
                return False
        elif operator == "$ne":
            if _match_field(document, path, operand):
                return False
        elif operator == "$in":
            if not any(_match_field(document, path, value) for value in operand):
                return False
        elif operator == "$nin":
            if any(_match_field(document, path, value) for value in operand):
                return False
        elif operator in {"$gt", "$gte", "$lt", "$lte"}:
            if not any(_compare(candidate, operand, operator) for candidate in candidates):
                return False
        elif operator == "$not":
            if _match_field(document, path, operand):
                return False
        else:
            raise OperationFailure(f"unknown operator: {operator}", code=BAD_VALUE)
    return True


def matches(document: Document, query: Mapping[str, Any] | None) -> bool:
    """True when ``document`` satisfies ``query``."""
    if not query:
        return True

    for key, condition in query.items():
        if key == "$and":
            if not all(matches(document, clause) for clause in condition):
                return False
        elif key == "$or":
            if not any(matches(document, clause) for clause in condition):
                return False
        elif key == "$nor":
            if any(matches(document, clause) for clause in condition):
                return False
        elif key.startswith("$"):
            raise OperationFailure(f"unknown top level operator: {key}", code=BAD_VALUE)
        elif not _match_field(document, key, condition):
            return False
    return True


def _set_path(document: Document, path: str, value: Any) -> None:
    parts = path.split(".")
    current: Any = document
    for part in parts[:-1]:
        if isinstance(current, list) and part.isdigit():
            current = current[int(part)]
            continue
        current = current.setdefault(part, {})
    if isinstance(current, list) and parts[-1].isdigit():
        current[int(parts[-1])] = value
    else:
        current[parts[-1]] = value


def _unset_path(document: Document, path: str) -> None:
    parts = path.split(".")
    current: Any = document
    for part in parts[:-1]:
        if not isinstance(current, Mapping) or part not in current:
            return
        current = current[part]
    if isinstance(current, dict):
        current.pop(parts[-1], None)


def _check_immutable_id(original: Document, path: str, value: Any) -> None:
    if path == ID_FIELD and value != original.get(ID_FIELD):
        raise WriteError(
            "Performing an update on the path '_id' would modify the immutable field '_id'",
            code=IMMUTABLE_FIELD,
        )


def apply_update(document: Document, update: Mapping[str, Any]) -> Document:
    """Return a new document with ``update`` applied; ``document`` is left untouched.

    A mapping without operator keys replaces the whole document except ``_id``.
    """
    if not update:
        raise WriteError("update document must not be empty", code=FAILED_TO_PARSE)

    if not any(str(key).startswith("$") for key in update):
        replacement = copy.deepcopy(dict(update))
        if ID_FIELD in replacement:
            _check_immutable_id(document, ID_FIELD, replacement[ID_FIELD])
        replacement[ID_FIELD] = document.get(ID_FIELD)
        return replacement

    updated = copy.deepcopy(document)
    for operator, fields in update.items():
        if operator == "$set":
            for path, value in fields.items():
                _check_immutable_id(document, path, value)
                _set_path(updated, path, copy.deepcopy(value))
        elif operator == "$unset":
            for path in fields:
                if path == ID_FIELD:
                    _check_immutable_id(document, path, None)
                _unset_path(updated, path)
        elif operator == "$inc":
            for path, amount in fields.items():
                current = resolve(updated, path)
                _set_path(updated, path, (current[0] if current else 0) + amount)
        else:
            raise WriteError(f"Unknown modifier: {operator}", code=FAILED_TO_PARSE)
    return updated


def normalize_sort(sort: Any) -> list[tuple[str, int]]:
    if sort is None:
        return []
    if isinstance(sort, str):
        return [(sort, 1)]
    if isinstance(sort, Mapping):
        return list(sort.items())
    return [(key, direction) for key, direction in sort]


def sort_documents(documents: list[Document], sort: Any) -> list[Document]:
    """Stable multi-key sort; documents missing a key sort first ascending."""
    ordered = list(documents)
    for key, direction in reversed(normalize_sort(sort)):

        def sort_key(document: Document, key: str = key) -> tuple[int, Any]:
            values = resolve(document, key)
            if not values or values[0] is None:
                return (0, 0)
            return (1, values[0])

        ordered.sort(key=sort_key, reverse=direction == -1)
    return ordered


def project(document: Document, projection: Mapping[str, Any] | list[str] | None) -> Document:
    """Top-level inclusion or exclusion projection; ``_id`` is kept unless excluded."""
    if not projection:
        return document
    if not isinstance(projection, Mapping):
        projection = dict.fromkeys(projection, 1)

    include = {key for key, flag in projection.items() if flag and key != ID_FIELD}
    exclude = {key for key, flag in projection.items() if not flag}
    if include:
        projected = {key: value for key, value in document.items() if key in include}
        if ID_FIELD not in exclude and ID_FIELD in document:
            projected[ID_FIELD] = document[ID_FIELD]
        return projected
    return {key: value for key, value in document.items() if key not in exclude}
