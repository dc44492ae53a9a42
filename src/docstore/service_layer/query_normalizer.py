"""Default-filter injection and validation for caller-supplied queries.

Every filtering path of ``DocumentService`` passes its query through
``QueryNormalizer.normalize`` before the storage engine sees it. Subclass
and override ``validate`` to enforce mandatory predicates (tenant scoping,
workspace ids, ...); raising there rejects the operation before any I/O.
"""

from __future__ import annotations

from collections.abc import MutableMapping
from typing import Any

from docstore.domain.model import DELETED_ON_FIELD, QueryOptions, ServiceOptions


Query = MutableMapping[str, Any]


class QueryNormalizer:
    """Soft-delete filtering plus a validation hook."""

    def __init__(self, service_options: ServiceOptions | None = None) -> None:
        self.service_options = service_options or ServiceOptions()

    def add_default_filter(self, query: Query, options: QueryOptions) -> Query:
        """Constrain ``query`` to live documents unless the caller opted out.

        An explicit ``deletedOn`` predicate in the query always wins. The query is
        updated in place and returned.
        """
        if DELETED_ON_FIELD in query:
            return query
        if not self.service_options.require_deleted_on:
            return query
        if options.do_not_add_deleted_on:
            return query

        query[DELETED_ON_FIELD] = {"$exists": False}
        return query

    def validate(self, query: Query, options: QueryOptions) -> None:
        """Hook for mandatory predicates; the default accepts every query."""

    def normalize(self, query: Query | None, options: QueryOptions) -> Query:
        """Apply the default filter, then validation unless ``skip_query_validation`` is set."""
        query = {} if query is None else query
        query = self.add_default_filter(query, options)
        if not options.skip_query_validation:
            self.validate(query, options)
        return query

    def check(self, query: Query | None, options: QueryOptions) -> Query:
        """Validate without adding the default filter (hard deletes, raw atomic deletes)."""
        query = {} if query is None else query
        if not options.skip_query_validation:
            self.validate(query, options)
        return query

    def bind(self, service_options: ServiceOptions) -> QueryNormalizer:
        """Attach the owning service's options; returns self for chaining."""
        self.service_options = service_options
        return self
