"""Session-scoped transactions around units of work.

A unit of work is a callable taking a driver session. ``TransactionCoordinator``
either runs it inside the caller's transaction (``session=`` given) or opens a
session, runs it through the driver's retrying ``with_transaction`` helper and
releases the session on every exit path.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
import inspect
import logging
from typing import Any, TypeVar

from pymongo import ReadPreference
from pymongo.read_concern import ReadConcern
from pymongo.write_concern import WriteConcern

from docstore.domain.errors import InvalidArgumentError
from docstore.observability.metrics import TRANSACTION_COUNT
from docstore.observability.tracing import create_span


T = TypeVar("T")

UnitOfWork = Callable[[Any], Awaitable[T] | T]

# Fixed isolation policy for every coordinator-managed transaction
TRANSACTION_OPTIONS: dict[str, Any] = {
    "read_concern": ReadConcern("local"),
    "write_concern": WriteConcern(w=1),
    "read_preference": ReadPreference.PRIMARY,
}


class TransactionCoordinator:
    """Owns session lifecycle and commit/abort semantics for one database."""

    def __init__(
        self,
        get_client: Callable[[], Awaitable[Any]],
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._get_client = get_client
        self._logger = logger if logger is not None else logging.getLogger(__name__)

    async def run(self, unit_of_work: UnitOfWork[T], *, session: Any = None, name: str = "transaction") -> T | None:
        """Execute ``unit_of_work(session)`` atomically.

        Args:
            unit_of_work: Sync or async callable receiving the active session
            session: Caller-held session; when given, the work joins that transaction
            name: Label recorded on the tracing span

        Returns:
            The unit of work's result, or None when the backend exposes no client.

        Raises:
            InvalidArgumentError: ``unit_of_work`` is not callable.
            Exception: Whatever the unit of work or the commit raised, after abort.
        """
        if not callable(unit_of_work):
            raise InvalidArgumentError(
                f"with_transaction: expected a callable unit of work but got {type(unit_of_work).__name__}"
            )

        if session is not None:
            return await _call(unit_of_work, session)

        client = await self._get_client()
        if client is None:
            self._logger.warning("No storage client available; skipping %s", name)
            return None

        async def callback(active_session: Any) -> T:
            return await _call(unit_of_work, active_session)

        with create_span("docstore.transaction", attributes={"docstore.unit_of_work": name}):
            async with client.start_session() as managed_session:
                try:
                    result = await managed_session.with_transaction(callback, **TRANSACTION_OPTIONS)
                except Exception:
                    TRANSACTION_COUNT.labels(status="aborted").inc()
                    self._logger.exception("Transaction '%s' aborted", name)
                    raise

        TRANSACTION_COUNT.labels(status="committed").inc()
        return result


async def _call(unit_of_work: UnitOfWork[T], session: Any) -> T:
    result = unit_of_work(session)
    if inspect.isawaitable(result):
        result = await result
    return result
