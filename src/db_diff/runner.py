"""Prepare, bind and execute catalog queries.

``StatementRunner`` is the only place that sends SQL to the database.  It
wraps a SQLAlchemy ``Connection`` and turns driver failures into
``PreparationError`` / ``ExecutionError`` carrying the offending SQL.

Usage:
    from db_diff.runner import StatementRunner

    runner = StatementRunner(connection)
    rows = runner.query(
        "SELECT name FROM sqlite_master WHERE type = :type",
        {"type": "table"},
    )
    rows = runner.query("SELECT * FROM pragma_table_info(:1)", ["users"])
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from sqlalchemy import bindparam, text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import ArgumentError, DBAPIError, ProgrammingError, SQLAlchemyError
from sqlalchemy.sql.elements import BindParameter
from sqlalchemy.types import Boolean, Integer, NullType, String, TypeEngine

from db_diff.exceptions import ExecutionError, PreparationError

logger = logging.getLogger(__name__)

Bindings = Mapping[str, Any] | Sequence[Any]


def infer_type(value: Any) -> TypeEngine:
    """Pick the wire type for a bound value.

    ``bool`` is checked before ``int`` because it is a subclass of it.
    """
    if value is None:
        return NullType()
    if isinstance(value, bool):
        return Boolean()
    if isinstance(value, int):
        return Integer()
    return String()


def _coerce(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int)):
        return value
    return str(value)


def build_parameters(bindings: Bindings | None) -> list[BindParameter]:
    """Turn named or positional bindings into typed bind parameters.

    Positional values bind to the placeholders ``:1``, ``:2``, ... in order.
    """
    if not bindings:
        return []

    if isinstance(bindings, Mapping):
        items = [(str(key).lstrip(":"), value) for key, value in bindings.items()]
    else:
        items = [(str(position), value) for position, value in enumerate(bindings, start=1)]

    return [
        bindparam(key, _coerce(value), type_=infer_type(value))
        for key, value in items
    ]


class StatementRunner:
    """Run read-only catalog queries on one SQLAlchemy connection."""

    def __init__(self, connection: Connection) -> None:
        self._connection = connection

    @property
    def connection(self) -> Connection:
        return self._connection

    def query(self, sql: str, bindings: Bindings | None = None) -> list[dict]:
        """Run ``sql`` and return every row as a dict keyed by column label.

        Args:
            sql: Statement text with ``:name`` or ``:1`` style placeholders.
            bindings: Mapping for named placeholders, or a sequence for
                ordinal ones.

        Returns:
            List of rows.  Empty when the query matches nothing.

        Raises:
            PreparationError: The statement could not be compiled or bound,
                or the engine rejected it as malformed.
            ExecutionError: The engine failed while running the statement.
        """
        logger.debug("query: %s bindings=%r", sql, bindings)

        try:
            statement = text(sql).bindparams(*build_parameters(bindings))
        except (ArgumentError, TypeError, ValueError) as e:
            raise PreparationError(sql, str(e)) from e

        try:
            result = self._connection.execute(statement)
            return [dict(row._mapping) for row in result]
        except ProgrammingError as e:
            raise PreparationError(sql, str(e.orig)) from e
        except DBAPIError as e:
            raise ExecutionError(sql, str(e.orig)) from e
        except SQLAlchemyError as e:
            raise PreparationError(sql, str(e)) from e
