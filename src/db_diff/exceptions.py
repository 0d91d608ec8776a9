"""Error taxonomy for db-diff.

- ``ConfigurationError``: no driver for the engine, unknown profile.
- ``SchemaMappingError``: a catalog type the active driver cannot map.
- ``StatementError``: an introspection query failed; carries the SQL text.
  Split into ``PreparationError`` and ``ExecutionError``.

Model-construction problems (bad size tier, mismatched foreign key columns,
a second primary key) surface as pydantic ``ValidationError``.
"""


class DbDiffError(Exception):
    """Base class for all db-diff errors."""


class ConfigurationError(DbDiffError):
    """Raised when the environment cannot be turned into a working driver."""


class SchemaMappingError(DbDiffError):
    """Raised when a catalog entry has no representation in the schema model.

    Example:
        >>> str(SchemaMappingError("users", "shape", "polygon"))
        "Cannot map type 'polygon' of column users.shape"
    """

    def __init__(self, table: str, column: str, type_name: str, detail: str = "") -> None:
        self.table = table
        self.column = column
        self.type_name = type_name
        message = f"Cannot map type '{type_name}' of column {table}.{column}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class StatementError(DbDiffError):
    """A SQL statement failed.  ``sql`` holds the offending statement."""

    action = "run"

    def __init__(self, sql: str, reason: str = "") -> None:
        self.sql = sql
        message = f"Failed to {self.action} statement: {sql}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class PreparationError(StatementError):
    """The statement could not be compiled or bound."""

    action = "prepare"


class ExecutionError(StatementError):
    """The statement was prepared but failed while executing."""

    action = "execute"
