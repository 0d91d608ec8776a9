"""db-diff: cross-engine schema introspection and migration diffs.

Declare the schema an application needs, point it at a live MySQL, MariaDB,
PostgreSQL or SQLite database, and get back the DDL that closes the gap.

Usage:
    from sqlalchemy import create_engine
    from db_diff import Connection
    from db_diff.schema import builder as s

    target = s.schema([
        s.table("user", [
            s.integer("user_id").with_auto_increment(),
            s.nvarchar("user_name", 32),
            s.primary_key("user_id"),
        ]),
    ])

    with create_engine("sqlite://").connect() as conn:
        statements = Connection(conn).diff_schema(target)
"""

from db_diff.connection import Connection
from db_diff.exceptions import (
    ConfigurationError,
    DbDiffError,
    ExecutionError,
    PreparationError,
    SchemaMappingError,
    StatementError,
)
from db_diff.expression import Expression
from db_diff.schema import Schema, Table, builder, compare_schemas

__version__ = "0.1.0"

__all__ = [
    "Connection",
    "ConfigurationError",
    "DbDiffError",
    "ExecutionError",
    "Expression",
    "PreparationError",
    "Schema",
    "SchemaMappingError",
    "StatementError",
    "Table",
    "builder",
    "compare_schemas",
    "__version__",
]
