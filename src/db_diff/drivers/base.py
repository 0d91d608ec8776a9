"""Driver contract shared by every database engine.

A driver does two jobs for one engine:

- Introspection: read the catalog and rebuild ``Table`` / ``Schema`` values.
- DDL rendering: turn model values back into engine-specific SQL.

Engines share nothing beyond this contract.  Type lookups live as plain
dicts in each driver module, never in a common parent.

All ``list_*`` and ``introspect_*`` methods take logical (un-prefixed)
table names.  The driver adds ``prefix`` for every catalog lookup and every
generated statement, and strips it from everything it reads back.
"""

import logging
import re
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any

from sqlalchemy import String
from sqlalchemy.engine import Connection

from db_diff.expression import Expression
from db_diff.runner import Bindings, StatementRunner
from db_diff.schema.columns import Column, DefaultValue
from db_diff.schema.keys import ForeignKey, Index, PrimaryKey, UniqueIndex
from db_diff.schema.models import Component, Schema, Table, TableComparison

logger = logging.getLogger(__name__)

VALUE_LIST_PATTERN = re.compile(r"'((?:[^']|'')*)'")

# col = 'a'::text, with literals already blanked out
SINGLE_MEMBER_CHECK = re.compile(r"^check \(+[\w\"]+ = ''(?:::[\w ]+)?\)+$")

# ENUM and SET are emulated with a CHECK clause where the engine lacks them.
VALUE_LIST_KINDS = ("enum", "set")


def parse_value_list(column_type: str) -> list[str]:
    """Extract the quoted members of an ENUM(...) or SET(...) type string.

    Example:
        >>> parse_value_list("enum('a','it''s','c')")
        ['a', "it's", 'c']
    """
    return [match.replace("''", "'") for match in VALUE_LIST_PATTERN.findall(column_type)]


def version_tuple(version: str) -> tuple[int, ...]:
    """``"10.6.12"`` -> ``(10, 6, 12)``.  Non-numeric parts are dropped."""
    parts: list[int] = []
    for part in version.split("."):
        digits = re.match(r"\d+", part)
        if digits is None:
            break
        parts.append(int(digits.group()))
    return tuple(parts)


def parse_number(text: str) -> int | float | None:
    """``"-1"`` -> ``-1``, ``"0.00"`` -> ``0.0``, anything else -> None."""
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return None


def parse_value_check(definition: str) -> tuple[str, list[str]] | None:
    """Recover ENUM / SET members from a CHECK written by ``value_check_sql``.

    Accepts the clause as rendered and PostgreSQL's normalized form, where
    ``IN (...)`` reads back as ``= ANY (ARRAY[...])`` and every literal
    carries a ``::text`` cast.

    Returns:
        ``("enum", members)``, ``("set", members)``, or None when the clause
        is some other check.

    Example:
        >>> parse_value_check("CHECK ((kind = ANY (ARRAY['a'::text, 'b'::text])))")
        ('enum', ['a', 'b'])
    """
    literals = [match.replace("''", "'") for match in VALUE_LIST_PATTERN.findall(definition)]
    if not literals:
        return None

    structure = VALUE_LIST_PATTERN.sub("''", definition).lower()
    if "replace(" in structure:
        members = [
            literal[1:-1]
            for literal in literals
            if len(literal) > 2 and literal[0] == literal[-1] == ","
        ]
        return ("set", members) if members else None
    if " in (" in structure or "any (array[" in structure:
        return "enum", literals
    # PostgreSQL folds a one-member IN list into a plain equality.
    if len(literals) == 1 and SINGLE_MEMBER_CHECK.search(structure):
        return "enum", literals
    return None


class Driver(ABC):
    """Engine-specific introspection and DDL generation.

    Args:
        connection: Live SQLAlchemy connection.  Only its dialect is used
            until a query runs.
        prefix: Prefix carried by every table this driver manages.
    """

    IDENTIFIER_OPEN_QUOTE = '"'
    IDENTIFIER_CLOSE_QUOTE = '"'

    # True when foreign keys can only be declared inside CREATE TABLE.
    INLINE_FOREIGN_KEYS = False

    TRUE_LITERAL = "TRUE"
    FALSE_LITERAL = "FALSE"

    def __init__(self, connection: Connection, prefix: str = "") -> None:
        self._connection = connection
        self._runner = StatementRunner(connection)
        self.prefix = prefix
        info = connection.dialect.server_version_info or ()
        self.server_version: str = ".".join(str(part) for part in info)

    @property
    def dialect(self) -> Any:
        return self._connection.dialect

    def server_version_at_least(self, *minimum: int) -> bool:
        return version_tuple(self.server_version) >= minimum

    # ------------------------------------------------------------------
    # Catalog listing
    # ------------------------------------------------------------------

    @abstractmethod
    def list_tables(self) -> list[str]:
        """Base tables carrying the prefix, prefix stripped, in name order."""

    @abstractmethod
    def list_columns(self, table: str) -> list[str]:
        """Column names in ordinal order."""

    @abstractmethod
    def list_primary_keys(self, table: str) -> list[str]:
        ...

    @abstractmethod
    def list_unique_indexes(self, table: str) -> list[str]:
        ...

    @abstractmethod
    def list_indexes(self, table: str) -> list[str]:
        """Non-unique indexes that do not back a constraint."""

    @abstractmethod
    def list_foreign_keys(self, table: str) -> list[str]:
        ...

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @abstractmethod
    def introspect_column(self, table: str, column: str) -> Column:
        """Rebuild one column.

        Raises:
            SchemaMappingError: The catalog type has no model equivalent.
        """

    @abstractmethod
    def introspect_primary_key(self, table: str, key: str) -> PrimaryKey:
        ...

    @abstractmethod
    def introspect_unique_index(self, table: str, key: str) -> UniqueIndex:
        ...

    @abstractmethod
    def introspect_index(self, table: str, key: str) -> Index:
        ...

    @abstractmethod
    def introspect_foreign_key(self, table: str, key: str) -> ForeignKey:
        ...

    def introspect_table(self, table: str) -> Table:
        """Rebuild a table: columns first, then keys by kind."""
        components: list[Component] = [
            self.introspect_column(table, column) for column in self.list_columns(table)
        ]
        components += [self.introspect_primary_key(table, key) for key in self.list_primary_keys(table)]
        components += [self.introspect_unique_index(table, key) for key in self.list_unique_indexes(table)]
        components += [self.introspect_index(table, key) for key in self.list_indexes(table)]
        components += [self.introspect_foreign_key(table, key) for key in self.list_foreign_keys(table)]
        return Table.from_components(table, components)

    def introspect_schema(self) -> Schema:
        tables = self.list_tables()
        logger.debug("Introspecting %d tables with prefix %r", len(tables), self.prefix)
        return Schema.from_tables(self.introspect_table(table) for table in tables)

    # ------------------------------------------------------------------
    # DDL rendering
    # ------------------------------------------------------------------

    @abstractmethod
    def column_sql(self, column: Column) -> str:
        """Full column definition: quoted name, type and attributes."""

    @abstractmethod
    def generate_table_sql(self, table: Table) -> list[str]:
        """Statements that create ``table`` from nothing."""

    @abstractmethod
    def add_column_sql(self, column: Column) -> str:
        ...

    @abstractmethod
    def drop_column_sql(self, name: str) -> str:
        ...

    @abstractmethod
    def alter_column_sql(self, name: str, column: Column) -> str:
        """Fragment that turns existing column ``name`` into ``column``."""

    @abstractmethod
    def add_foreign_key_sql(self, table: str, foreign_key: ForeignKey) -> str:
        ...

    @abstractmethod
    def drop_foreign_key_sql(self, table: str, foreign_key: ForeignKey) -> str:
        ...

    def quote_value(self, value: str) -> Expression:
        """Quote a string for DDL positions that cannot take a placeholder.

        The dialect's own literal rendering does the escaping, so server
        settings such as MySQL's NO_BACKSLASH_ESCAPES or PostgreSQL's
        standard_conforming_strings are honoured.
        """
        compiler = self.dialect.statement_compiler(self.dialect, None)
        literal = compiler.render_literal_value(value, String())
        if self.dialect.paramstyle in ("format", "pyformat"):
            # Compiled literals are DBAPI-ready with '%' doubled; DDL here is plain SQL.
            literal = literal.replace("%%", "%")
        return Expression(literal)

    def quote_identifier(self, identifier: str) -> Expression:
        close = self.IDENTIFIER_CLOSE_QUOTE
        escaped = identifier.replace(close, close + close)
        return Expression(f"{self.IDENTIFIER_OPEN_QUOTE}{escaped}{close}")

    def table_identifier(self, table: str) -> Expression:
        """Quoted, prefixed table name."""
        return self.quote_identifier(self.prefix + table)

    def column_list_sql(self, columns: tuple[str, ...]) -> str:
        return ", ".join(str(self.quote_identifier(column)) for column in columns)

    def alter_table_sql(self, table: str, changes: list[str]) -> list[str]:
        """Wrap column fragments in ALTER TABLE statements."""
        return [f"ALTER TABLE {self.table_identifier(table)} {', '.join(changes)}"]

    def column_changed(self, source: Column, target: Column) -> bool:
        """True when the live column ``source`` must be altered into ``target``."""
        return self.column_sql(source) != self.column_sql(target)

    def change_table_sql(
        self,
        source: Table,
        target: Table,
        comparison: TableComparison,
        altered_columns: list[str],
    ) -> list[str]:
        """Statements that turn existing table ``source`` into ``target``.

        Column fragments are ordered drop, alter, add.  Foreign keys are
        handled separately unless the engine declares them inline.

        Args:
            source: Live table.
            target: Declared table.
            comparison: Result of comparing the two.
            altered_columns: Common columns that need an alter fragment.
        """
        changes = [self.drop_column_sql(name) for name in comparison.drop_columns]
        changes += [
            self.alter_column_sql(name, target.get_column(name)) for name in altered_columns
        ]
        changes += [self.add_column_sql(target.get_column(name)) for name in comparison.add_columns]
        return self.alter_table_sql(target.name, changes) if changes else []

    def default_sql(self, column: Column) -> str:
        """Render the DEFAULT value of ``column``.

        Strings are quoted and expressions kept verbatim.  Numbers on a
        DECIMAL column are written to the column's scale, so ``0`` and the
        catalog's ``0.00`` render alike.
        """
        value: DefaultValue = column.default
        if isinstance(value, Expression):
            return str(value)
        if isinstance(value, bool):
            return self.TRUE_LITERAL if value else self.FALSE_LITERAL
        if isinstance(value, (int, float)):
            if column.kind == "decimal":
                return str(Decimal(str(value)).quantize(Decimal(1).scaleb(-column.scale)))
            return str(value)
        return str(self.quote_value(str(value)))

    def value_check_sql(self, column: Column) -> str:
        """CHECK clause standing in for a native ENUM or SET type."""
        name = self.quote_identifier(column.name)
        if column.kind == "enum":
            members = ", ".join(str(self.quote_value(value)) for value in column.values)
            return f"CHECK ({name} IN ({members}))"

        # Doubled commas keep members apart, so stripping every ",member," of a
        # valid list leaves nothing.
        remainder = f"',' || replace({name}, ',', ',,') || ','"
        for value in column.values:
            remainder = f"replace({remainder}, {self.quote_value(f',{value},')}, '')"
        return f"CHECK ({name} = '' OR {remainder} = '')"

    def nullable_sql(self, column: Column) -> str:
        return "NULL" if column.nullable else "NOT NULL"

    def foreign_key_clause(self, foreign_key: ForeignKey) -> str:
        """``[CONSTRAINT name] FOREIGN KEY (...) REFERENCES ... ON ...``"""
        clause = (
            f"FOREIGN KEY ({self.column_list_sql(foreign_key.columns)})"
            f" REFERENCES {self.table_identifier(foreign_key.foreign_table)}"
            f" ({self.column_list_sql(foreign_key.foreign_columns)})"
            f" ON DELETE {foreign_key.on_delete.value}"
            f" ON UPDATE {foreign_key.on_update.value}"
        )
        if foreign_key.name:
            clause = f"CONSTRAINT {self.quote_identifier(foreign_key.name)} {clause}"
        return clause

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def query(self, sql: str, bindings: Bindings | None = None) -> list[dict]:
        return self._runner.query(sql, bindings)

    def strip_prefix(self, name: str) -> str:
        """Logical name of a prefixed catalog object."""
        if self.prefix and name.startswith(self.prefix):
            return name[len(self.prefix):]
        return name
