"""SQLite driver.

SQLite stores the declared type of every column verbatim, so this driver
renders descriptive type names (``MEDIUMINT``, ``NVARCHAR(80)``, ``LONGTEXT``)
and parses them back on introspection.  Collations and comments are not
rendered.

Foreign keys can only be declared in CREATE TABLE, and ALTER TABLE accepts a
single change per statement.  Changing an existing column or foreign key
rebuilds the table: create ``new_<table>``, copy the rows, drop the old
table, rename, then recreate its indexes.

ENUM and SET columns are declared TEXT with a CHECK clause holding their
members, which is read back from the table's CREATE statement.  Spatial
columns keep their SRID as the type size, e.g. ``POINT(4326)``.

Introspection uses ``sqlite_master`` and the ``pragma_*`` table-valued
functions (SQLite 3.16+).
"""

import logging
import re
from typing import Any

from db_diff.drivers.base import VALUE_LIST_KINDS, Driver, parse_number, parse_value_check
from db_diff.exceptions import SchemaMappingError
from db_diff.expression import Expression
from db_diff.schema import builder as s
from db_diff.schema.columns import Column, DefaultValue
from db_diff.schema.keys import ForeignKey, Index, PrimaryKey, ReferentialAction, UniqueIndex
from db_diff.schema.models import Table, TableComparison

logger = logging.getLogger(__name__)

INTEGER_TYPES = {
    8: "TINYINT",
    16: "SMALLINT",
    24: "MEDIUMINT",
    32: "INTEGER",
    64: "BIGINT",
}

TEXT_TYPES = {
    1: "TINYTEXT",
    2: "TEXT",
    3: "MEDIUMTEXT",
    4: "LONGTEXT",
}

BLOB_TYPES = {
    1: "TINYBLOB",
    2: "BLOB",
    3: "MEDIUMBLOB",
    4: "LONGBLOB",
}

INTEGER_BITS = {name: bits for bits, name in INTEGER_TYPES.items()} | {"INT": 32}
TEXT_TIERS = {name: tier for tier, name in TEXT_TYPES.items()}
BLOB_TIERS = {name: tier for tier, name in BLOB_TYPES.items()}

GEOMETRY_TYPES = {
    "GEOMETRY",
    "POINT",
    "LINESTRING",
    "POLYGON",
    "MULTIPOINT",
    "MULTILINESTRING",
    "MULTIPOLYGON",
    "GEOMETRYCOLLECTION",
}

NUMERIC_KINDS = {"integer", "float", "decimal", "year"}

# NAME, NAME(n), NAME(p, s), optionally UNSIGNED
DECLARED_TYPE = re.compile(
    r"(?P<name>[A-Z]+(?: [A-Z]+)*?)\s*(?:\(\s*(?P<size>\d+)\s*(?:,\s*(?P<scale>\d+)\s*)?\))?(?P<unsigned> UNSIGNED)?"
)

STRING_LITERAL = re.compile(r"'((?:[^']|'')*)'")


class SQLiteDriver(Driver):
    """Driver for SQLite 3.35+ (DROP COLUMN support)."""

    INLINE_FOREIGN_KEYS = True

    def index_identifier(self, name: str) -> Expression:
        return self.quote_identifier(self.prefix + name)

    # ------------------------------------------------------------------
    # Catalog listing
    # ------------------------------------------------------------------

    def list_tables(self) -> list[str]:
        rows = self.query(
            "SELECT name FROM sqlite_master"
            " WHERE type = 'table' AND name NOT LIKE 'sqlite\\_%' ESCAPE '\\'"
            " ORDER BY name"
        )
        return [
            row["name"][len(self.prefix):]
            for row in rows
            if row["name"].startswith(self.prefix)
        ]

    def list_columns(self, table: str) -> list[str]:
        rows = self.query(
            "SELECT name FROM pragma_table_info(:table_name) ORDER BY cid",
            {"table_name": self.prefix + table},
        )
        return [row["name"] for row in rows]

    def list_primary_keys(self, table: str) -> list[str]:
        rows = self.query(
            "SELECT COUNT(*) AS key_columns FROM pragma_table_info(:table_name) WHERE pk > 0",
            {"table_name": self.prefix + table},
        )
        # SQLite primary keys have no name of their own.
        return ["PRIMARY"] if rows and rows[0]["key_columns"] else []

    def _list_index_names(self, table: str, unique: bool) -> list[str]:
        rows = self.query(
            "SELECT name FROM pragma_index_list(:table_name)"
            " WHERE origin <> 'pk' AND \"unique\" = :is_unique"
            " ORDER BY name",
            {"table_name": self.prefix + table, "is_unique": 1 if unique else 0},
        )
        return [row["name"] for row in rows]

    def list_unique_indexes(self, table: str) -> list[str]:
        return self._list_index_names(table, unique=True)

    def list_indexes(self, table: str) -> list[str]:
        return self._list_index_names(table, unique=False)

    def list_foreign_keys(self, table: str) -> list[str]:
        rows = self.query(
            "SELECT DISTINCT id FROM pragma_foreign_key_list(:table_name) ORDER BY id",
            {"table_name": self.prefix + table},
        )
        return [str(row["id"]) for row in rows]

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def _table_sql(self, table: str) -> str:
        rows = self.query(
            "SELECT sql FROM sqlite_master WHERE type = 'table' AND name = :table_name",
            {"table_name": self.prefix + table},
        )
        return (rows[0]["sql"] or "") if rows else ""

    def _column_check(self, table: str, column: str) -> str:
        """The ``CHECK ("column" ...)`` clause of ``table``, or an empty string."""
        table_sql = self._table_sql(table)
        start = table_sql.find(f"CHECK ({self.quote_identifier(column)} ")
        if start < 0:
            return ""

        depth = 0
        quoted = False
        for position in range(start, len(table_sql)):
            char = table_sql[position]
            if char == "'":
                quoted = not quoted
            elif quoted:
                continue
            elif char == "(":
                depth += 1
            elif char == ")":
                depth -= 1
                if depth == 0:
                    return table_sql[start:position + 1]
        return ""

    def introspect_column(self, table: str, column: str) -> Column:
        rows = self.query(
            "SELECT name, type, \"notnull\" AS not_null, dflt_value, pk"
            " FROM pragma_table_info(:table_name)"
            " WHERE name = :column_name",
            {"table_name": self.prefix + table, "column_name": column},
        )
        if not rows:
            raise SchemaMappingError(table, column, "", "column not found")

        data = rows[0]
        result = self._column_from_declared_type(table, data["name"], data["type"] or "")

        if result.kind == "integer" and data["pk"] and "AUTOINCREMENT" in self._table_sql(table).upper():
            result = result.with_auto_increment()

        return (
            result.with_nullable(not data["not_null"])
            .with_default(self._parse_default(data["dflt_value"], result.kind))
        )

    def _column_from_declared_type(self, table: str, name: str, declared: str) -> Column:
        match = DECLARED_TYPE.fullmatch(declared.strip().upper())
        if match is None:
            raise SchemaMappingError(table, name, declared)

        type_name = match["name"]
        size = int(match["size"]) if match["size"] else None
        scale = int(match["scale"]) if match["scale"] else 0

        if type_name in INTEGER_BITS:
            return s.integer(name, INTEGER_BITS[type_name]).with_unsigned(bool(match["unsigned"]))
        if type_name == "BOOLEAN":
            return s.boolean(name)
        if type_name in ("CHAR", "VARCHAR", "NCHAR", "NVARCHAR") and size is not None:
            factory = getattr(s, type_name.lower())
            return factory(name, size)
        if type_name == "TEXT":
            parsed = parse_value_check(self._column_check(table, name))
            if parsed is not None:
                kind, members = parsed
                return s.enum(name, members) if kind == "enum" else s.set_(name, members)
        if type_name in TEXT_TIERS:
            return s.text(name, TEXT_TIERS[type_name])
        if type_name in BLOB_TIERS:
            return s.blob(name, BLOB_TIERS[type_name])
        if type_name in ("BINARY", "VARBINARY") and size is not None:
            return getattr(s, type_name.lower())(name, size)
        if type_name == "FLOAT":
            return s.float_(name)
        if type_name in ("DOUBLE", "REAL"):
            return s.double(name)
        if type_name == "DECIMAL" and size is not None:
            return s.decimal(name, size, scale)
        if type_name == "TIMESTAMP":
            return s.timestamp(name, size or 0)
        if type_name == "DATETIME":
            return s.datetime(name, size or 0)
        if type_name == "TIME":
            return s.time(name, size or 0)
        if type_name == "DATE":
            return s.date(name)
        if type_name == "YEAR":
            return s.year(name)
        if type_name == "UUID":
            return s.uuid(name)
        if type_name == "JSON":
            return s.json(name)
        if type_name in GEOMETRY_TYPES:
            return getattr(s, type_name.lower())(name, size or 0)

        raise SchemaMappingError(table, name, declared)

    def _parse_default(self, default: Any, kind: str) -> DefaultValue:
        if default is None:
            return None

        default = str(default)
        if default.upper() == "NULL":
            return None

        literal = STRING_LITERAL.fullmatch(default)
        if literal is not None:
            return literal.group(1).replace("''", "'")

        if kind == "boolean" and default.upper() in ("TRUE", "FALSE", "1", "0"):
            return default.upper() in ("TRUE", "1")

        if kind in NUMERIC_KINDS:
            number = parse_number(default)
            if number is not None:
                return number

        return Expression(default)

    def introspect_primary_key(self, table: str, key: str) -> PrimaryKey:
        rows = self.query(
            "SELECT name FROM pragma_table_info(:table_name) WHERE pk > 0 ORDER BY pk",
            {"table_name": self.prefix + table},
        )
        return s.primary_key([row["name"] for row in rows])

    def _index_columns(self, key: str) -> list[str]:
        rows = self.query(
            "SELECT name FROM pragma_index_info(:index_name) ORDER BY seqno",
            {"index_name": key},
        )
        return [row["name"] for row in rows]

    def introspect_unique_index(self, table: str, key: str) -> UniqueIndex:
        return s.unique_index(self._index_columns(key), self.strip_prefix(key))

    def introspect_index(self, table: str, key: str) -> Index:
        return s.index(self._index_columns(key), self.strip_prefix(key))

    def introspect_foreign_key(self, table: str, key: str) -> ForeignKey:
        rows = self.query(
            "SELECT \"from\" AS column_name, \"to\" AS foreign_column_name,"
            " \"table\" AS foreign_table_name, on_update, on_delete"
            " FROM pragma_foreign_key_list(:table_name)"
            " WHERE id = :key_id"
            " ORDER BY seq",
            {"table_name": self.prefix + table, "key_id": int(key)},
        )
        if not rows:
            raise SchemaMappingError(table, key, "FOREIGN KEY", "constraint not found")

        first = rows[0]
        return (
            s.foreign_key(
                [row["column_name"] for row in rows],
                self.strip_prefix(first["foreign_table_name"]),
                [row["foreign_column_name"] for row in rows],
            )
            .with_on_update(ReferentialAction(first["on_update"]))
            .with_on_delete(ReferentialAction(first["on_delete"]))
        )

    # ------------------------------------------------------------------
    # DDL rendering
    # ------------------------------------------------------------------

    def _type_sql(self, column: Column) -> str:
        kind = column.kind

        if kind == "integer":
            # Only a column declared exactly INTEGER PRIMARY KEY can autoincrement.
            if column.auto_increment:
                return "INTEGER PRIMARY KEY AUTOINCREMENT"
            return INTEGER_TYPES[column.bits] + (" UNSIGNED" if column.unsigned else "")
        if kind == "boolean":
            return "BOOLEAN"
        if kind == "character":
            keyword = ("N" if column.national else "") + ("VARCHAR" if column.varying else "CHAR")
            return f"{keyword}({column.length})"
        if kind == "text":
            return TEXT_TYPES[column.length]
        if kind == "binary":
            keyword = "VARBINARY" if column.varying else "BINARY"
            return f"{keyword}({column.length})"
        if kind == "blob":
            return BLOB_TYPES[column.length]
        if kind == "float":
            return "DOUBLE" if column.precision_bits > 23 else "FLOAT"
        if kind == "decimal":
            return f"DECIMAL({column.precision}, {column.scale})"
        if kind in ("timestamp", "datetime", "time"):
            keyword = kind.upper()
            return f"{keyword}({column.precision})" if column.precision else keyword
        if kind in ("date", "year", "uuid", "json"):
            return kind.upper()
        if kind == "geometry":
            keyword = column.geometry_type.upper()
            return f"{keyword}({column.srid})" if column.srid else keyword
        if kind in VALUE_LIST_KINDS:
            # SET is a keyword in SQLite's grammar.
            return "TEXT"

        raise NotImplementedError(f"{type(self).__name__} cannot render {kind} columns")

    def column_sql(self, column: Column) -> str:
        sql = f"{self.quote_identifier(column.name)} {self._type_sql(column)} {self.nullable_sql(column)}"
        if column.default is not None:
            sql += f" DEFAULT {self.default_sql(column)}"
        if column.kind in VALUE_LIST_KINDS:
            sql += f" {self.value_check_sql(column)}"
        return sql

    def _index_name(self, table: Table, key: UniqueIndex | Index, suffix: str) -> str:
        return key.name or f"{table.name}_{'_'.join(key.columns)}_{suffix}"

    def generate_table_sql(self, table: Table) -> list[str]:
        components = [self.column_sql(column) for column in table.columns]

        # An AUTOINCREMENT column already is the primary key.
        has_rowid_key = any(
            column.kind == "integer" and column.auto_increment for column in table.columns
        )
        if not has_rowid_key:
            components += [
                f"PRIMARY KEY ({self.column_list_sql(key.columns)})" for key in table.primary_keys
            ]
        components += [self.foreign_key_clause(key) for key in table.foreign_keys]

        statements = [f"CREATE TABLE {self.table_identifier(table.name)} ({', '.join(components)})"]
        statements += [
            f"CREATE UNIQUE INDEX {self.index_identifier(self._index_name(table, key, 'key'))}"
            f" ON {self.table_identifier(table.name)} ({self.column_list_sql(key.columns)})"
            for key in table.unique_indexes
        ]
        statements += [
            f"CREATE INDEX {self.index_identifier(self._index_name(table, key, 'idx'))}"
            f" ON {self.table_identifier(table.name)} ({self.column_list_sql(key.columns)})"
            for key in table.indexes
        ]
        return statements

    def alter_table_sql(self, table: str, changes: list[str]) -> list[str]:
        """SQLite takes one change per ALTER TABLE."""
        return [f"ALTER TABLE {self.table_identifier(table)} {change}" for change in changes]

    def add_column_sql(self, column: Column) -> str:
        return f"ADD COLUMN {self.column_sql(column)}"

    def drop_column_sql(self, name: str) -> str:
        return f"DROP COLUMN {self.quote_identifier(name)}"

    def alter_column_sql(self, name: str, column: Column) -> str:
        """Not expressible as a fragment; ``change_table_sql`` rebuilds instead."""
        raise NotImplementedError("SQLite cannot alter an existing column in place")

    def add_foreign_key_sql(self, table: str, foreign_key: ForeignKey) -> str:
        """Not expressible on its own; ``change_table_sql`` rebuilds instead."""
        raise NotImplementedError("SQLite cannot add a foreign key to an existing table in place")

    def drop_foreign_key_sql(self, table: str, foreign_key: ForeignKey) -> str:
        """Not expressible on its own; ``change_table_sql`` rebuilds instead."""
        raise NotImplementedError("SQLite cannot drop a foreign key from an existing table in place")

    def change_table_sql(
        self,
        source: Table,
        target: Table,
        comparison: TableComparison,
        altered_columns: list[str],
    ) -> list[str]:
        if altered_columns or comparison.drop_foreign_keys or comparison.add_foreign_keys:
            return self.rebuild_table_sql(target, comparison)
        return super().change_table_sql(source, target, comparison, altered_columns)

    def rebuild_table_sql(self, target: Table, comparison: TableComparison) -> list[str]:
        """Recreate a table as ``target``, keeping the rows of its common columns.

        Follows SQLite's documented procedure for schema changes ALTER TABLE
        cannot make.  Foreign key enforcement must be off while the statements
        run (SQLite's default), or dropping the old table cascades.

        Returns:
            CREATE TABLE new_<table>, INSERT ... SELECT, DROP TABLE, ALTER
            TABLE ... RENAME TO, then the target's CREATE INDEX statements.
        """
        logger.info("Rebuilding table %s%s to apply changes ALTER TABLE cannot make", self.prefix, target.name)

        staging = target.model_copy(update={"name": f"new_{target.name}"})
        old_table = self.table_identifier(target.name)
        new_table = self.table_identifier(staging.name)

        statements = self.generate_table_sql(staging)[:1]
        if comparison.common_columns:
            columns = self.column_list_sql(tuple(comparison.common_columns))
            statements.append(f"INSERT INTO {new_table} ({columns}) SELECT {columns} FROM {old_table}")
        statements += [
            f"DROP TABLE {old_table}",
            f"ALTER TABLE {new_table} RENAME TO {old_table}",
        ]
        statements += self.generate_table_sql(target)[1:]
        return statements
