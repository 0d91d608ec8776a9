"""PostgreSQL driver.

Introspection reads information_schema and pg_catalog for the tables in
``current_schema()``.  Comments and indexes are separate statements after
CREATE TABLE; foreign keys and column changes use ALTER TABLE.

Types PostgreSQL lacks are emulated and read back from their CHECK clause:

- ENUM and SET: ``TEXT`` constrained to the member list
- YEAR: ``SMALLINT`` constrained to 1901..2155

Spatial columns use the PostGIS ``geometry(Type,srid)`` type.
"""

import re
from typing import Any

from db_diff.drivers.base import VALUE_LIST_KINDS, Driver, parse_number, parse_value_check
from db_diff.exceptions import SchemaMappingError
from db_diff.expression import Expression
from db_diff.schema import builder as s
from db_diff.schema.columns import Column, DefaultValue
from db_diff.schema.keys import ForeignKey, Index, PrimaryKey, ReferentialAction, UniqueIndex
from db_diff.schema.models import Table, TableComparison

INTEGER_TYPES = {
    8: "SMALLINT",
    16: "SMALLINT",
    24: "INTEGER",
    32: "INTEGER",
    64: "BIGINT",
}

SERIAL_TYPES = {
    "SMALLINT": "SMALLSERIAL",
    "INTEGER": "SERIAL",
    "BIGINT": "BIGSERIAL",
}

INTEGER_BITS = {
    "smallint": 16,
    "integer": 32,
    "bigint": 64,
}

# pg_constraint.confupdtype / confdeltype
REFERENTIAL_ACTIONS = {
    "a": ReferentialAction.NO_ACTION,
    "r": ReferentialAction.RESTRICT,
    "c": ReferentialAction.CASCADE,
    "n": ReferentialAction.SET_NULL,
    "d": ReferentialAction.SET_DEFAULT,
}

NUMERIC_KINDS = {"integer", "float", "decimal", "year"}

POSTGIS_TYPES = {
    "geometry": "Geometry",
    "point": "Point",
    "linestring": "LineString",
    "polygon": "Polygon",
    "multipoint": "MultiPoint",
    "multilinestring": "MultiLineString",
    "multipolygon": "MultiPolygon",
    "geometrycollection": "GeometryCollection",
}

# format_type() of a PostGIS column: geometry, geometry(Point), geometry(Point,4326)
GEOMETRY_TYPE = re.compile(r"geometry(?:\((\w+)(?:,\s*(\d+))?\))?", re.IGNORECASE)

YEAR_RANGE = (1901, 2155)
YEAR_CHECK = re.compile(r"\b1901\b.*\b2155\b")

# 'value'::character varying
CAST_LITERAL = re.compile(r"'((?:[^']|'')*)'(?:::[\w\s\".\[\]]+)?")


class PostgreSQLDriver(Driver):
    """Driver for PostgreSQL 9.6+.  Identity columns need 10 or later."""

    @property
    def supports_identity(self) -> bool:
        # An unknown version (offline dialect) is treated as current.
        return not self.server_version or self.server_version_at_least(10)

    def index_identifier(self, name: str) -> Expression:
        """Index names share the schema namespace, so they carry the prefix too."""
        return self.quote_identifier(self.prefix + name)

    # ------------------------------------------------------------------
    # Catalog listing
    # ------------------------------------------------------------------

    def list_tables(self) -> list[str]:
        rows = self.query(
            "SELECT table_name"
            " FROM information_schema.tables"
            " WHERE table_schema = current_schema()"
            "   AND table_type = 'BASE TABLE'"
            " ORDER BY table_name"
        )
        return [
            row["table_name"][len(self.prefix):]
            for row in rows
            if row["table_name"].startswith(self.prefix)
        ]

    def list_columns(self, table: str) -> list[str]:
        rows = self.query(
            "SELECT column_name"
            " FROM information_schema.columns"
            " WHERE table_schema = current_schema()"
            "   AND table_name = :table_name"
            " ORDER BY ordinal_position",
            {"table_name": self.prefix + table},
        )
        return [row["column_name"] for row in rows]

    def _list_constraints(self, table: str, constraint_type: str) -> list[str]:
        rows = self.query(
            "SELECT constraint_name"
            " FROM information_schema.table_constraints"
            " WHERE table_schema = current_schema()"
            "   AND table_name = :table_name"
            "   AND constraint_type = :constraint_type"
            " ORDER BY constraint_name",
            {"table_name": self.prefix + table, "constraint_type": constraint_type},
        )
        return [row["constraint_name"] for row in rows]

    def _list_index_names(self, table: str, unique: bool) -> list[str]:
        rows = self.query(
            "SELECT i.relname AS index_name"
            " FROM pg_index ix"
            " JOIN pg_class t ON t.oid = ix.indrelid"
            " JOIN pg_class i ON i.oid = ix.indexrelid"
            " JOIN pg_namespace n ON n.oid = t.relnamespace"
            " WHERE n.nspname = current_schema()"
            "   AND t.relname = :table_name"
            "   AND NOT ix.indisprimary"
            "   AND ix.indisunique = :is_unique"
            " ORDER BY i.relname",
            {"table_name": self.prefix + table, "is_unique": unique},
        )
        return [row["index_name"] for row in rows]

    def list_primary_keys(self, table: str) -> list[str]:
        return self._list_constraints(table, "PRIMARY KEY")

    def list_unique_indexes(self, table: str) -> list[str]:
        return self._list_index_names(table, unique=True)

    def list_indexes(self, table: str) -> list[str]:
        return self._list_index_names(table, unique=False)

    def list_foreign_keys(self, table: str) -> list[str]:
        return self._list_constraints(table, "FOREIGN KEY")

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def introspect_column(self, table: str, column: str) -> Column:
        rows = self.query(
            "SELECT c.column_name, c.data_type, c.is_nullable, c.column_default,"
            "       c.character_maximum_length, c.numeric_precision, c.numeric_scale,"
            "       c.datetime_precision, c.collation_name, c.is_identity, c.udt_name,"
            "       pg_catalog.format_type(a.atttypid, a.atttypmod) AS formatted_type,"
            "       pg_catalog.col_description(a.attrelid, a.attnum) AS column_comment"
            " FROM information_schema.columns c"
            " JOIN pg_catalog.pg_attribute a"
            "   ON a.attrelid = (quote_ident(c.table_schema) || '.' || quote_ident(c.table_name))::regclass"
            "  AND a.attname = c.column_name"
            " WHERE c.table_schema = current_schema()"
            "   AND c.table_name = :table_name"
            "   AND c.column_name = :column_name",
            {"table_name": self.prefix + table, "column_name": column},
        )
        if not rows:
            raise SchemaMappingError(table, column, "", "column not found")

        data = rows[0]
        result = self._column_from_catalog(table, data)
        if data["data_type"] in ("text", "smallint"):
            result = self._checked_column(table, result)
        default = data["column_default"]

        if result.kind == "integer":
            is_serial = default is not None and str(default).startswith("nextval(")
            if data.get("is_identity") == "YES" or is_serial:
                result = result.with_auto_increment()
                default = None

        return (
            result.with_nullable(data["is_nullable"] == "YES")
            .with_default(self._parse_default(default, result.kind))
            .with_comment(data.get("column_comment") or "")
        )

    def _column_from_catalog(self, table: str, data: dict[str, Any]) -> Column:
        name = data["column_name"]
        data_type = data["data_type"]
        length = data.get("character_maximum_length")
        precision = data.get("datetime_precision")

        if data_type in INTEGER_BITS:
            return s.integer(name, INTEGER_BITS[data_type])
        if data_type == "boolean":
            return s.boolean(name)
        if data_type in ("character varying", "character"):
            if length is None:
                raise SchemaMappingError(table, name, data_type, "no length")
            factory = s.varchar if data_type == "character varying" else s.char
            return factory(name, int(length)).with_collation(data.get("collation_name"))
        if data_type == "text":
            return s.text(name).with_collation(data.get("collation_name"))
        if data_type == "bytea":
            return s.blob(name)
        if data_type == "real":
            return s.float_(name)
        if data_type == "double precision":
            return s.double(name)
        if data_type == "numeric":
            if data.get("numeric_precision") is None:
                raise SchemaMappingError(table, name, data_type, "no precision")
            return s.decimal(name, int(data["numeric_precision"]), int(data.get("numeric_scale") or 0))
        if data_type == "timestamp without time zone":
            return s.timestamp(name, int(precision or 0))
        if data_type == "time without time zone":
            return s.time(name, int(precision or 0))
        if data_type == "date":
            return s.date(name)
        if data_type == "uuid":
            return s.uuid(name)
        if data_type in ("json", "jsonb"):
            return s.json(name)
        if data_type == "USER-DEFINED" and data.get("udt_name") == "geometry":
            return self._geometry_column(table, name, data.get("formatted_type") or "geometry")

        raise SchemaMappingError(table, name, data_type)

    def _geometry_column(self, table: str, name: str, formatted_type: str) -> Column:
        match = GEOMETRY_TYPE.fullmatch(formatted_type)
        subtype = (match.group(1) or "geometry").lower() if match else None
        if subtype not in POSTGIS_TYPES:
            raise SchemaMappingError(table, name, formatted_type, "unsupported geometry subtype")
        return getattr(s, subtype)(name, int(match.group(2) or 0))

    def _column_checks(self, table: str, column: str) -> list[str]:
        """Definitions of the single-column CHECK constraints on ``column``."""
        rows = self.query(
            "SELECT pg_catalog.pg_get_constraintdef(con.oid) AS definition"
            " FROM pg_catalog.pg_constraint con"
            " JOIN pg_catalog.pg_class t ON t.oid = con.conrelid"
            " JOIN pg_catalog.pg_namespace n ON n.oid = t.relnamespace"
            " JOIN pg_catalog.pg_attribute a ON a.attrelid = t.oid AND a.attnum = con.conkey[1]"
            " WHERE n.nspname = current_schema()"
            "   AND t.relname = :table_name"
            "   AND a.attname = :column_name"
            "   AND con.contype = 'c'"
            "   AND cardinality(con.conkey) = 1"
            " ORDER BY con.conname",
            {"table_name": self.prefix + table, "column_name": column},
        )
        return [row["definition"] for row in rows]

    def _checked_column(self, table: str, column: Column) -> Column:
        """Turn a TEXT or SMALLINT column back into the ENUM, SET or YEAR it emulates."""
        for definition in self._column_checks(table, column.name):
            if column.kind == "integer":
                if YEAR_CHECK.search(definition):
                    return s.year(column.name)
                continue
            parsed = parse_value_check(definition)
            if parsed is None:
                continue
            kind, members = parsed
            if kind == "enum":
                return s.enum(column.name, members)
            return s.set_(column.name, members)
        return column

    def _parse_default(self, default: Any, kind: str) -> DefaultValue:
        if default is None:
            return None

        default = str(default)
        literal = CAST_LITERAL.fullmatch(default)
        if literal is not None:
            text = literal.group(1).replace("''", "'")
            # Negative numbers and booleans can come back quoted: '-1'::integer
            if kind in NUMERIC_KINDS:
                number = parse_number(text)
                if number is not None:
                    return number
            if kind == "boolean" and text.lower() in ("true", "false"):
                return text.lower() == "true"
            return text

        if kind == "boolean" and default.lower() in ("true", "false"):
            return default.lower() == "true"

        if kind in NUMERIC_KINDS:
            number = parse_number(default)
            if number is not None:
                return number

        return Expression(default)

    def _index_columns(self, table: str, key: str) -> list[str]:
        rows = self.query(
            "SELECT a.attname AS column_name"
            " FROM pg_index ix"
            " JOIN pg_class t ON t.oid = ix.indrelid"
            " JOIN pg_class i ON i.oid = ix.indexrelid"
            " JOIN pg_namespace n ON n.oid = t.relnamespace"
            " JOIN LATERAL unnest(ix.indkey) WITH ORDINALITY AS x(attnum, ordinality) ON TRUE"
            " JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = x.attnum"
            " WHERE n.nspname = current_schema()"
            "   AND t.relname = :table_name"
            "   AND i.relname = :key_name"
            " ORDER BY x.ordinality",
            {"table_name": self.prefix + table, "key_name": key},
        )
        return [row["column_name"] for row in rows]

    def introspect_primary_key(self, table: str, key: str) -> PrimaryKey:
        rows = self.query(
            "SELECT column_name"
            " FROM information_schema.key_column_usage"
            " WHERE table_schema = current_schema()"
            "   AND table_name = :table_name"
            "   AND constraint_name = :key_name"
            " ORDER BY ordinal_position",
            {"table_name": self.prefix + table, "key_name": key},
        )
        return s.primary_key([row["column_name"] for row in rows], key)

    def introspect_unique_index(self, table: str, key: str) -> UniqueIndex:
        return s.unique_index(self._index_columns(table, key), self.strip_prefix(key))

    def introspect_index(self, table: str, key: str) -> Index:
        return s.index(self._index_columns(table, key), self.strip_prefix(key))

    def introspect_foreign_key(self, table: str, key: str) -> ForeignKey:
        rows = self.query(
            "SELECT a.attname AS column_name,"
            "       fa.attname AS foreign_column_name,"
            "       ft.relname AS foreign_table_name,"
            "       c.confupdtype AS update_rule,"
            "       c.confdeltype AS delete_rule"
            " FROM pg_constraint c"
            " JOIN pg_class t ON t.oid = c.conrelid"
            " JOIN pg_namespace n ON n.oid = t.relnamespace"
            " JOIN pg_class ft ON ft.oid = c.confrelid"
            " JOIN LATERAL unnest(c.conkey, c.confkey) WITH ORDINALITY AS k(attnum, fattnum, ordinality) ON TRUE"
            " JOIN pg_attribute a ON a.attrelid = c.conrelid AND a.attnum = k.attnum"
            " JOIN pg_attribute fa ON fa.attrelid = c.confrelid AND fa.attnum = k.fattnum"
            " WHERE n.nspname = current_schema()"
            "   AND t.relname = :table_name"
            "   AND c.conname = :key_name"
            "   AND c.contype = 'f'"
            " ORDER BY k.ordinality",
            {"table_name": self.prefix + table, "key_name": key},
        )
        if not rows:
            raise SchemaMappingError(table, key, "FOREIGN KEY", "constraint not found")

        first = rows[0]
        return (
            s.foreign_key(
                [row["column_name"] for row in rows],
                self.strip_prefix(first["foreign_table_name"]),
                [row["foreign_column_name"] for row in rows],
                key,
            )
            .with_on_update(REFERENTIAL_ACTIONS[first["update_rule"]])
            .with_on_delete(REFERENTIAL_ACTIONS[first["delete_rule"]])
        )

    # ------------------------------------------------------------------
    # DDL rendering
    # ------------------------------------------------------------------

    def _type_sql(self, column: Column) -> str:
        kind = column.kind

        if kind == "integer":
            return INTEGER_TYPES[column.bits]
        if kind == "boolean":
            return "BOOLEAN"
        if kind == "character":
            keyword = "VARCHAR" if column.varying else "CHAR"
            return f"{keyword}({column.length})"
        if kind == "text":
            return "TEXT"
        if kind in ("binary", "blob"):
            return "BYTEA"
        if kind == "float":
            return "DOUBLE PRECISION" if column.precision_bits > 23 else "REAL"
        if kind == "decimal":
            return f"NUMERIC({column.precision}, {column.scale})"
        if kind in ("timestamp", "datetime"):
            return f"TIMESTAMP({column.precision})"
        if kind == "time":
            return f"TIME({column.precision})"
        if kind == "date":
            return "DATE"
        if kind == "uuid":
            return "UUID"
        if kind == "json":
            return "JSONB"
        if kind in VALUE_LIST_KINDS:
            return "TEXT"
        if kind == "year":
            return "SMALLINT"
        if kind == "geometry":
            subtype = POSTGIS_TYPES[column.geometry_type]
            if column.srid:
                return f"geometry({subtype},{column.srid})"
            return "geometry" if column.geometry_type == "geometry" else f"geometry({subtype})"

        raise NotImplementedError(f"{type(self).__name__} cannot render {kind} columns")

    def check_sql(self, column: Column) -> str:
        """CHECK clause emulating ENUM, SET or YEAR; empty for other kinds."""
        if column.kind in VALUE_LIST_KINDS:
            return self.value_check_sql(column)
        if column.kind == "year":
            low, high = YEAR_RANGE
            return f"CHECK ({self.quote_identifier(column.name)} BETWEEN {low} AND {high})"
        return ""

    def _collation_sql(self, column: Column) -> str:
        collation = getattr(column, "collation", None)
        return f" COLLATE {self.quote_identifier(collation)}" if collation else ""

    def column_sql(self, column: Column) -> str:
        type_sql = self._type_sql(column)
        identity = ""

        if column.kind == "integer" and column.auto_increment:
            if self.supports_identity:
                identity = " GENERATED BY DEFAULT AS IDENTITY"
            else:
                type_sql = SERIAL_TYPES[type_sql]

        sql = f"{self.quote_identifier(column.name)} {type_sql}{self._collation_sql(column)}"
        sql += f" {self.nullable_sql(column)}"
        if column.default is not None:
            sql += f" DEFAULT {self.default_sql(column)}"
        check = self.check_sql(column)
        if check:
            sql += f" {check}"
        return sql + identity

    def comment_sql(self, table: str, column: Column) -> str:
        return (
            f"COMMENT ON COLUMN {self.table_identifier(table)}.{self.quote_identifier(column.name)}"
            f" IS {self.quote_value(column.comment) if column.comment else 'NULL'}"
        )

    def _index_name(self, table: Table, key: UniqueIndex | Index, suffix: str) -> str:
        return key.name or f"{table.name}_{'_'.join(key.columns)}_{suffix}"

    def generate_table_sql(self, table: Table) -> list[str]:
        components = [self.column_sql(column) for column in table.columns]
        for key in table.primary_keys:
            clause = f"PRIMARY KEY ({self.column_list_sql(key.columns)})"
            if key.name:
                clause = f"CONSTRAINT {self.quote_identifier(key.name)} {clause}"
            components.append(clause)

        statements = [f"CREATE TABLE {self.table_identifier(table.name)} ({', '.join(components)})"]
        statements += [self.comment_sql(table.name, column) for column in table.columns if column.comment]
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

    def add_column_sql(self, column: Column) -> str:
        return f"ADD COLUMN {self.column_sql(column)}"

    def drop_column_sql(self, name: str) -> str:
        return f"DROP COLUMN {self.quote_identifier(name)}"

    def alter_column_sql(self, name: str, column: Column) -> str:
        target = self.quote_identifier(name)
        clauses = [
            f"ALTER COLUMN {target} TYPE {self._type_sql(column)}{self._collation_sql(column)}",
            f"ALTER COLUMN {target} {'DROP' if column.nullable else 'SET'} NOT NULL",
        ]
        # Identity columns reject SET/DROP DEFAULT.
        if not (column.kind == "integer" and column.auto_increment):
            if column.default is None:
                clauses.append(f"ALTER COLUMN {target} DROP DEFAULT")
            else:
                clauses.append(f"ALTER COLUMN {target} SET DEFAULT {self.default_sql(column)}")
        return ", ".join(clauses)

    def column_changed(self, source: Column, target: Column) -> bool:
        # Comments live outside the column definition here.
        return super().column_changed(source, target) or source.comment != target.comment

    def change_table_sql(
        self,
        source: Table,
        target: Table,
        comparison: TableComparison,
        altered_columns: list[str],
    ) -> list[str]:
        """ALTER TABLE plus the COMMENT ON COLUMN statements it cannot carry.

        An altered column's emulating CHECK is dropped under the name
        PostgreSQL gave it at creation and added back for the new type.
        """
        table = target.name
        changes = [self.drop_column_sql(name) for name in comparison.drop_columns]
        for name in altered_columns:
            constraint = self.quote_identifier(f"{self.prefix}{table}_{name}_check")
            if self.check_sql(source.get_column(name)):
                changes.append(f"DROP CONSTRAINT IF EXISTS {constraint}")
            column = target.get_column(name)
            changes.append(self.alter_column_sql(name, column))
            check = self.check_sql(column)
            if check:
                changes.append(f"ADD CONSTRAINT {constraint} {check}")
        changes += [self.add_column_sql(target.get_column(name)) for name in comparison.add_columns]

        statements = self.alter_table_sql(table, changes) if changes else []
        statements += [
            self.comment_sql(table, target.get_column(name))
            for name in comparison.add_columns
            if target.get_column(name).comment
        ]
        statements += [
            self.comment_sql(table, target.get_column(name))
            for name in altered_columns
            if source.get_column(name).comment != target.get_column(name).comment
        ]
        return statements

    def add_foreign_key_sql(self, table: str, foreign_key: ForeignKey) -> str:
        return f"ALTER TABLE {self.table_identifier(table)} ADD {self.foreign_key_clause(foreign_key)}"

    def drop_foreign_key_sql(self, table: str, foreign_key: ForeignKey) -> str:
        if not foreign_key.name:
            raise ValueError(f"Cannot drop an unnamed foreign key on {table}")
        return (
            f"ALTER TABLE {self.table_identifier(table)}"
            f" DROP CONSTRAINT {self.quote_identifier(foreign_key.name)}"
        )
