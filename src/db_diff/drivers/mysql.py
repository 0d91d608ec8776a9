"""MySQL and MariaDB driver.

Introspection reads INFORMATION_SCHEMA for the current database.  DDL keeps
every key inside CREATE TABLE and changes columns with CHANGE COLUMN.

Usage:
    driver = MySQLDriver(connection, prefix="wt_")
    driver.column_sql(nvarchar("name", 80))
    # `name` VARCHAR(80) COLLATE utf8mb4_bin NOT NULL
"""

import re
from typing import Any

from db_diff.drivers.base import Driver, parse_number, parse_value_list
from db_diff.exceptions import SchemaMappingError
from db_diff.expression import Expression
from db_diff.schema import builder as s
from db_diff.schema.columns import Column, DefaultValue
from db_diff.schema.keys import ForeignKey, Index, PrimaryKey, ReferentialAction, UniqueIndex
from db_diff.schema.models import Table

INTEGER_TYPES = {
    8: "TINYINT",
    16: "SMALLINT",
    24: "MEDIUMINT",
    32: "INT",
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

# DATA_TYPE -> integer width, text tier, blob tier
INTEGER_BITS = {name.lower(): bits for bits, name in INTEGER_TYPES.items()}
TEXT_TIERS = {name.lower(): tier for tier, name in TEXT_TYPES.items()}
BLOB_TIERS = {name.lower(): tier for tier, name in BLOB_TYPES.items()}

GEOMETRY_TYPES = {
    "geometry",
    "point",
    "linestring",
    "polygon",
    "multipoint",
    "multilinestring",
    "multipolygon",
    "geometrycollection",
    "geomcollection",
}

NUMERIC_KINDS = {"integer", "boolean", "float", "decimal", "year"}

CURRENT_TIMESTAMP = re.compile(r"current_timestamp(?:\((\d*)\))?", re.IGNORECASE)


class MySQLDriver(Driver):
    """Driver for MySQL 5.7+ and MariaDB 10.2+."""

    IDENTIFIER_OPEN_QUOTE = "`"
    IDENTIFIER_CLOSE_QUOTE = "`"

    TRUE_LITERAL = "1"
    FALSE_LITERAL = "0"

    @property
    def is_mariadb(self) -> bool:
        return bool(getattr(self.dialect, "is_mariadb", False))

    def utf8_collation(self) -> str:
        """Binary collation of the widest UTF-8 character set the server has."""
        # MariaDB 10.2 and later
        if self.server_version_at_least(10, 2):
            return "utf8mb4_bin"
        # MySQL 5.7, 8.x and 9.x
        if self.server_version_at_least(5, 7) and not self.server_version_at_least(10, 0):
            return "utf8mb4_bin"
        return "utf8mb3_bin"

    # ------------------------------------------------------------------
    # Catalog listing
    # ------------------------------------------------------------------

    def list_tables(self) -> list[str]:
        rows = self.query(
            "SELECT   TABLE_NAME AS table_name"
            " FROM     INFORMATION_SCHEMA.TABLES"
            " WHERE    TABLE_TYPE = 'BASE TABLE' AND TABLE_SCHEMA = DATABASE()"
            " ORDER BY TABLE_NAME"
        )
        return [
            row["table_name"][len(self.prefix):]
            for row in rows
            if row["table_name"].startswith(self.prefix)
        ]

    def list_columns(self, table: str) -> list[str]:
        rows = self.query(
            "SELECT   COLUMN_NAME AS column_name"
            " FROM     INFORMATION_SCHEMA.COLUMNS"
            " WHERE    TABLE_SCHEMA = DATABASE()"
            "   AND    TABLE_NAME = :table_name"
            " ORDER BY ORDINAL_POSITION",
            {"table_name": self.prefix + table},
        )
        return [row["column_name"] for row in rows]

    def _list_constraints(self, table: str, constraint_type: str) -> list[str]:
        rows = self.query(
            "SELECT   CONSTRAINT_NAME AS constraint_name"
            " FROM     INFORMATION_SCHEMA.TABLE_CONSTRAINTS"
            " WHERE    TABLE_SCHEMA = DATABASE()"
            "   AND    TABLE_NAME = :table_name"
            "   AND    CONSTRAINT_TYPE = :constraint_type"
            " ORDER BY CONSTRAINT_NAME",
            {"table_name": self.prefix + table, "constraint_type": constraint_type},
        )
        return [row["constraint_name"] for row in rows]

    def list_primary_keys(self, table: str) -> list[str]:
        return self._list_constraints(table, "PRIMARY KEY")

    def list_unique_indexes(self, table: str) -> list[str]:
        return self._list_constraints(table, "UNIQUE")

    def list_indexes(self, table: str) -> list[str]:
        rows = self.query(
            "SELECT    DISTINCT STATISTICS.INDEX_NAME AS index_name"
            " FROM      INFORMATION_SCHEMA.STATISTICS"
            " LEFT JOIN INFORMATION_SCHEMA.TABLE_CONSTRAINTS"
            "        ON TABLE_CONSTRAINTS.TABLE_SCHEMA    = STATISTICS.TABLE_SCHEMA"
            "       AND TABLE_CONSTRAINTS.TABLE_NAME      = STATISTICS.TABLE_NAME"
            "       AND TABLE_CONSTRAINTS.CONSTRAINT_NAME = STATISTICS.INDEX_NAME"
            " WHERE     TABLE_CONSTRAINTS.CONSTRAINT_NAME IS NULL"
            "   AND     STATISTICS.TABLE_SCHEMA = DATABASE()"
            "   AND     STATISTICS.TABLE_NAME   = :table_name"
            " ORDER BY  index_name",
            {"table_name": self.prefix + table},
        )
        return [row["index_name"] for row in rows]

    def list_foreign_keys(self, table: str) -> list[str]:
        return self._list_constraints(table, "FOREIGN KEY")

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def introspect_column(self, table: str, column: str) -> Column:
        rows = self.query(
            "SELECT   *"
            " FROM     INFORMATION_SCHEMA.COLUMNS"
            " WHERE    TABLE_SCHEMA = DATABASE()"
            "   AND    TABLE_NAME = :table_name"
            "   AND    COLUMN_NAME = :column_name",
            {"table_name": self.prefix + table, "column_name": column},
        )
        if not rows:
            raise SchemaMappingError(table, column, "", "column not found")

        # Catalog column names are upper case on MySQL, mixed on some MariaDB builds.
        data = {key.lower(): value for key, value in rows[0].items()}
        result = self._column_from_catalog(table, data)
        if self.is_mariadb and data["data_type"].lower() == "longtext" and self._is_json_column(table, column):
            result = s.json(column)

        extra = (data.get("extra") or "").upper()
        return (
            result.with_nullable(data["is_nullable"] == "YES")
            .with_default(self._parse_default(data, result.kind))
            .with_invisible("INVISIBLE" in extra)
            .with_comment(data.get("column_comment") or "")
        )

    def _is_json_column(self, table: str, column: str) -> bool:
        """MariaDB stores JSON as LONGTEXT guarded by CHECK (json_valid(`column`))."""
        if not self.server_version_at_least(10, 2):
            return False
        rows = self.query(
            "SELECT   CHECK_CLAUSE AS check_clause"
            " FROM     INFORMATION_SCHEMA.CHECK_CONSTRAINTS"
            " WHERE    CONSTRAINT_SCHEMA = DATABASE()"
            "   AND    TABLE_NAME = :table_name",
            {"table_name": self.prefix + table},
        )
        pattern = re.compile(rf"json_valid\(\s*`?{re.escape(column)}`?\s*\)", re.IGNORECASE)
        return any(pattern.search(row["check_clause"] or "") for row in rows)

    def _column_from_catalog(self, table: str, data: dict[str, Any]) -> Column:
        name = data["column_name"]
        data_type = data["data_type"].lower()
        column_type = data["column_type"].lower()
        collation = data.get("collation_name")
        length = data.get("character_maximum_length")

        if data_type in INTEGER_BITS:
            if column_type.startswith("tinyint(1)"):
                return s.boolean(name)
            return (
                s.integer(name, INTEGER_BITS[data_type])
                .with_unsigned("unsigned" in column_type)
                .with_auto_increment("auto_increment" in (data.get("extra") or "").lower())
            )
        if data_type in ("char", "varchar"):
            national = (collation or "").startswith("utf")
            factory = {
                ("char", False): s.char,
                ("char", True): s.nchar,
                ("varchar", False): s.varchar,
                ("varchar", True): s.nvarchar,
            }[data_type, national]
            return factory(name, int(length)).with_collation(collation)
        if data_type in TEXT_TIERS:
            return s.text(name, TEXT_TIERS[data_type]).with_collation(collation)
        if data_type in BLOB_TIERS:
            return s.blob(name, BLOB_TIERS[data_type])
        if data_type == "binary":
            return s.binary(name, int(length))
        if data_type == "varbinary":
            return s.varbinary(name, int(length))
        if data_type == "float":
            return s.float_(name)
        if data_type == "double":
            return s.double(name)
        if data_type == "decimal":
            return s.decimal(name, int(data["numeric_precision"]), int(data["numeric_scale"]))
        if data_type == "timestamp":
            return s.timestamp(name, int(data.get("datetime_precision") or 0))
        if data_type == "datetime":
            return s.datetime(name, int(data.get("datetime_precision") or 0))
        if data_type == "time":
            return s.time(name, int(data.get("datetime_precision") or 0))
        if data_type == "date":
            return s.date(name)
        if data_type == "year":
            return s.year(name)
        if data_type == "enum":
            return s.enum(name, parse_value_list(data["column_type"]))
        if data_type == "set":
            return s.set_(name, parse_value_list(data["column_type"]))
        if data_type == "json":
            return s.json(name)
        if data_type in GEOMETRY_TYPES:
            geometry_type = "geometrycollection" if data_type == "geomcollection" else data_type
            factory = getattr(s, geometry_type)
            return factory(name, int(data.get("srs_id") or 0))

        raise SchemaMappingError(table, name, data["data_type"])

    def _parse_default(self, data: dict[str, Any], kind: str) -> DefaultValue:
        """Classify COLUMN_DEFAULT as NULL, a number, an expression or a string."""
        default = data.get("column_default")
        if default is None:
            return None

        default = str(default)
        extra = (data.get("extra") or "").upper()

        if self.is_mariadb:
            # MariaDB 10.2.7+ reports literals quoted and a NULL default as NULL.
            if default == "NULL":
                return None
            if len(default) >= 2 and default[0] == default[-1] == "'":
                return default[1:-1].replace("''", "'").replace("\\\\", "\\")

        timestamp = CURRENT_TIMESTAMP.fullmatch(default)
        if timestamp is not None:
            precision = timestamp.group(1)
            return Expression(f"CURRENT_TIMESTAMP({precision})" if precision else "CURRENT_TIMESTAMP")

        if "DEFAULT_GENERATED" in extra:
            return Expression(default)

        if kind in NUMERIC_KINDS:
            number = parse_number(default)
            if number is not None:
                return number
            if self.is_mariadb:
                return Expression(default)

        return default

    def _key_columns(self, table: str, key: str) -> list[str]:
        rows = self.query(
            "SELECT   COLUMN_NAME AS column_name"
            " FROM     INFORMATION_SCHEMA.STATISTICS"
            " WHERE    TABLE_SCHEMA = DATABASE()"
            "   AND    TABLE_NAME = :table_name"
            "   AND    INDEX_NAME = :key_name"
            " ORDER BY SEQ_IN_INDEX",
            {"table_name": self.prefix + table, "key_name": key},
        )
        return [row["column_name"] for row in rows]

    def introspect_primary_key(self, table: str, key: str) -> PrimaryKey:
        return s.primary_key(self._key_columns(table, key), key)

    def introspect_unique_index(self, table: str, key: str) -> UniqueIndex:
        return s.unique_index(self._key_columns(table, key), key)

    def introspect_index(self, table: str, key: str) -> Index:
        return s.index(self._key_columns(table, key), key)

    def introspect_foreign_key(self, table: str, key: str) -> ForeignKey:
        rows = self.query(
            "SELECT   KEY_COLUMN_USAGE.COLUMN_NAME AS column_name,"
            "          KEY_COLUMN_USAGE.REFERENCED_TABLE_NAME AS referenced_table_name,"
            "          KEY_COLUMN_USAGE.REFERENCED_COLUMN_NAME AS referenced_column_name,"
            "          REFERENTIAL_CONSTRAINTS.UPDATE_RULE AS update_rule,"
            "          REFERENTIAL_CONSTRAINTS.DELETE_RULE AS delete_rule"
            " FROM     INFORMATION_SCHEMA.KEY_COLUMN_USAGE"
            " JOIN     INFORMATION_SCHEMA.REFERENTIAL_CONSTRAINTS"
            "       ON REFERENTIAL_CONSTRAINTS.CONSTRAINT_SCHEMA = KEY_COLUMN_USAGE.CONSTRAINT_SCHEMA"
            "      AND REFERENTIAL_CONSTRAINTS.CONSTRAINT_NAME   = KEY_COLUMN_USAGE.CONSTRAINT_NAME"
            "      AND REFERENTIAL_CONSTRAINTS.TABLE_NAME        = KEY_COLUMN_USAGE.TABLE_NAME"
            " WHERE    KEY_COLUMN_USAGE.TABLE_SCHEMA = DATABASE()"
            "   AND    KEY_COLUMN_USAGE.TABLE_NAME = :table_name"
            "   AND    KEY_COLUMN_USAGE.CONSTRAINT_NAME = :key_name"
            " ORDER BY KEY_COLUMN_USAGE.ORDINAL_POSITION",
            {"table_name": self.prefix + table, "key_name": key},
        )
        if not rows:
            raise SchemaMappingError(table, key, "FOREIGN KEY", "constraint not found")

        first = rows[0]
        return (
            s.foreign_key(
                [row["column_name"] for row in rows],
                self.strip_prefix(first["referenced_table_name"]),
                [row["referenced_column_name"] for row in rows],
                key,
            )
            .with_on_update(ReferentialAction(first["update_rule"]))
            .with_on_delete(ReferentialAction(first["delete_rule"]))
        )

    # ------------------------------------------------------------------
    # DDL rendering
    # ------------------------------------------------------------------

    def _type_sql(self, column: Column) -> str:
        kind = column.kind

        if kind == "integer":
            sql = INTEGER_TYPES[column.bits]
            if column.unsigned:
                sql += " UNSIGNED"
            if column.auto_increment:
                sql += " AUTO_INCREMENT"
            return sql
        if kind == "boolean":
            return "TINYINT(1)"
        if kind == "character":
            # An explicit collation wins over the national/ascii default.
            if column.collation is not None:
                collation = column.collation
            elif column.national:
                collation = self.utf8_collation()
            else:
                collation = "ascii_bin"
            keyword = "VARCHAR" if column.varying else "CHAR"
            return f"{keyword}({column.length}) COLLATE {collation}"
        if kind == "text":
            return f"{TEXT_TYPES[column.length]} COLLATE {column.collation or self.utf8_collation()}"
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
        if kind == "date":
            return "DATE"
        if kind == "year":
            return "YEAR"
        if kind in ("enum", "set"):
            values = ", ".join(str(self.quote_value(value)) for value in column.values)
            return f"{kind.upper()}({values})"
        if kind == "uuid":
            return "CHAR(36) COLLATE ascii_bin"
        if kind == "json":
            return "JSON"
        if kind == "geometry":
            sql = column.geometry_type.upper()
            if column.srid:
                sql += f" /*!80003 SRID {column.srid} */"
            return sql

        raise NotImplementedError(f"{type(self).__name__} cannot render {kind} columns")

    def column_sql(self, column: Column) -> str:
        sql = f"{self.quote_identifier(column.name)} {self._type_sql(column)} {self.nullable_sql(column)}"

        if column.default is not None:
            sql += f" DEFAULT {self.default_sql(column)}"
        if column.invisible:
            sql += " /*!80023 INVISIBLE */"
        if column.comment:
            sql += f" COMMENT {self.quote_value(column.comment)}"

        return sql

    def generate_table_sql(self, table: Table) -> list[str]:
        components = [self.column_sql(column) for column in table.columns]
        components += [
            f"PRIMARY KEY ({self.column_list_sql(key.columns)})" for key in table.primary_keys
        ]
        components += [self._index_sql("UNIQUE INDEX", key) for key in table.unique_indexes]
        components += [self._index_sql("INDEX", key) for key in table.indexes]

        return [f"CREATE TABLE {self.table_identifier(table.name)} ({', '.join(components)})"]

    def _index_sql(self, keyword: str, key: UniqueIndex | Index) -> str:
        if key.name:
            keyword = f"{keyword} {self.quote_identifier(key.name)}"
        return f"{keyword} ({self.column_list_sql(key.columns)})"

    def add_column_sql(self, column: Column) -> str:
        return f"ADD COLUMN {self.column_sql(column)}"

    def drop_column_sql(self, name: str) -> str:
        return f"DROP COLUMN {self.quote_identifier(name)}"

    def alter_column_sql(self, name: str, column: Column) -> str:
        return f"CHANGE COLUMN {self.quote_identifier(name)} {self.column_sql(column)}"

    def add_foreign_key_sql(self, table: str, foreign_key: ForeignKey) -> str:
        return f"ALTER TABLE {self.table_identifier(table)} ADD {self.foreign_key_clause(foreign_key)}"

    def drop_foreign_key_sql(self, table: str, foreign_key: ForeignKey) -> str:
        if not foreign_key.name:
            raise ValueError(f"Cannot drop an unnamed foreign key on {table}")
        return (
            f"ALTER TABLE {self.table_identifier(table)}"
            f" DROP FOREIGN KEY {self.quote_identifier(foreign_key.name)}"
        )
