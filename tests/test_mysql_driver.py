"""Tests for MySQL / MariaDB rendering and introspection.

Runs offline: the driver sees a stub dialect and scripted catalog rows.
"""

import pytest

from db_diff.drivers.base import parse_value_list
from db_diff.drivers.mysql import MySQLDriver
from db_diff.exceptions import SchemaMappingError
from db_diff.expression import Expression
from db_diff.schema import builder as s
from db_diff.schema.keys import ReferentialAction


@pytest.fixture
def driver(make_connection) -> MySQLDriver:
    return MySQLDriver(make_connection("mysql", (8, 0, 36)), prefix="wt_")


def _catalog_row(**overrides) -> dict:
    """INFORMATION_SCHEMA.COLUMNS row with MySQL's upper-case keys."""
    row = {
        "COLUMN_NAME": "col",
        "DATA_TYPE": "int",
        "COLUMN_TYPE": "int",
        "COLLATION_NAME": None,
        "CHARACTER_MAXIMUM_LENGTH": None,
        "NUMERIC_PRECISION": None,
        "NUMERIC_SCALE": None,
        "DATETIME_PRECISION": None,
        "IS_NULLABLE": "NO",
        "COLUMN_DEFAULT": None,
        "EXTRA": "",
        "COLUMN_COMMENT": "",
    }
    row.update(overrides)
    return row


# ============================================================================
# Test: Column rendering
# ============================================================================


class TestColumnSql:
    """Column definitions as MySQL DDL."""

    def test_auto_increment_integer(self, driver: MySQLDriver) -> None:
        """AUTO_INCREMENT follows the type; NOT NULL is explicit."""
        column = s.integer("user_id").with_auto_increment()
        assert driver.column_sql(column) == "`user_id` INT AUTO_INCREMENT NOT NULL"

    @pytest.mark.parametrize(
        ("column", "expected"),
        [
            (s.tiny_integer("n"), "`n` TINYINT NOT NULL"),
            (s.small_integer("n"), "`n` SMALLINT NOT NULL"),
            (s.medium_integer("n"), "`n` MEDIUMINT NOT NULL"),
            (s.big_integer("n").with_unsigned(), "`n` BIGINT UNSIGNED NOT NULL"),
            (s.boolean("b").with_default(True), "`b` TINYINT(1) NOT NULL DEFAULT 1"),
            (s.decimal("d", 10, 2), "`d` DECIMAL(10, 2) NOT NULL"),
            (s.float_("f"), "`f` FLOAT NOT NULL"),
            (s.double("f"), "`f` DOUBLE NOT NULL"),
            (s.timestamp("t"), "`t` TIMESTAMP NOT NULL"),
            (s.datetime("t", 6), "`t` DATETIME(6) NOT NULL"),
            (s.year("y"), "`y` YEAR NOT NULL"),
            (s.uuid("u"), "`u` CHAR(36) COLLATE ascii_bin NOT NULL"),
            (s.json("j").with_nullable(), "`j` JSON NULL"),
            (s.enum("e", ["a", "b"]), "`e` ENUM('a', 'b') NOT NULL"),
            (s.set_("e", ["x"]), "`e` SET('x') NOT NULL"),
            (s.varbinary("v", 16), "`v` VARBINARY(16) NOT NULL"),
            (s.point("p", 4326), "`p` POINT /*!80003 SRID 4326 */ NOT NULL"),
            (s.polygon("p"), "`p` POLYGON NOT NULL"),
        ],
    )
    def test_type_rendering(self, driver: MySQLDriver, column, expected: str) -> None:
        """One rendering per column kind."""
        assert driver.column_sql(column) == expected

    @pytest.mark.parametrize(
        ("tier", "text_type", "blob_type"),
        [(1, "TINYTEXT", "TINYBLOB"), (2, "TEXT", "BLOB"), (3, "MEDIUMTEXT", "MEDIUMBLOB"), (4, "LONGTEXT", "LONGBLOB")],
    )
    def test_size_tiers(self, driver: MySQLDriver, tier: int, text_type: str, blob_type: str) -> None:
        """Tier 1..4 map to TINY, plain, MEDIUM and LONG."""
        assert driver.column_sql(s.text("t", tier)) == f"`t` {text_type} COLLATE utf8mb4_bin NOT NULL"
        assert driver.column_sql(s.blob("b", tier)) == f"`b` {blob_type} NOT NULL"

    def test_national_and_ascii_strings(self, driver: MySQLDriver) -> None:
        """National strings get the UTF-8 collation, others ascii_bin."""
        assert driver.column_sql(s.nvarchar("name", 80)) == "`name` VARCHAR(80) COLLATE utf8mb4_bin NOT NULL"
        assert driver.column_sql(s.char("code", 2)) == "`code` CHAR(2) COLLATE ascii_bin NOT NULL"

    def test_explicit_collation_wins(self, driver: MySQLDriver) -> None:
        """A collation set on the column overrides the default choice."""
        column = s.varchar("name", 5).with_collation("utf8mb4_unicode_ci")
        assert driver.column_sql(column) == "`name` VARCHAR(5) COLLATE utf8mb4_unicode_ci NOT NULL"

    def test_default_comment_and_invisible(self, driver: MySQLDriver) -> None:
        """Attribute order: nullability, default, invisible, comment."""
        column = (
            s.varchar("v", 3)
            .with_nullable()
            .with_default("it's")
            .with_invisible()
            .with_comment("Note")
        )
        assert driver.column_sql(column) == (
            "`v` VARCHAR(3) COLLATE ascii_bin NULL DEFAULT 'it''s' /*!80023 INVISIBLE */ COMMENT 'Note'"
        )

    def test_expression_default_is_verbatim(self, driver: MySQLDriver) -> None:
        """Expressions are not quoted."""
        column = s.timestamp("created").with_default(Expression("CURRENT_TIMESTAMP"))
        assert driver.column_sql(column) == "`created` TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP"

    @pytest.mark.parametrize(
        ("default", "expected"),
        [(0, "0.00"), (0.0, "0.00"), (-1.5, "-1.50"), (12, "12.00"), (0.125, "0.12")],
    )
    def test_decimal_default_written_to_scale(self, driver: MySQLDriver, default, expected: str) -> None:
        """Numeric defaults on DECIMAL columns render with the column's scale."""
        column = s.decimal("d", 10, 2).with_default(default)
        assert driver.column_sql(column) == f"`d` DECIMAL(10, 2) NOT NULL DEFAULT {expected}"


class TestCollationByVersion:
    """The UTF-8 collation depends on the server release."""

    @pytest.mark.parametrize(
        ("version", "is_mariadb", "expected"),
        [
            ((5, 6, 51), False, "utf8mb3_bin"),
            ((5, 7, 44), False, "utf8mb4_bin"),
            ((8, 0, 36), False, "utf8mb4_bin"),
            ((9, 1, 0), False, "utf8mb4_bin"),
            ((10, 1, 48), True, "utf8mb3_bin"),
            ((10, 2, 0), True, "utf8mb4_bin"),
            ((11, 4, 2), True, "utf8mb4_bin"),
        ],
    )
    def test_utf8_collation(self, make_connection, version, is_mariadb, expected) -> None:
        """utf8mb4 from MySQL 5.7 and MariaDB 10.2."""
        driver = MySQLDriver(make_connection("mysql", version, is_mariadb=is_mariadb))
        assert driver.utf8_collation() == expected


# ============================================================================
# Test: Quoting
# ============================================================================


class TestQuoting:
    """Identifier and literal quoting."""

    def test_backtick_is_doubled(self, driver: MySQLDriver) -> None:
        """Backticks inside an identifier are escaped by doubling."""
        assert str(driver.quote_identifier("a`b")) == "`a``b`"

    def test_table_identifier_is_prefixed(self, driver: MySQLDriver) -> None:
        """Tables always carry the prefix."""
        assert str(driver.table_identifier("user")) == "`wt_user`"

    def test_backslashes_escaped_by_default(self, driver: MySQLDriver) -> None:
        """Backslash is an escape character unless NO_BACKSLASH_ESCAPES is set."""
        assert str(driver.quote_value("a\\b'c")) == "'a\\\\b''c'"

    def test_no_backslash_escapes_mode(self, make_connection) -> None:
        """Backslashes pass through when the server does not treat them as escapes."""
        driver = MySQLDriver(make_connection("mysql", (8, 0, 36), _backslash_escapes=False))
        assert str(driver.quote_value("a\\b")) == "'a\\b'"

    def test_percent_is_not_doubled(self, driver: MySQLDriver) -> None:
        """DDL is not a DBAPI statement, so '%' stays single."""
        assert str(driver.quote_value("100%")) == "'100%'"


# ============================================================================
# Test: Table and key DDL
# ============================================================================


class TestTableSql:
    """CREATE TABLE, ALTER TABLE and foreign key statements."""

    def test_generate_table_sql(self, driver: MySQLDriver) -> None:
        """All keys are declared inside the single CREATE TABLE."""
        table = s.table("user", [
            s.integer("user_id").with_auto_increment(),
            s.nvarchar("user_name", 32),
            s.primary_key("user_id"),
            s.unique_index("user_name", "user_name_uk"),
            s.index("user_name"),
            s.foreign_key("user_id", "other"),
        ])

        assert driver.generate_table_sql(table) == [
            "CREATE TABLE `wt_user` ("
            "`user_id` INT AUTO_INCREMENT NOT NULL, "
            "`user_name` VARCHAR(32) COLLATE utf8mb4_bin NOT NULL, "
            "PRIMARY KEY (`user_id`), "
            "UNIQUE INDEX `user_name_uk` (`user_name`), "
            "INDEX (`user_name`))"
        ]

    def test_alter_table_sql_joins_changes(self, driver: MySQLDriver) -> None:
        """One ALTER TABLE carries every column change."""
        changes = [
            driver.drop_column_sql("old"),
            driver.alter_column_sql("name", s.nvarchar("name", 64)),
            driver.add_column_sql(s.integer("n").with_nullable()),
        ]

        assert driver.alter_table_sql("user", changes) == [
            "ALTER TABLE `wt_user` DROP COLUMN `old`, "
            "CHANGE COLUMN `name` `name` VARCHAR(64) COLLATE utf8mb4_bin NOT NULL, "
            "ADD COLUMN `n` INT NULL"
        ]

    def test_add_unnamed_foreign_key(self, driver: MySQLDriver) -> None:
        """The referenced table gets the prefix too."""
        fk = s.foreign_key("user_id", "user").on_delete_cascade()
        assert driver.add_foreign_key_sql("user_setting", fk) == (
            "ALTER TABLE `wt_user_setting` ADD FOREIGN KEY (`user_id`)"
            " REFERENCES `wt_user` (`user_id`) ON DELETE CASCADE ON UPDATE NO ACTION"
        )

    def test_add_named_foreign_key(self, driver: MySQLDriver) -> None:
        """Named keys get a CONSTRAINT clause."""
        fk = s.foreign_key(["a", "b"], "parent", ["x", "y"], name="fk_parent").on_update_cascade()
        assert driver.add_foreign_key_sql("child", fk) == (
            "ALTER TABLE `wt_child` ADD CONSTRAINT `fk_parent` FOREIGN KEY (`a`, `b`)"
            " REFERENCES `wt_parent` (`x`, `y`) ON DELETE NO ACTION ON UPDATE CASCADE"
        )

    def test_drop_foreign_key(self, driver: MySQLDriver) -> None:
        """Dropping needs the constraint name."""
        fk = s.foreign_key("user_id", "user", name="fk1")
        assert driver.drop_foreign_key_sql("user_setting", fk) == (
            "ALTER TABLE `wt_user_setting` DROP FOREIGN KEY `fk1`"
        )
        with pytest.raises(ValueError):
            driver.drop_foreign_key_sql("user_setting", s.foreign_key("user_id", "user"))


# ============================================================================
# Test: Introspection
# ============================================================================


class TestIntrospection:
    """Catalog rows rebuilt into model values."""

    def test_list_tables_filters_and_strips_prefix(self, driver: MySQLDriver, scripted_query) -> None:
        """Tables without the prefix are not managed."""
        driver.query = scripted_query([
            ("INFORMATION_SCHEMA.TABLES", [
                {"table_name": "other"},
                {"table_name": "wt_setting"},
                {"table_name": "wt_user"},
            ]),
        ])
        assert driver.list_tables() == ["setting", "user"]

    def test_lookups_bind_prefixed_name(self, driver: MySQLDriver, scripted_query) -> None:
        """Logical names are prefixed before they reach the catalog."""
        query = scripted_query([("INFORMATION_SCHEMA.COLUMNS", [{"column_name": "a"}])])
        driver.query = query

        assert driver.list_columns("user") == ["a"]
        assert query.calls[0][1] == {"table_name": "wt_user"}

    def test_varchar_column(self, driver: MySQLDriver, scripted_query) -> None:
        """UTF collations mark a string as national."""
        driver.query = scripted_query([("INFORMATION_SCHEMA.COLUMNS", [_catalog_row(
            COLUMN_NAME="user_name",
            DATA_TYPE="varchar",
            COLUMN_TYPE="varchar(32)",
            COLLATION_NAME="utf8mb4_bin",
            CHARACTER_MAXIMUM_LENGTH=32,
        )])])

        column = driver.introspect_column("user", "user_name")

        assert column == s.nvarchar("user_name", 32).with_collation("utf8mb4_bin")

    def test_column_query_filters_by_column(self, driver: MySQLDriver, scripted_query) -> None:
        """Both table and column names are bound."""
        query = scripted_query([("INFORMATION_SCHEMA.COLUMNS", [_catalog_row()])])
        driver.query = query

        driver.introspect_column("user", "col")

        assert query.calls[0][1] == {"table_name": "wt_user", "column_name": "col"}

    def test_integer_attributes(self, driver: MySQLDriver, scripted_query) -> None:
        """Unsigned, auto-increment, nullability, comment and invisibility."""
        driver.query = scripted_query([("INFORMATION_SCHEMA.COLUMNS", [_catalog_row(
            DATA_TYPE="bigint",
            COLUMN_TYPE="bigint unsigned",
            EXTRA="auto_increment INVISIBLE",
            IS_NULLABLE="YES",
            COLUMN_COMMENT="Counter",
        )])])

        column = driver.introspect_column("t", "col")

        assert column.bits == 64
        assert column.unsigned and column.auto_increment
        assert column.nullable and column.invisible
        assert column.comment == "Counter"

    def test_tinyint_one_is_boolean(self, driver: MySQLDriver, scripted_query) -> None:
        """TINYINT(1) reads back as a boolean."""
        driver.query = scripted_query([("INFORMATION_SCHEMA.COLUMNS", [_catalog_row(
            DATA_TYPE="tinyint", COLUMN_TYPE="tinyint(1)", COLUMN_DEFAULT="1",
        )])])

        column = driver.introspect_column("t", "col")

        assert column.kind == "boolean"
        assert column.default == 1

    def test_enum_values(self, driver: MySQLDriver, scripted_query) -> None:
        """Quoted members, including doubled quotes, are unescaped."""
        driver.query = scripted_query([("INFORMATION_SCHEMA.COLUMNS", [_catalog_row(
            DATA_TYPE="enum", COLUMN_TYPE="enum('a','it''s')",
        )])])

        assert driver.introspect_column("t", "col").values == ("a", "it's")

    def test_unknown_type(self, driver: MySQLDriver, scripted_query) -> None:
        """Types without a model equivalent raise SchemaMappingError."""
        driver.query = scripted_query([("INFORMATION_SCHEMA.COLUMNS", [_catalog_row(
            DATA_TYPE="bit", COLUMN_TYPE="bit(8)",
        )])])

        with pytest.raises(SchemaMappingError, match="bit"):
            driver.introspect_column("t", "col")

    def test_missing_column(self, driver: MySQLDriver, scripted_query) -> None:
        """An empty catalog answer is reported, not ignored."""
        driver.query = scripted_query([])
        with pytest.raises(SchemaMappingError, match="column not found"):
            driver.introspect_column("t", "nope")

    def test_foreign_key(self, driver: MySQLDriver, scripted_query) -> None:
        """Referenced table loses its prefix; actions come from the rules."""
        driver.query = scripted_query([("KEY_COLUMN_USAGE", [{
            "column_name": "user_id",
            "referenced_table_name": "wt_user",
            "referenced_column_name": "user_id",
            "update_rule": "NO ACTION",
            "delete_rule": "CASCADE",
        }])])

        fk = driver.introspect_foreign_key("user_setting", "fk_user")

        assert fk.name == "fk_user"
        assert fk.columns == ("user_id",)
        assert fk.foreign_table == "user"
        assert fk.on_delete is ReferentialAction.CASCADE
        assert fk.on_update is ReferentialAction.NO_ACTION

    def test_key_columns_in_sequence(self, driver: MySQLDriver, scripted_query) -> None:
        """Index columns come from STATISTICS."""
        driver.query = scripted_query([("INFORMATION_SCHEMA.STATISTICS", [
            {"column_name": "gedcom_id"},
            {"column_name": "xref"},
        ])])

        key = driver.introspect_primary_key("individuals", "PRIMARY")

        assert key.columns == ("gedcom_id", "xref")
        assert key.name == "PRIMARY"


class TestDefaultClassification:
    """COLUMN_DEFAULT strings become typed defaults."""

    def _introspect(self, driver: MySQLDriver, scripted_query, **row) -> object:
        driver.query = scripted_query([("INFORMATION_SCHEMA.COLUMNS", [_catalog_row(**row)])])
        return driver.introspect_column("t", "col").default

    def test_integer_default(self, driver: MySQLDriver, scripted_query) -> None:
        """Numeric kinds parse their default."""
        assert self._introspect(driver, scripted_query, COLUMN_DEFAULT="0") == 0

    def test_negative_default(self, driver: MySQLDriver, scripted_query) -> None:
        """A leading minus still parses as a number."""
        assert self._introspect(driver, scripted_query, COLUMN_DEFAULT="-1") == -1

    def test_decimal_default_matches_declared_zero(self, driver: MySQLDriver, scripted_query) -> None:
        """The catalog's 0.00 renders exactly like a declared default of 0."""
        driver.query = scripted_query([("INFORMATION_SCHEMA.COLUMNS", [_catalog_row(
            DATA_TYPE="decimal",
            COLUMN_TYPE="decimal(10,2)",
            NUMERIC_PRECISION=10,
            NUMERIC_SCALE=2,
            COLUMN_DEFAULT="0.00",
        )])])

        live = driver.introspect_column("t", "col")
        declared = s.decimal("col", 10, 2).with_default(0)

        assert live.default == 0.0
        assert not driver.column_changed(live, declared)

    def test_string_default_on_string_column(self, driver: MySQLDriver, scripted_query) -> None:
        """A numeric-looking default on a string column stays a string."""
        default = self._introspect(
            driver,
            scripted_query,
            DATA_TYPE="varchar",
            COLUMN_TYPE="varchar(5)",
            CHARACTER_MAXIMUM_LENGTH=5,
            COLLATION_NAME="ascii_bin",
            COLUMN_DEFAULT="0",
        )
        assert default == "0"

    def test_generated_default(self, driver: MySQLDriver, scripted_query) -> None:
        """CURRENT_TIMESTAMP becomes an expression."""
        default = self._introspect(
            driver,
            scripted_query,
            DATA_TYPE="timestamp",
            COLUMN_TYPE="timestamp",
            COLUMN_DEFAULT="CURRENT_TIMESTAMP",
            EXTRA="DEFAULT_GENERATED",
        )
        assert default == Expression("CURRENT_TIMESTAMP")

    def test_mariadb_defaults(self, make_connection, scripted_query) -> None:
        """MariaDB quotes literals and lower-cases current_timestamp()."""
        driver = MySQLDriver(make_connection("mariadb", (10, 11, 6), is_mariadb=True))

        assert self._introspect(
            driver,
            scripted_query,
            DATA_TYPE="timestamp",
            COLUMN_TYPE="timestamp",
            COLUMN_DEFAULT="current_timestamp()",
        ) == Expression("CURRENT_TIMESTAMP")
        assert self._introspect(
            driver,
            scripted_query,
            DATA_TYPE="varchar",
            COLUMN_TYPE="varchar(5)",
            CHARACTER_MAXIMUM_LENGTH=5,
            COLLATION_NAME="ascii_bin",
            COLUMN_DEFAULT="'it''s'",
        ) == "it's"
        assert self._introspect(driver, scripted_query, COLUMN_DEFAULT="NULL") is None


class TestMariaDBJson:
    """MariaDB stores JSON as LONGTEXT guarded by a json_valid() CHECK."""

    @pytest.fixture
    def mariadb(self, make_connection) -> MySQLDriver:
        return MySQLDriver(make_connection("mariadb", (10, 11, 6), is_mariadb=True), prefix="wt_")

    def _longtext_row(self) -> dict:
        return _catalog_row(
            DATA_TYPE="longtext",
            COLUMN_TYPE="longtext",
            COLLATION_NAME="utf8mb4_bin",
            CHARACTER_MAXIMUM_LENGTH=4294967295,
        )

    def test_json_valid_check_means_json(self, mariadb: MySQLDriver, scripted_query) -> None:
        """A json_valid(`col`) CHECK turns LONGTEXT back into JSON."""
        mariadb.query = scripted_query([
            ("INFORMATION_SCHEMA.COLUMNS", [self._longtext_row()]),
            ("INFORMATION_SCHEMA.CHECK_CONSTRAINTS", [
                {"check_clause": "json_valid(`other`)"},
                {"check_clause": "json_valid(`col`)"},
            ]),
        ])

        assert mariadb.introspect_column("t", "col") == s.json("col")

    def test_check_lookup_binds_prefixed_table(self, mariadb: MySQLDriver, scripted_query) -> None:
        """The CHECK lookup is scoped to the prefixed table."""
        mariadb.query = scripted_query([("INFORMATION_SCHEMA.COLUMNS", [self._longtext_row()])])

        mariadb.introspect_column("t", "col")

        sql, bindings = mariadb.query.calls[-1]
        assert "CHECK_CONSTRAINTS" in sql
        assert bindings == {"table_name": "wt_t"}

    def test_plain_longtext_stays_text(self, mariadb: MySQLDriver, scripted_query) -> None:
        """Without the CHECK the column is LONGTEXT."""
        mariadb.query = scripted_query([
            ("INFORMATION_SCHEMA.COLUMNS", [self._longtext_row()]),
            ("INFORMATION_SCHEMA.CHECK_CONSTRAINTS", [{"check_clause": "json_valid(`other`)"}]),
        ])

        column = mariadb.introspect_column("t", "col")

        assert column.kind == "text"
        assert column.length == 4

    def test_mysql_longtext_skips_check_lookup(self, driver: MySQLDriver, scripted_query) -> None:
        """MySQL has a native JSON type, so no CHECK lookup runs."""
        driver.query = scripted_query([("INFORMATION_SCHEMA.COLUMNS", [self._longtext_row()])])

        assert driver.introspect_column("t", "col").kind == "text"
        assert len(driver.query.calls) == 1


class TestValueList:
    """ENUM / SET member parsing."""

    def test_parse_value_list(self) -> None:
        """Commas inside quotes do not split members."""
        assert parse_value_list("set('a,b','c')") == ["a,b", "c"]
