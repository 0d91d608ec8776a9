"""Pydantic models for tables, schemas and schema comparison.

This module contains schema-domain models:
- Structure models: Table, Schema
- Comparison models: TableComparison, SchemaComparison

Column and key variants live in db_diff.schema.columns and
db_diff.schema.keys.
"""

from collections.abc import Iterable
from typing import Self, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from db_diff.schema.columns import BaseColumn, Column
from db_diff.schema.keys import ForeignKey, Index, PrimaryKey, UniqueIndex

Component = Union[BaseColumn, PrimaryKey, UniqueIndex, Index, ForeignKey]


# ============================================================================
# Structure Models
# ============================================================================


class Table(BaseModel):
    """A table definition.

    Columns keep their declared order.  Keys are partitioned by kind.

    Example:
        >>> from db_diff.schema import builder as s
        >>> users = Table.from_components("users", [
        ...     s.integer("id").with_auto_increment(),
        ...     s.nvarchar("name", 80),
        ...     s.primary_key("id"),
        ... ])
        >>> users.column_names
        ['id', 'name']
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    columns: tuple[Column, ...] = ()
    primary_keys: tuple[PrimaryKey, ...] = ()
    unique_indexes: tuple[UniqueIndex, ...] = ()
    indexes: tuple[Index, ...] = ()
    foreign_keys: tuple[ForeignKey, ...] = ()

    @field_validator("columns")
    @classmethod
    def check_unique_column_names(cls, columns: tuple) -> tuple:
        seen: set[str] = set()
        for column in columns:
            if column.name in seen:
                raise ValueError(f"duplicate column '{column.name}'")
            seen.add(column.name)
        return columns

    @model_validator(mode="after")
    def check_single_primary_key(self) -> Self:
        if len(self.primary_keys) > 1:
            raise ValueError(f"table '{self.name}' has {len(self.primary_keys)} primary keys")
        return self

    @classmethod
    def from_components(cls, name: str, components: Iterable[Component]) -> "Table":
        """Build a table from a flat list of columns and keys."""
        columns: list[BaseColumn] = []
        primary_keys: list[PrimaryKey] = []
        unique_indexes: list[UniqueIndex] = []
        indexes: list[Index] = []
        foreign_keys: list[ForeignKey] = []

        for component in components:
            if isinstance(component, BaseColumn):
                columns.append(component)
            elif isinstance(component, PrimaryKey):
                primary_keys.append(component)
            elif isinstance(component, UniqueIndex):
                unique_indexes.append(component)
            elif isinstance(component, Index):
                indexes.append(component)
            elif isinstance(component, ForeignKey):
                foreign_keys.append(component)
            else:
                raise TypeError(f"Not a table component: {component!r}")

        return cls(
            name=name,
            columns=tuple(columns),
            primary_keys=tuple(primary_keys),
            unique_indexes=tuple(unique_indexes),
            indexes=tuple(indexes),
            foreign_keys=tuple(foreign_keys),
        )

    @property
    def column_names(self) -> list[str]:
        return [column.name for column in self.columns]

    @property
    def primary_key(self) -> PrimaryKey | None:
        return self.primary_keys[0] if self.primary_keys else None

    def get_column(self, name: str) -> Column | None:
        for column in self.columns:
            if column.name == name:
                return column
        return None


class Schema(BaseModel):
    """A set of tables keyed by name, always in name order.

    Example:
        >>> schema = Schema.from_tables([Table(name="b"), Table(name="a")])
        >>> schema.table_names
        ['a', 'b']
    """

    model_config = ConfigDict(frozen=True)

    tables: dict[str, Table] = Field(default_factory=dict)

    @field_validator("tables")
    @classmethod
    def sort_tables(cls, tables: dict[str, Table]) -> dict[str, Table]:
        return {name: tables[name] for name in sorted(tables)}

    @classmethod
    def from_tables(cls, tables: Iterable[Table]) -> "Schema":
        """Later tables replace earlier tables of the same name."""
        return cls(tables={table.name: table for table in tables})

    @property
    def table_names(self) -> list[str]:
        return list(self.tables)

    def get_table(self, name: str) -> Table | None:
        return self.tables.get(name)


# ============================================================================
# Comparison Models
# ============================================================================


class TableComparison(BaseModel):
    """Differences between the source and target version of one table."""

    table: str
    drop_columns: list[str] = Field(default_factory=list)
    add_columns: list[str] = Field(default_factory=list)
    common_columns: list[str] = Field(default_factory=list)
    # Common columns whose definition differs; filled by a driver-aware caller.
    alter_columns: list[str] = Field(default_factory=list)
    drop_foreign_keys: list[ForeignKey] = Field(default_factory=list)
    add_foreign_keys: list[ForeignKey] = Field(default_factory=list)

    @property
    def has_structural_changes(self) -> bool:
        """True when columns are added, removed or altered, or foreign keys change."""
        return bool(
            self.drop_columns
            or self.add_columns
            or self.alter_columns
            or self.drop_foreign_keys
            or self.add_foreign_keys
        )


class SchemaComparison(BaseModel):
    """Result of comparing a source schema with a target schema.

    Example:
        >>> result = SchemaComparison()
        >>> result.is_empty
        True
        >>> result.format_report()
        'Schema matches target'
    """

    missing_tables: list[str] = Field(default_factory=list)
    extra_tables: list[str] = Field(default_factory=list)  # Warning only
    tables: list[TableComparison] = Field(default_factory=list)

    @property
    def changed_tables(self) -> list[TableComparison]:
        return [table for table in self.tables if table.has_structural_changes]

    @property
    def is_empty(self) -> bool:
        """True if no table needs to be created or restructured."""
        return not self.missing_tables and not self.changed_tables

    def format_report(self) -> str:
        """Format comparison result as human-readable report."""
        if self.is_empty:
            return "Schema matches target"

        lines = ["Schema differs from target:"]

        if self.missing_tables:
            lines.append(f"\n  Missing tables ({len(self.missing_tables)}):")
            for table in self.missing_tables:
                lines.append(f"    - {table}")

        for diff in self.changed_tables:
            lines.append(f"\n  Table {diff.table}:")
            for column in diff.drop_columns:
                lines.append(f"    - drop column {column}")
            for column in diff.add_columns:
                lines.append(f"    + add column {column}")
            for column in diff.alter_columns:
                lines.append(f"    ~ alter column {column}")
            for fk in diff.drop_foreign_keys:
                lines.append(f"    - drop foreign key ({', '.join(fk.columns)}) -> {fk.foreign_table}")
            for fk in diff.add_foreign_keys:
                lines.append(f"    + add foreign key ({', '.join(fk.columns)}) -> {fk.foreign_table}")

        if self.extra_tables:
            lines.append(f"\n  Extra tables (warning): {', '.join(self.extra_tables)}")

        return "\n".join(lines)
