"""Factory functions for declaring a target schema.

Usage:
    from db_diff.expression import Expression
    from db_diff.schema import builder as s

    target = s.schema([
        s.table("user", [
            s.integer("user_id").with_auto_increment(),
            s.nvarchar("user_name", 32),
            s.nvarchar("email", 64),
            s.timestamp("created_at").with_default(Expression("CURRENT_TIMESTAMP")),
            s.primary_key("user_id"),
            s.unique_index("user_name"),
        ]),
        s.table("user_setting", [
            s.integer("user_id"),
            s.varchar("setting_name", 32),
            s.nvarchar("setting_value", 255),
            s.primary_key(["user_id", "setting_name"]),
            s.foreign_key("user_id", "user").on_delete_cascade(),
        ]),
    ])

Every size argument is validated by the column model, so ``integer("x", 12)``
or ``text("x", 5)`` raise a pydantic ``ValidationError``.
"""

from collections.abc import Iterable, Sequence

from db_diff.schema.columns import (
    BinaryColumn,
    BlobColumn,
    BooleanColumn,
    CharacterColumn,
    DateColumn,
    DatetimeColumn,
    DecimalColumn,
    EnumColumn,
    FloatColumn,
    GeometryColumn,
    IntegerColumn,
    JsonColumn,
    SetColumn,
    TextColumn,
    TimeColumn,
    TimestampColumn,
    UuidColumn,
    YearColumn,
)
from db_diff.schema.keys import ForeignKey, Index, PrimaryKey, UniqueIndex
from db_diff.schema.models import Component, Schema, Table

ColumnNames = str | Sequence[str]


def _names(columns: ColumnNames) -> tuple[str, ...]:
    if isinstance(columns, str):
        return (columns,)
    return tuple(columns)


# ----------------------------------------------------------------------------
# Containers
# ----------------------------------------------------------------------------


def table(name: str, components: Iterable[Component]) -> Table:
    return Table.from_components(name, components)


def schema(tables: Iterable[Table]) -> Schema:
    return Schema.from_tables(tables)


# ----------------------------------------------------------------------------
# Numeric columns
# ----------------------------------------------------------------------------


def tiny_integer(name: str) -> IntegerColumn:
    return IntegerColumn(name=name, bits=8)


def small_integer(name: str) -> IntegerColumn:
    return IntegerColumn(name=name, bits=16)


def medium_integer(name: str) -> IntegerColumn:
    return IntegerColumn(name=name, bits=24)


def integer(name: str, bits: int = 32) -> IntegerColumn:
    return IntegerColumn(name=name, bits=bits)


def big_integer(name: str) -> IntegerColumn:
    return IntegerColumn(name=name, bits=64)


def boolean(name: str) -> BooleanColumn:
    return BooleanColumn(name=name)


def float_(name: str, precision_bits: int = 23) -> FloatColumn:
    return FloatColumn(name=name, precision_bits=precision_bits)


def double(name: str, precision_bits: int = 53) -> FloatColumn:
    return FloatColumn(name=name, precision_bits=precision_bits)


def decimal(name: str, precision: int, scale: int = 0) -> DecimalColumn:
    return DecimalColumn(name=name, precision=precision, scale=scale)


# ----------------------------------------------------------------------------
# String and binary columns
# ----------------------------------------------------------------------------


def char(name: str, length: int) -> CharacterColumn:
    return CharacterColumn(name=name, length=length, varying=False, national=False)


def varchar(name: str, length: int) -> CharacterColumn:
    return CharacterColumn(name=name, length=length, varying=True, national=False)


def nchar(name: str, length: int) -> CharacterColumn:
    return CharacterColumn(name=name, length=length, varying=False, national=True)


def nvarchar(name: str, length: int) -> CharacterColumn:
    return CharacterColumn(name=name, length=length, varying=True, national=True)


def text(name: str, length: int = 4) -> TextColumn:
    """Unicode text.  ``length`` is the size tier: 1 tiny .. 4 full."""
    return TextColumn(name=name, length=length)


def binary(name: str, length: int) -> BinaryColumn:
    return BinaryColumn(name=name, length=length, varying=False)


def varbinary(name: str, length: int) -> BinaryColumn:
    return BinaryColumn(name=name, length=length, varying=True)


def blob(name: str, length: int = 4) -> BlobColumn:
    """Binary data.  ``length`` is the size tier: 1 tiny .. 4 full."""
    return BlobColumn(name=name, length=length)


def enum(name: str, values: Sequence[str]) -> EnumColumn:
    return EnumColumn(name=name, values=tuple(values))


def set_(name: str, values: Sequence[str]) -> SetColumn:
    return SetColumn(name=name, values=tuple(values))


def uuid(name: str) -> UuidColumn:
    return UuidColumn(name=name)


def json(name: str) -> JsonColumn:
    return JsonColumn(name=name)


# ----------------------------------------------------------------------------
# Temporal columns
# ----------------------------------------------------------------------------


def timestamp(name: str, precision: int = 0) -> TimestampColumn:
    return TimestampColumn(name=name, precision=precision)


def datetime(name: str, precision: int = 0) -> DatetimeColumn:
    return DatetimeColumn(name=name, precision=precision)


def date(name: str) -> DateColumn:
    return DateColumn(name=name)


def time(name: str, precision: int = 0) -> TimeColumn:
    return TimeColumn(name=name, precision=precision)


def year(name: str) -> YearColumn:
    return YearColumn(name=name)


# ----------------------------------------------------------------------------
# Spatial columns
# ----------------------------------------------------------------------------


def geometry(name: str, srid: int = 0) -> GeometryColumn:
    return GeometryColumn(name=name, geometry_type="geometry", srid=srid)


def point(name: str, srid: int = 0) -> GeometryColumn:
    return GeometryColumn(name=name, geometry_type="point", srid=srid)


def linestring(name: str, srid: int = 0) -> GeometryColumn:
    return GeometryColumn(name=name, geometry_type="linestring", srid=srid)


def polygon(name: str, srid: int = 0) -> GeometryColumn:
    return GeometryColumn(name=name, geometry_type="polygon", srid=srid)


def multipoint(name: str, srid: int = 0) -> GeometryColumn:
    return GeometryColumn(name=name, geometry_type="multipoint", srid=srid)


def multilinestring(name: str, srid: int = 0) -> GeometryColumn:
    return GeometryColumn(name=name, geometry_type="multilinestring", srid=srid)


def multipolygon(name: str, srid: int = 0) -> GeometryColumn:
    return GeometryColumn(name=name, geometry_type="multipolygon", srid=srid)


def geometrycollection(name: str, srid: int = 0) -> GeometryColumn:
    return GeometryColumn(name=name, geometry_type="geometrycollection", srid=srid)


# ----------------------------------------------------------------------------
# Keys
# ----------------------------------------------------------------------------


def primary_key(columns: ColumnNames, name: str = "") -> PrimaryKey:
    return PrimaryKey(columns=_names(columns), name=name)


def unique_index(columns: ColumnNames, name: str = "") -> UniqueIndex:
    return UniqueIndex(columns=_names(columns), name=name)


def index(columns: ColumnNames, name: str = "") -> Index:
    return Index(columns=_names(columns), name=name)


def foreign_key(
    columns: ColumnNames,
    foreign_table: str,
    foreign_columns: ColumnNames | None = None,
    name: str = "",
) -> ForeignKey:
    """Reference ``foreign_table``.

    When the referenced columns have the same names as the local ones,
    ``foreign_columns`` can be left out.
    """
    local = _names(columns)
    foreign = local if foreign_columns is None else _names(foreign_columns)
    return ForeignKey(
        columns=local,
        foreign_table=foreign_table,
        foreign_columns=foreign,
        name=name,
    )
