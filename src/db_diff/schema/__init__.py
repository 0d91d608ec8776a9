"""Engine-neutral schema model and comparison.

Provides the column and key variants, ``Table`` and ``Schema`` containers,
the ``builder`` factory functions used to declare a target schema, and
``compare_schemas`` for pure source-vs-target comparison.

Usage:
    from db_diff.schema import builder as s
    from db_diff.schema import Schema, Table, compare_schemas
"""

from db_diff.schema import builder
from db_diff.schema.columns import (
    COLUMN_KINDS,
    BaseColumn,
    BinaryColumn,
    BlobColumn,
    BooleanColumn,
    CharacterColumn,
    Column,
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
from db_diff.schema.comparator import compare_schemas, compare_tables
from db_diff.schema.keys import ForeignKey, Index, PrimaryKey, ReferentialAction, UniqueIndex
from db_diff.schema.models import Schema, SchemaComparison, Table, TableComparison

__all__ = [
    "builder",
    "COLUMN_KINDS",
    "BaseColumn",
    "BinaryColumn",
    "BlobColumn",
    "BooleanColumn",
    "CharacterColumn",
    "Column",
    "DateColumn",
    "DatetimeColumn",
    "DecimalColumn",
    "EnumColumn",
    "FloatColumn",
    "GeometryColumn",
    "IntegerColumn",
    "JsonColumn",
    "SetColumn",
    "TextColumn",
    "TimeColumn",
    "TimestampColumn",
    "UuidColumn",
    "YearColumn",
    "ForeignKey",
    "Index",
    "PrimaryKey",
    "ReferentialAction",
    "UniqueIndex",
    "Schema",
    "SchemaComparison",
    "Table",
    "TableComparison",
    "compare_schemas",
    "compare_tables",
]
