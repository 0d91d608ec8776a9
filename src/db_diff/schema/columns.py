"""Column variants of the schema model.

Every column kind is a frozen pydantic model carrying a ``kind`` tag, so
``Column`` is a discriminated union and drivers dispatch on ``column.kind``.

Columns are values: the ``with_*`` builder methods return a modified copy and
never change the instance they are called on, so the same column can be
reused safely.

Example:
    >>> name = CharacterColumn(name="name", length=80, varying=True, national=True)
    >>> name.with_nullable().with_default("").nullable
    True
    >>> name.nullable
    False
"""

from typing import Annotated, Literal, Self, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from db_diff.expression import Expression

IntegerBits = Literal[8, 16, 24, 32, 64]
SizeTier = Literal[1, 2, 3, 4]  # tiny, small, medium, full
GeometryType = Literal[
    "geometry",
    "point",
    "linestring",
    "polygon",
    "multipoint",
    "multilinestring",
    "multipolygon",
    "geometrycollection",
]

DefaultValue = bool | int | float | str | Expression | None


class BaseColumn(BaseModel):
    """Settings shared by every column kind."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    nullable: bool = False
    default: DefaultValue = None
    comment: str = ""
    invisible: bool = False

    def with_nullable(self, nullable: bool = True) -> Self:
        return self.model_copy(update={"nullable": nullable})

    def with_default(self, default: DefaultValue) -> Self:
        return self.model_copy(update={"default": default})

    def with_comment(self, comment: str) -> Self:
        return self.model_copy(update={"comment": comment})

    def with_invisible(self, invisible: bool = True) -> Self:
        """Hide the column from ``SELECT *`` (MySQL 8.0.23+ only)."""
        return self.model_copy(update={"invisible": invisible})


class CollatedColumn(BaseColumn):
    """A column whose values are compared under a collation."""

    collation: str | None = None

    def with_collation(self, collation: str | None) -> Self:
        return self.model_copy(update={"collation": collation})


class IntegerColumn(BaseColumn):
    kind: Literal["integer"] = "integer"
    bits: IntegerBits = 32
    unsigned: bool = False
    auto_increment: bool = False

    def with_unsigned(self, unsigned: bool = True) -> Self:
        return self.model_copy(update={"unsigned": unsigned})

    def with_auto_increment(self, auto_increment: bool = True) -> Self:
        return self.model_copy(update={"auto_increment": auto_increment})


class BooleanColumn(BaseColumn):
    kind: Literal["boolean"] = "boolean"


class CharacterColumn(CollatedColumn):
    """CHAR / VARCHAR.  ``national`` columns hold Unicode, others ASCII."""

    kind: Literal["character"] = "character"
    length: int = Field(ge=1, le=65535)
    varying: bool = True
    national: bool = False


class TextColumn(CollatedColumn):
    kind: Literal["text"] = "text"
    length: SizeTier = 4


class BinaryColumn(BaseColumn):
    kind: Literal["binary"] = "binary"
    length: int = Field(ge=1, le=65535)
    varying: bool = True


class BlobColumn(BaseColumn):
    kind: Literal["blob"] = "blob"
    length: SizeTier = 4


class FloatColumn(BaseColumn):
    """Binary floating point.  More than 23 bits of precision means double."""

    kind: Literal["float"] = "float"
    precision_bits: int = Field(default=23, ge=1, le=53)


class DecimalColumn(BaseColumn):
    kind: Literal["decimal"] = "decimal"
    precision: int = Field(ge=1, le=65)
    scale: int = Field(default=0, ge=0, le=30)

    @field_validator("scale")
    @classmethod
    def check_scale(cls, value: int, info: ValidationInfo) -> int:
        precision = info.data.get("precision")
        if precision is not None and value > precision:
            raise ValueError(f"scale {value} exceeds precision {precision}")
        return value


class TimestampColumn(BaseColumn):
    kind: Literal["timestamp"] = "timestamp"
    precision: int = Field(default=0, ge=0, le=6)


class DatetimeColumn(BaseColumn):
    kind: Literal["datetime"] = "datetime"
    precision: int = Field(default=0, ge=0, le=6)


class DateColumn(BaseColumn):
    kind: Literal["date"] = "date"


class TimeColumn(BaseColumn):
    kind: Literal["time"] = "time"
    precision: int = Field(default=0, ge=0, le=6)


class YearColumn(BaseColumn):
    kind: Literal["year"] = "year"


class EnumColumn(BaseColumn):
    kind: Literal["enum"] = "enum"
    values: tuple[str, ...] = Field(min_length=1)


class SetColumn(BaseColumn):
    kind: Literal["set"] = "set"
    values: tuple[str, ...] = Field(min_length=1)


class UuidColumn(BaseColumn):
    kind: Literal["uuid"] = "uuid"


class JsonColumn(BaseColumn):
    kind: Literal["json"] = "json"


class GeometryColumn(BaseColumn):
    kind: Literal["geometry"] = "geometry"
    geometry_type: GeometryType = "geometry"
    srid: int = Field(default=0, ge=0)


Column = Annotated[
    Union[
        IntegerColumn,
        BooleanColumn,
        CharacterColumn,
        TextColumn,
        BinaryColumn,
        BlobColumn,
        FloatColumn,
        DecimalColumn,
        TimestampColumn,
        DatetimeColumn,
        DateColumn,
        TimeColumn,
        YearColumn,
        EnumColumn,
        SetColumn,
        UuidColumn,
        JsonColumn,
        GeometryColumn,
    ],
    Field(discriminator="kind"),
]

COLUMN_KINDS = (
    "integer",
    "boolean",
    "character",
    "text",
    "binary",
    "blob",
    "float",
    "decimal",
    "timestamp",
    "datetime",
    "date",
    "time",
    "year",
    "enum",
    "set",
    "uuid",
    "json",
    "geometry",
)
