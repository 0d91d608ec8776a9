"""Keys and indexes of the schema model.

Column order in every key is significant: it is the order of the composite
key and is rendered exactly as given.  An empty ``name`` lets the engine pick
one.
"""

from enum import Enum
from typing import Literal, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ReferentialAction(str, Enum):
    """What happens to referencing rows when the referenced row changes."""

    NO_ACTION = "NO ACTION"
    RESTRICT = "RESTRICT"
    CASCADE = "CASCADE"
    SET_NULL = "SET NULL"
    SET_DEFAULT = "SET DEFAULT"


class BaseKey(BaseModel):
    model_config = ConfigDict(frozen=True)

    columns: tuple[str, ...] = Field(min_length=1)
    name: str = ""


class PrimaryKey(BaseKey):
    kind: Literal["primary"] = "primary"


class UniqueIndex(BaseKey):
    kind: Literal["unique"] = "unique"


class Index(BaseKey):
    kind: Literal["index"] = "index"


class ForeignKey(BaseKey):
    """A reference from ``columns`` to ``foreign_table.foreign_columns``.

    Example:
        >>> fk = ForeignKey(columns=("user_id",), foreign_table="users", foreign_columns=("id",))
        >>> fk.on_delete_cascade().on_delete
        <ReferentialAction.CASCADE: 'CASCADE'>
    """

    kind: Literal["foreign"] = "foreign"
    foreign_table: str = Field(min_length=1)
    foreign_columns: tuple[str, ...]
    on_delete: ReferentialAction = ReferentialAction.NO_ACTION
    on_update: ReferentialAction = ReferentialAction.NO_ACTION

    @model_validator(mode="after")
    def check_column_count(self) -> Self:
        if len(self.columns) != len(self.foreign_columns):
            raise ValueError(
                f"foreign key has {len(self.columns)} local column(s) "
                f"but {len(self.foreign_columns)} referenced column(s)"
            )
        return self

    def with_on_delete(self, action: ReferentialAction) -> Self:
        return self.model_copy(update={"on_delete": ReferentialAction(action)})

    def with_on_update(self, action: ReferentialAction) -> Self:
        return self.model_copy(update={"on_update": ReferentialAction(action)})

    def on_delete_cascade(self) -> Self:
        return self.with_on_delete(ReferentialAction.CASCADE)

    def on_delete_set_null(self) -> Self:
        return self.with_on_delete(ReferentialAction.SET_NULL)

    def on_update_cascade(self) -> Self:
        return self.with_on_update(ReferentialAction.CASCADE)

    def signature(self) -> tuple:
        """Everything that defines the constraint except its name."""
        return (
            self.columns,
            self.foreign_table,
            self.foreign_columns,
            self.on_delete,
            self.on_update,
        )
