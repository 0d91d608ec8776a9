"""Raw SQL marker.

``Expression`` tells the DDL renderer that a string is SQL to be emitted
verbatim rather than application data to be quoted.  It is used for column
defaults such as ``CURRENT_TIMESTAMP`` and is what ``quote_identifier`` and
``quote_value`` return.

Usage:
    from db_diff.expression import Expression

    created = timestamp("created_at").with_default(Expression("CURRENT_TIMESTAMP"))
"""

from pydantic import BaseModel, ConfigDict


class Expression(BaseModel):
    """A fragment of raw SQL.

    Example:
        >>> str(Expression("CURRENT_TIMESTAMP"))
        'CURRENT_TIMESTAMP'
    """

    model_config = ConfigDict(frozen=True)

    sql: str

    def __init__(self, sql: str) -> None:
        super().__init__(sql=sql)

    def __str__(self) -> str:
        return self.sql
