"""Schema comparison using set operations.

Compares a source schema (introspected from the database) against a target
schema (declared by the caller).  Pure logic -- no I/O, no database
connections.

Usage:
    from db_diff.schema.comparator import compare_schemas

    comparison = compare_schemas(connection.introspect(), target)
    if comparison.is_empty:
        print("Schema is up to date")
    else:
        print(comparison.format_report())
"""

from db_diff.schema.keys import ForeignKey
from db_diff.schema.models import Schema, SchemaComparison, Table, TableComparison


def _same_foreign_key(left: ForeignKey, right: ForeignKey) -> bool:
    """Match by definition; names only count when both sides have one."""
    if left.signature() != right.signature():
        return False
    return not (left.name and right.name and left.name != right.name)


def compare_tables(source: Table, target: Table) -> TableComparison:
    """Compare two versions of the same table.

    - ``drop_columns``: in *source* but not in *target* (source order)
    - ``add_columns``: in *target* but not in *source* (target order)
    - ``common_columns``: in both (target order)
    - ``drop_foreign_keys`` / ``add_foreign_keys``: foreign keys without a
      matching definition on the other side
    - ``alter_columns`` stays empty: telling whether a common column changed
      takes a driver, so ``Connection.compare`` fills it in

    Example:
        >>> from db_diff.schema import builder as s
        >>> old = s.table("t", [s.integer("a"), s.integer("old_col")])
        >>> new = s.table("t", [s.integer("a"), s.integer("b")])
        >>> result = compare_tables(old, new)
        >>> result.drop_columns, result.add_columns, result.common_columns
        (['old_col'], ['b'], ['a'])
    """
    source_names: set[str] = set(source.column_names)
    target_names: set[str] = set(target.column_names)

    drop_foreign_keys: list[ForeignKey] = [
        fk
        for fk in source.foreign_keys
        if not any(_same_foreign_key(fk, other) for other in target.foreign_keys)
    ]
    add_foreign_keys: list[ForeignKey] = [
        fk
        for fk in target.foreign_keys
        if not any(_same_foreign_key(fk, other) for other in source.foreign_keys)
    ]

    return TableComparison(
        table=target.name,
        drop_columns=[name for name in source.column_names if name not in target_names],
        add_columns=[name for name in target.column_names if name not in source_names],
        common_columns=[name for name in target.column_names if name in source_names],
        drop_foreign_keys=drop_foreign_keys,
        add_foreign_keys=add_foreign_keys,
    )


def compare_schemas(source: Schema, target: Schema) -> SchemaComparison:
    """Compare an introspected schema against the desired one.

    Tables are visited in the target's name order, so the result is
    deterministic for unchanged inputs.

    Args:
        source: Schema read from the live database.
        target: Schema declared by the caller.

    Returns:
        ``SchemaComparison`` with:

        - ``missing_tables``: target tables that do not exist yet
        - ``extra_tables``: database tables the target does not mention
          (warning only -- they are never dropped)
        - ``tables``: one ``TableComparison`` per table present on both sides

    Examples:
        >>> from db_diff.schema import builder as s
        >>> source = s.schema([s.table("a", [s.integer("id")])])
        >>> target = s.schema([s.table("a", [s.integer("id")]), s.table("b", [s.integer("id")])])
        >>> compare_schemas(source, target).missing_tables
        ['b']
    """
    source_tables: set[str] = set(source.table_names)
    target_tables: set[str] = set(target.table_names)

    missing_tables: list[str] = [name for name in target.table_names if name not in source_tables]
    extra_tables: list[str] = [name for name in source.table_names if name not in target_tables]

    tables: list[TableComparison] = []
    for name, target_table in target.tables.items():
        source_table = source.get_table(name)
        if source_table is not None:
            tables.append(compare_tables(source_table, target_table))

    return SchemaComparison(
        missing_tables=missing_tables,
        extra_tables=extra_tables,
        tables=tables,
    )
