"""CLI for schema introspection and diffing.

Provides commands for database profile management, live schema inspection,
and generating the DDL that brings a database in line with a declared
schema.

Usage:
    db-diff profiles
    db-diff use local
    db-diff use --clear
    db-diff tables
    DB_PROFILE=local db-diff inspect --table user
    db-diff diff --target myapp.schema:SCHEMA
    db-diff check --target myapp.schema:SCHEMA --profile ci

Commands:
    profiles  - List available profiles
    use       - Remember a profile in .db-profile, or forget it with --clear
    tables    - List tables managed under the profile's prefix
    inspect   - Show introspected tables and column definitions
    diff      - Print the DDL needed to reach the target schema
    check     - Compare against the target schema; exit 1 on drift
"""

import argparse
import sys

from rich.console import Console
from rich.table import Table

from db_diff.config.loader import load_db_config
from db_diff.exceptions import DbDiffError
from db_diff.factory import (
    clear_profile_lock,
    load_target_schema,
    open_connection,
    read_profile_lock,
    write_profile_lock,
)

console = Console()


def _connection_options(args: argparse.Namespace) -> dict:
    return {
        "profile_name": args.profile,
        "env_prefix": args.env_prefix,
        "database_url": args.url,
        "prefix": args.prefix,
    }


def _print_error(error: Exception) -> int:
    console.print(f"[bold red]x[/bold red] {error}")
    return 1


# ============================================================================
# Commands
# ============================================================================


def cmd_profiles(args: argparse.Namespace) -> int:
    """List available profiles from db.toml.

    Reads only local TOML config, no database calls.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 on success, 1 if db.toml not found.
    """
    try:
        config = load_db_config()
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    current = read_profile_lock()

    table = Table(
        title="Database Profiles", show_header=True, header_style="bold"
    )
    table.add_column("", width=2)
    table.add_column("Profile")
    table.add_column("Prefix")
    table.add_column("Description")

    for name, profile in config.profiles.items():
        marker = "[bold green]*[/bold green]" if name == current else " "
        table.add_row(
            marker,
            f"[bold cyan]{name}[/bold cyan]" if name == current else name,
            profile.prefix,
            profile.description or "",
        )

    console.print(table)

    if current:
        console.print("\n[bold green]*[/bold green] = current profile")

    return 0


def cmd_use(args: argparse.Namespace) -> int:
    """Remember a profile for later commands, or forget it with ``--clear``.

    Returns:
        0 on success, 1 if the profile is missing or not in db.toml.
    """
    if args.clear:
        clear_profile_lock()
        console.print("[bold green]v[/bold green] Cleared remembered profile")
        return 0

    if not args.name:
        console.print("[bold red]x[/bold red] Profile name required (or --clear)")
        return 1

    try:
        config = load_db_config()
    except (FileNotFoundError, ValueError) as e:
        return _print_error(e)

    if args.name not in config.profiles:
        available = ", ".join(config.profiles) or "none"
        console.print(
            f"[bold red]x[/bold red] Profile '{args.name}' not found. Available: {available}"
        )
        return 1

    write_profile_lock(args.name)
    console.print(f"[bold green]v[/bold green] Using profile [bold cyan]{args.name}[/bold cyan]")
    return 0


def cmd_tables(args: argparse.Namespace) -> int:
    """List logical table names, one per line."""
    try:
        with open_connection(**_connection_options(args)) as connection:
            tables = connection.driver.list_tables()
    except (DbDiffError, FileNotFoundError, ValueError) as e:
        return _print_error(e)

    for name in tables:
        console.print(name)
    return 0


def cmd_inspect(args: argparse.Namespace) -> int:
    """Show columns and keys of the live tables as rich tables."""
    try:
        with open_connection(**_connection_options(args)) as connection:
            driver = connection.driver
            if args.table:
                if not connection.table_exists(args.table):
                    console.print(f"[bold red]x[/bold red] Table '{args.table}' not found")
                    return 1
                tables = [driver.introspect_table(args.table)]
            else:
                tables = list(connection.introspect().tables.values())

            for table in tables:
                grid = Table(title=table.name, show_header=True, header_style="bold")
                grid.add_column("Column")
                grid.add_column("Definition", style="dim")
                for column in table.columns:
                    grid.add_row(column.name, driver.column_sql(column))
                console.print(grid)

                for key in (*table.primary_keys, *table.unique_indexes, *table.indexes):
                    console.print(f"  {key.kind} {key.name or '-'} ({', '.join(key.columns)})")
                for fk in table.foreign_keys:
                    console.print(
                        f"  foreign {fk.name or '-'} ({', '.join(fk.columns)})"
                        f" -> {fk.foreign_table} ({', '.join(fk.foreign_columns)})"
                    )
    except (DbDiffError, FileNotFoundError, ValueError, NotImplementedError) as e:
        return _print_error(e)

    return 0


def cmd_diff(args: argparse.Namespace) -> int:
    """Print the DDL statements, each terminated by a semicolon.

    Output is plain text so it can be piped into a SQL client.
    """
    try:
        target = load_target_schema(args.target)
        with open_connection(
            **_connection_options(args), alter_unchanged_columns=args.alter_all
        ) as connection:
            statements = connection.diff_schema(target)
    except (DbDiffError, FileNotFoundError, ValueError, NotImplementedError) as e:
        return _print_error(e)

    for statement in statements:
        print(f"{statement};")
    return 0


def cmd_check(args: argparse.Namespace) -> int:
    """Compare against the target schema.

    Returns:
        0 when the database matches, 1 on drift or error.
    """
    try:
        target = load_target_schema(args.target)
        with open_connection(**_connection_options(args)) as connection:
            comparison = connection.compare(target)
    except (DbDiffError, FileNotFoundError, ValueError) as e:
        return _print_error(e)

    if comparison.is_empty:
        console.print("[bold green]v[/bold green] Schema matches target")
        if comparison.extra_tables:
            console.print(
                f"  [yellow]Extra tables (warning): {', '.join(comparison.extra_tables)}[/yellow]"
            )
        return 0

    console.print("[bold red]x[/bold red] Schema has drifted")
    console.print(comparison.format_report())
    return 1


# ============================================================================
# Main entry point
# ============================================================================


def _add_connection_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--profile", help="Profile from db.toml (default: DB_PROFILE or .db-profile)")
    parser.add_argument("--url", help="Database URL, bypassing db.toml")
    parser.add_argument("--prefix", help="Table prefix (default: the profile's prefix)")


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = argparse.ArgumentParser(
        prog="db-diff",
        description="Cross-database schema introspection and migration diffs",
    )

    # Global option: --env-prefix
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_DB_PROFILE)"
        ),
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # profiles command
    p_profiles = subparsers.add_parser("profiles", help="List available profiles")
    p_profiles.set_defaults(func=cmd_profiles)

    # use command
    p_use = subparsers.add_parser("use", help="Remember a profile in .db-profile")
    p_use.add_argument("name", nargs="?", help="Profile name from db.toml")
    p_use.add_argument("--clear", action="store_true", help="Forget the remembered profile")
    p_use.set_defaults(func=cmd_use)

    # tables command
    p_tables = subparsers.add_parser("tables", help="List tables under the prefix")
    _add_connection_arguments(p_tables)
    p_tables.set_defaults(func=cmd_tables)

    # inspect command
    p_inspect = subparsers.add_parser("inspect", help="Show introspected tables")
    _add_connection_arguments(p_inspect)
    p_inspect.add_argument("--table", help="Only this table (without prefix)")
    p_inspect.set_defaults(func=cmd_inspect)

    # diff command
    p_diff = subparsers.add_parser("diff", help="Print DDL to reach the target schema")
    _add_connection_arguments(p_diff)
    p_diff.add_argument(
        "--target",
        required=True,
        help="Target schema as package.module:attribute",
    )
    p_diff.add_argument(
        "--alter-all",
        action="store_true",
        help="Alter every common column, even when unchanged",
    )
    p_diff.set_defaults(func=cmd_diff)

    # check command
    p_check = subparsers.add_parser("check", help="Exit 1 if the database has drifted")
    _add_connection_arguments(p_check)
    p_check.add_argument(
        "--target",
        required=True,
        help="Target schema as package.module:attribute",
    )
    p_check.set_defaults(func=cmd_check)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
