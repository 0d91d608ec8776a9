"""Database engine drivers.

Each driver implements the ``Driver`` contract for one engine family:

- ``MySQLDriver``: MySQL and MariaDB
- ``PostgreSQLDriver``: PostgreSQL
- ``SQLiteDriver``: SQLite

``DRIVERS`` maps SQLAlchemy dialect names to driver classes.
"""

from db_diff.drivers.base import Driver, parse_value_list
from db_diff.drivers.mysql import MySQLDriver
from db_diff.drivers.postgresql import PostgreSQLDriver
from db_diff.drivers.sqlite import SQLiteDriver

DRIVERS: dict[str, type[Driver]] = {
    "mysql": MySQLDriver,
    "mariadb": MySQLDriver,
    "postgresql": PostgreSQLDriver,
    "sqlite": SQLiteDriver,
}

__all__ = [
    "DRIVERS",
    "Driver",
    "MySQLDriver",
    "PostgreSQLDriver",
    "SQLiteDriver",
    "parse_value_list",
]
