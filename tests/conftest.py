"""Shared fixtures: offline connections and scripted catalog queries."""

import itertools
import textwrap
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from sqlalchemy.dialects.mysql.pymysql import MySQLDialect_pymysql
from sqlalchemy.dialects.postgresql.psycopg import PGDialect_psycopg
from sqlalchemy.dialects.sqlite.pysqlite import SQLiteDialect_pysqlite

_module_counter = itertools.count()

# Offline dialects: constructing one does not import its DBAPI.
_DIALECTS = {
    "mysql": MySQLDialect_pymysql,
    "mariadb": MySQLDialect_pymysql,
    "postgresql": PGDialect_psycopg,
    "sqlite": SQLiteDialect_pysqlite,
}


class ScriptedQuery:
    """Stand-in for ``Driver.query``.

    Answers each query with the rows of the first entry whose SQL fragment
    occurs in the statement, and records every call.
    """

    def __init__(self, responses: list[tuple[str, list[dict]]]) -> None:
        self.responses = responses
        self.calls: list[tuple[str, object]] = []

    def __call__(self, sql: str, bindings: object = None) -> list[dict]:
        self.calls.append((sql, bindings))
        for fragment, rows in self.responses:
            if fragment in sql:
                return rows
        return []


@pytest.fixture
def make_connection():
    """Build a connection stub around a real SQLAlchemy dialect.

    Unknown engine names get a bare namespace, enough to pick (or fail to
    pick) a driver.
    """

    def factory(name: str = "mysql", version: tuple = (8, 0, 36), **dialect_attributes):
        dialect_class = _DIALECTS.get(name)
        dialect = dialect_class() if dialect_class else SimpleNamespace()
        dialect.name = name
        dialect.server_version_info = version
        for attribute, value in dialect_attributes.items():
            setattr(dialect, attribute, value)

        connection = MagicMock()
        connection.dialect = dialect
        return connection

    return factory


@pytest.fixture
def scripted_query():
    return ScriptedQuery


@pytest.fixture
def target_module(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Write an importable module defining ``SCHEMA`` and return its reference."""

    def factory(body: str) -> str:
        name = f"db_diff_target_{next(_module_counter)}"
        (tmp_path / f"{name}.py").write_text(textwrap.dedent(body))
        monkeypatch.syspath_prepend(str(tmp_path))
        return f"{name}:SCHEMA"

    return factory
