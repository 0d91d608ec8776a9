"""Connection factory.

Resolves which database to talk to and opens a ``db_diff.Connection`` on it.

Profile resolution order:
1. Explicit ``profile_name`` argument
2. ``{env_prefix}DB_PROFILE`` env var
3. ``.db-profile`` lock file in the working directory (written by
   ``db-diff use``)
4. Raise ``ProfileNotFoundError``

Usage:
    from db_diff.factory import load_target_schema, open_connection

    target = load_target_schema("myapp.schema:SCHEMA")
    with open_connection("local") as connection:
        statements = connection.diff_schema(target)
"""

import importlib
import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from urllib.parse import quote

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from db_diff.config import DatabaseProfile, load_db_config
from db_diff.connection import Connection
from db_diff.exceptions import ConfigurationError
from db_diff.schema.models import Schema

logger = logging.getLogger(__name__)

# Profile lock file path
_PROFILE_LOCK_FILE = Path.cwd() / ".db-profile"

# URL scheme -> SQLAlchemy dialect+driver
_URL_SCHEMES = {
    "postgres://": "postgresql+psycopg://",
    "postgresql://": "postgresql+psycopg://",
    "mysql://": "mysql+pymysql://",
    "mariadb://": "mariadb+pymysql://",
}


# ============================================================================
# Profile Lock File Operations
# ============================================================================


class ProfileNotFoundError(ConfigurationError):
    """Raised when no database profile is configured."""

    pass


def read_profile_lock() -> str | None:
    """Read profile name from lock file.

    Returns:
        Profile name if lock file exists, None otherwise
    """
    if _PROFILE_LOCK_FILE.exists():
        return _PROFILE_LOCK_FILE.read_text().strip()
    return None


def write_profile_lock(profile_name: str) -> None:
    """Write profile name to lock file.

    Args:
        profile_name: Name of a profile that exists in db.toml
    """
    _PROFILE_LOCK_FILE.write_text(profile_name)


def clear_profile_lock() -> None:
    """Remove profile lock file."""
    if _PROFILE_LOCK_FILE.exists():
        _PROFILE_LOCK_FILE.unlink()


def get_active_profile_name(env_prefix: str = "") -> str:
    """Get active profile name from env var or lock file.

    Args:
        env_prefix: Prefix of the env var, e.g. ``"MYAPP_"`` reads
            ``MYAPP_DB_PROFILE``.

    Returns:
        Profile name

    Raises:
        ProfileNotFoundError: If no profile is configured
    """
    env_var = f"{env_prefix}DB_PROFILE"
    env_profile = os.environ.get(env_var)
    if env_profile:
        return env_profile

    lock_profile = read_profile_lock()
    if lock_profile:
        return lock_profile

    raise ProfileNotFoundError(
        "No database profile configured.\n"
        f"Set {env_var}=<name>, run 'db-diff use <name>', or pass --profile."
    )


def get_active_profile(
    profile_name: str | None = None, env_prefix: str = ""
) -> tuple[str, DatabaseProfile]:
    """Get profile name and configuration.

    Returns:
        Tuple of (profile_name, DatabaseProfile)

    Raises:
        ProfileNotFoundError: If no profile configured, or the named profile
            is not in db.toml
        FileNotFoundError: If db.toml is missing
    """
    if profile_name is None:
        profile_name = get_active_profile_name(env_prefix)
    config = load_db_config()

    if profile_name not in config.profiles:
        raise ProfileNotFoundError(
            f"Profile '{profile_name}' not found in db.toml.\n"
            f"Available profiles: {', '.join(config.profiles.keys())}"
        )

    return profile_name, config.profiles[profile_name]


# ============================================================================
# URLs and Engines
# ============================================================================


def normalize_url(url: str) -> str:
    """Add the DBAPI driver to bare ``postgres://`` / ``mysql://`` URLs.

    Example:
        >>> normalize_url("postgres://u:p@host/db")
        'postgresql+psycopg://u:p@host/db'
    """
    for scheme, replacement in _URL_SCHEMES.items():
        if url.startswith(scheme):
            return replacement + url[len(scheme):]
    return url


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve profile URL with password substitution.

    Args:
        profile: Database profile from config

    Returns:
        Connection URL with password substituted and driver scheme applied
    """
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))
    return normalize_url(url)


def create_engine_for_profile(profile: DatabaseProfile) -> Engine:
    """Create a SQLAlchemy engine for a profile.

    ``pool_pre_ping`` is on so a stale pooled connection never reaches
    introspection.
    """
    return create_engine(resolve_url(profile), pool_pre_ping=True)


# ============================================================================
# Connection Factory
# ============================================================================


@contextmanager
def open_connection(
    profile_name: str | None = None,
    env_prefix: str = "",
    database_url: str | None = None,
    prefix: str | None = None,
    alter_unchanged_columns: bool = False,
) -> Iterator[Connection]:
    """Open a diff connection.

    Args:
        profile_name: Profile from db.toml.  Ignored when ``database_url``
            is given.
        env_prefix: Prefix for the ``DB_PROFILE`` env var.
        database_url: Direct connection URL, bypassing db.toml.
        prefix: Table prefix.  Defaults to the profile's prefix.
        alter_unchanged_columns: Passed to ``Connection``.

    Yields:
        ``Connection`` bound to one SQLAlchemy connection.  The engine is
        disposed on exit.

    Raises:
        ProfileNotFoundError: If no profile can be resolved
        FileNotFoundError: If db.toml is missing
        ConfigurationError: If the engine has no driver

    Example:
        >>> with open_connection(database_url="sqlite://") as connection:
        ...     connection.introspect().table_names
        []
    """
    if database_url is not None:
        engine = create_engine(normalize_url(database_url))
        table_prefix = prefix or ""
    else:
        name, profile = get_active_profile(profile_name, env_prefix)
        logger.info("Using profile %s", name)
        engine = create_engine_for_profile(profile)
        table_prefix = profile.prefix if prefix is None else prefix

    try:
        with engine.connect() as conn:
            yield Connection(
                conn,
                prefix=table_prefix,
                alter_unchanged_columns=alter_unchanged_columns,
            )
    finally:
        engine.dispose()


def load_target_schema(reference: str) -> Schema:
    """Import a target schema from ``package.module:attribute``.

    The attribute may be a ``Schema`` or a callable returning one.

    Raises:
        ConfigurationError: If the reference is malformed, cannot be
            imported, or does not produce a ``Schema``
    """
    module_name, _, attribute = reference.partition(":")
    if not module_name or not attribute:
        raise ConfigurationError(f"Target must look like 'package.module:attribute', got '{reference}'")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import target module '{module_name}': {e}") from e

    try:
        target = getattr(module, attribute)
    except AttributeError as e:
        raise ConfigurationError(f"Module '{module_name}' has no attribute '{attribute}'") from e

    if callable(target) and not isinstance(target, Schema):
        target = target()

    if not isinstance(target, Schema):
        raise ConfigurationError(f"'{reference}' is not a Schema (got {type(target).__name__})")

    return target
