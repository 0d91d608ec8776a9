"""Load database profiles from db.toml."""

import logging
import tomllib
from pathlib import Path

from db_diff.config.models import DatabaseConfig

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "db.toml"


def load_db_config(config_path: Path | None = None) -> DatabaseConfig:
    """Read ``[profiles.<name>]`` tables from db.toml.

    Sections other than ``profiles`` are ignored, so the file can be shared
    with other tools.

    Args:
        config_path: Path to db.toml (default: ./db.toml in the working
            directory)

    Returns:
        DatabaseConfig with all profiles

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If the file is not valid TOML or a profile is malformed
    """
    if config_path is None:
        config_path = Path.cwd() / CONFIG_FILE_NAME

    if not config_path.exists():
        raise FileNotFoundError(
            f"Database config not found: {config_path}\n"
            f"Create a {CONFIG_FILE_NAME} with a [profiles.<name>] section for each database."
        )

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in {config_path}: {e}") from e

    config = DatabaseConfig.model_validate({"profiles": data.get("profiles", {})})
    logger.debug("Loaded %d profile(s) from %s", len(config.profiles), config_path)
    return config
