from __future__ import annotations

import pathlib
from typing import List

import yaml
from pydantic import ValidationError

from queryproc.databases.models import DatabaseConfig, DatabaseFileConfig


def load_database_configs(path: pathlib.Path) -> List[DatabaseConfig]:
    """
    Load database configurations from YAML.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        The configured databases, in file order.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the file is not valid YAML or does not match the schema.
    """
    path = pathlib.Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Database config not found: {path}")

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Failed to parse YAML from {path}: {e}") from e

    try:
        file_config = DatabaseFileConfig.model_validate(raw)
    except ValidationError as e:
        raise ValueError(f"Database Configuration Invalid: {e}") from e

    ids = [db.id for db in file_config.databases]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise ValueError(f"Duplicate database ids in {path}: {duplicates}")
    return file_config.databases
