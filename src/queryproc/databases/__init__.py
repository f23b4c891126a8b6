"""Database bindings, configuration, and driver instantiation."""
from queryproc.databases.models import ConnectionConfig, DatabaseConfig, DatabaseFileConfig
from queryproc.databases.config import load_database_configs
from queryproc.databases.registry import DatabaseBinding, DatabaseRegistry

__all__ = [
    "ConnectionConfig",
    "DatabaseConfig",
    "DatabaseFileConfig",
    "load_database_configs",
    "DatabaseBinding",
    "DatabaseRegistry",
]
