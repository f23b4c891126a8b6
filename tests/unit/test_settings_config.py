from unittest.mock import MagicMock

import pytest

from queryproc.common.errors import UnknownReferenceError
from queryproc.common.settings import Settings
from queryproc.databases.config import load_database_configs
from queryproc.databases.registry import DatabaseRegistry
from queryproc.drivers.discovery import BUILTIN_DRIVERS, discover_drivers
from queryproc.drivers.mongo.adapter import MongoAdapter
from queryproc.drivers.sql.adapter import GenericSQLAdapter

CONFIG_YAML = """
version: 1
databases:
  - id: 1
    name: venues-sql
    driver: generic-sql
    connection:
      url: "sqlite:///${QP_TEST_DB_DIR}/venues.db"
    options:
      cardinality_threshold: 10
  - id: 2
    name: venues-mongo
    driver: mongo
    connection:
      url: "mongodb://localhost:27017"
      database: venues
"""


def test_settings_read_environment(monkeypatch):
    # Validates env configuration because deployments tune limits without code changes.
    # Arrange
    monkeypatch.setenv("QUERY_TIMEOUT_SEC", "12.5")
    monkeypatch.setenv("CONNECTION_RETRIES", "0")
    monkeypatch.setenv("DATABASE_CONFIG", "/etc/queryproc/databases.yaml")

    # Act
    loaded = Settings()

    # Assert
    assert loaded.query_timeout_sec == 12.5
    assert loaded.connection_retries == 0
    assert loaded.database_config_path == "/etc/queryproc/databases.yaml"


def test_load_database_configs_expands_env(tmp_path, monkeypatch):
    # Validates YAML loading because connection strings may reference secrets in the environment.
    # Arrange
    monkeypatch.setenv("QP_TEST_DB_DIR", "/data")
    path = tmp_path / "databases.yaml"
    path.write_text(CONFIG_YAML, encoding="utf-8")

    # Act
    configs = load_database_configs(path)

    # Assert
    assert [c.id for c in configs] == [1, 2]
    assert configs[0].connection.url == "sqlite:////data/venues.db"
    assert configs[0].key == "venues-sql"
    assert configs[1].connection.database == "venues"


def test_missing_config_file_raises(tmp_path):
    # Validates the missing-file error because the CLI reports it distinctly.
    # Act / Assert
    with pytest.raises(FileNotFoundError):
        load_database_configs(tmp_path / "absent.yaml")


@pytest.mark.parametrize(
    "content",
    [
        "databases: [",
        "databases:\n  - id: one\n    driver: mongo\n    connection: {url: x}\n",
        "databases:\n  - {id: 1, driver: mongo, connection: {url: x}}\n  - {id: 1, driver: mongo, connection: {url: y}}\n",
    ],
)
def test_invalid_config_files_raise_value_error(tmp_path, content):
    # Validates config validation because a bad file must fail at startup.
    # Arrange
    path = tmp_path / "databases.yaml"
    path.write_text(content, encoding="utf-8")

    # Act / Assert
    with pytest.raises(ValueError):
        load_database_configs(path)


def test_builtin_drivers_are_discovered():
    # Validates discovery because both bundled drivers must always be available.
    # Act
    drivers = discover_drivers()

    # Assert
    assert drivers["generic-sql"] is GenericSQLAdapter
    assert drivers["mongo"] is MongoAdapter
    assert set(BUILTIN_DRIVERS) <= set(drivers)


def test_registry_builds_adapter_from_config(tmp_path, monkeypatch, fast_settings, sql_caps):
    # Validates the adapter factory because configured drivers are resolved by name.
    # Arrange
    monkeypatch.setenv("QP_TEST_DB_DIR", str(tmp_path))
    path = tmp_path / "databases.yaml"
    path.write_text(CONFIG_YAML, encoding="utf-8")
    sql_driver, mongo_driver = MagicMock(), MagicMock()
    sql_driver.from_config.return_value.capabilities = sql_caps
    mongo_driver.from_config.return_value.capabilities = sql_caps
    monkeypatch.setattr(
        "queryproc.databases.registry.discover_drivers",
        lambda: {"generic-sql": sql_driver, "mongo": mongo_driver},
    )

    # Act
    registry = DatabaseRegistry.from_config_file(path, settings=fast_settings)

    # Assert
    assert [b.key for b in registry.list_databases()] == ["venues-sql", "venues-mongo"]
    sql_config = sql_driver.from_config.call_args.args[0]
    assert sql_config.options == {"cardinality_threshold": 10}
    assert sql_driver.from_config.call_args.kwargs == {
        "cardinality_threshold": fast_settings.category_cardinality_threshold,
    }
    assert mongo_driver.from_config.call_args.kwargs == {
        "cardinality_threshold": fast_settings.category_cardinality_threshold,
        "sample_size": fast_settings.catalog_sample_size,
    }


def test_unknown_driver_is_rejected(tmp_path, fast_settings):
    # Validates driver lookup because a typo in the config must fail loudly.
    # Arrange
    path = tmp_path / "databases.yaml"
    path.write_text(
        "databases:\n  - {id: 1, driver: oracle-magic, connection: {url: x}}\n", encoding="utf-8"
    )

    # Act / Assert
    with pytest.raises(ValueError, match="No driver found"):
        DatabaseRegistry.from_config_file(path, settings=fast_settings)


def test_duplicate_registration_is_rejected(fast_settings, sql_caps):
    # Validates registry uniqueness because one id must map to exactly one backend.
    # Arrange
    registry = DatabaseRegistry(settings=fast_settings)
    adapter = MagicMock()
    adapter.capabilities = sql_caps
    registry.register(1, adapter)

    # Act / Assert
    with pytest.raises(ValueError):
        registry.register(1, adapter)
    with pytest.raises(UnknownReferenceError):
        registry.get(2)


def test_close_releases_every_adapter(fast_settings, sql_caps):
    # Validates shutdown because pooled connections must be released.
    # Arrange
    registry = DatabaseRegistry(settings=fast_settings)
    adapters = [MagicMock(capabilities=sql_caps) for _ in range(2)]
    for database_id, adapter in enumerate(adapters, start=1):
        registry.register(database_id, adapter)

    # Act
    registry.close()

    # Assert
    for adapter in adapters:
        adapter.close.assert_called_once_with()
    assert registry.list_databases() == []
