from __future__ import annotations

import pathlib
import threading
from typing import Dict, List, NamedTuple, Optional

from queryproc.catalog.in_memory import InMemoryCatalog
from queryproc.catalog.models import TableDescriptor
from queryproc.common.errors import UnknownReferenceError
from queryproc.common.logger import get_logger
from queryproc.common.settings import Settings, settings as default_settings
from queryproc.databases.config import load_database_configs
from queryproc.databases.models import DatabaseConfig
from queryproc.drivers.capabilities import CapabilitySet
from queryproc.drivers.discovery import discover_drivers
from queryproc.drivers.interfaces import DriverAdapter

logger = get_logger(__name__)


class DatabaseBinding(NamedTuple):
    """Everything needed to run a query against one database."""
    database_id: int
    key: str
    adapter: DriverAdapter
    catalog: InMemoryCatalog
    capabilities: CapabilitySet


class DatabaseRegistry:
    """
    Maps database ids to their driver adapters and catalog.

    Acts as the factory for DriverAdapter instances configured from YAML.
    """

    def __init__(self, catalog: Optional[InMemoryCatalog] = None, settings: Optional[Settings] = None):
        self.catalog = catalog or InMemoryCatalog()
        self.settings = settings or default_settings
        self._bindings: Dict[int, DatabaseBinding] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config_file(cls, path: pathlib.Path, settings: Optional[Settings] = None) -> "DatabaseRegistry":
        registry = cls(settings=settings)
        for config in load_database_configs(path):
            registry.register_database(config)
        return registry

    def register(self, database_id: int, adapter: DriverAdapter, key: Optional[str] = None) -> DatabaseBinding:
        """Binds an already constructed adapter to ``database_id``."""
        binding = DatabaseBinding(
            database_id=database_id,
            key=key or f"database-{database_id}",
            adapter=adapter,
            catalog=self.catalog,
            capabilities=adapter.capabilities,
        )
        with self._lock:
            if database_id in self._bindings:
                raise ValueError(f"Database {database_id} is already registered")
            self._bindings[database_id] = binding
        logger.info(f"Registered database {binding.key} (id={database_id}, driver={adapter.capabilities.driver})")
        return binding

    def register_database(self, config: DatabaseConfig) -> DatabaseBinding:
        """Instantiates the configured driver and binds it."""
        return self.register(config.id, self._create_adapter(config), key=config.key)

    def _create_adapter(self, config: DatabaseConfig) -> DriverAdapter:
        """
        Factory method to instantiate the correct adapter based on the configured driver.
        Uses built-ins plus dynamic discovery via entry points.
        """
        available = discover_drivers()
        driver = config.driver.lower()
        if driver not in available:
            raise ValueError(
                f"No driver found for '{driver}'. "
                f"Available: {sorted(available)}."
            )
        return available[driver].from_config(
            config,
            **self._driver_defaults(driver),
        )

    def _driver_defaults(self, driver: str) -> Dict[str, int]:
        defaults = {"cardinality_threshold": self.settings.category_cardinality_threshold}
        if driver == "mongo":
            defaults["sample_size"] = self.settings.catalog_sample_size
        return defaults

    def get(self, database_id: int) -> DatabaseBinding:
        binding = self._bindings.get(database_id)
        if binding is None:
            raise UnknownReferenceError("database", database_id)
        return binding

    def list_databases(self) -> List[DatabaseBinding]:
        return [self._bindings[k] for k in sorted(self._bindings)]

    def sync(self, database_id: int) -> List[TableDescriptor]:
        """Refreshes the catalog entries of one database from its backend."""
        binding = self.get(database_id)
        logger.info(f"Synchronising catalog for {binding.key}")
        return binding.adapter.sync_catalog(binding.catalog, database_id)

    def sync_all(self) -> None:
        for binding in self.list_databases():
            self.sync(binding.database_id)

    def close(self) -> None:
        with self._lock:
            bindings = list(self._bindings.values())
            self._bindings.clear()
        for binding in bindings:
            binding.adapter.close()
