"""Runs the same contract tests against every bundled driver.

The relational driver uses a seeded SQLite file; the document driver uses a
mongomock client patched in place of ``pymongo.MongoClient``.
"""
from dataclasses import dataclass

import mongomock
import pytest

from queryproc.catalog.in_memory import InMemoryCatalog
from queryproc.databases.registry import DatabaseRegistry
from queryproc.drivers.capabilities import CapabilitySet
from queryproc.drivers.mongo.adapter import MongoAdapter
from queryproc.drivers.sql.adapter import GenericSQLAdapter
from queryproc.pipeline.runtime import QueryProcessor

from tests.dataset import seed_mongo

DATABASE_ID = 1
MONGO_DATABASE = "test_data"


@dataclass
class DriverEnv:
    """A synced database binding plus a processor, for one driver."""
    driver: str
    processor: QueryProcessor
    registry: DatabaseRegistry
    catalog: InMemoryCatalog
    capabilities: CapabilitySet

    def table_id(self, name: str) -> int:
        return self.catalog.resolve_table(DATABASE_ID, name).id

    def field_id(self, table: str, name: str) -> int:
        return self.catalog.resolve_field(self.table_id(table), name).id

    def format_name(self, name: str) -> str:
        return self.capabilities.format_name(name)

    def run(self, query, **kwargs):
        return self.processor.process({"database": DATABASE_ID, "type": "query", "query": query}, **kwargs)


def _sql_adapter(sqlite_url, monkeypatch):
    return GenericSQLAdapter(
        connection_string=sqlite_url,
        database_key="venues-sql",
        engine_options={"connect_args": {"check_same_thread": False}},
    )


def _mongo_adapter(sqlite_url, monkeypatch):
    client = mongomock.MongoClient()
    seed_mongo(client[MONGO_DATABASE])
    monkeypatch.setattr("queryproc.drivers.mongo.adapter.MongoClient", lambda *args, **kwargs: client)
    return MongoAdapter(uri="mongodb://localhost:27017", database=MONGO_DATABASE, database_key="venues-mongo")


ADAPTER_FACTORIES = {
    "generic-sql": _sql_adapter,
    "mongo": _mongo_adapter,
}


@pytest.fixture(params=sorted(ADAPTER_FACTORIES))
def env(request, sqlite_url, monkeypatch, fast_settings):
    adapter = ADAPTER_FACTORIES[request.param](sqlite_url, monkeypatch)
    registry = DatabaseRegistry(settings=fast_settings)
    registry.register(DATABASE_ID, adapter, key=adapter.database_key)
    registry.sync(DATABASE_ID)
    processor = QueryProcessor(registry, settings=fast_settings)
    try:
        yield DriverEnv(
            driver=request.param,
            processor=processor,
            registry=registry,
            catalog=registry.catalog,
            capabilities=adapter.capabilities,
        )
    finally:
        processor.shutdown()
        registry.close()
