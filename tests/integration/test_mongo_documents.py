"""Document-store behaviour that the shared fixture set does not cover."""
import mongomock
import pytest

from queryproc.catalog.models import BaseType, SpecialType
from queryproc.databases.registry import DatabaseRegistry
from queryproc.drivers.mongo.adapter import MongoAdapter
from queryproc.pipeline.runtime import QueryProcessor


@pytest.fixture
def mongo_db(monkeypatch):
    client = mongomock.MongoClient()
    monkeypatch.setattr("queryproc.drivers.mongo.adapter.MongoClient", lambda *args, **kwargs: client)
    return client["events_db"]


@pytest.fixture
def synced(mongo_db, fast_settings):
    """Registers and syncs ``events_db`` once the test has inserted its documents."""
    registry = DatabaseRegistry(settings=fast_settings)
    processor = QueryProcessor(registry, settings=fast_settings)

    def sync():
        adapter = MongoAdapter(uri="mongodb://localhost:27017", database="events_db", database_key="events")
        registry.register(1, adapter, key=adapter.database_key)
        registry.sync(1)
        return registry.catalog, processor

    yield sync
    processor.shutdown()
    registry.close()


def test_object_id_identifier_is_reported_as_text(mongo_db, synced):
    # Validates identifier typing because generated ObjectId keys come back as hex strings.
    # Arrange
    mongo_db.sessions.insert_many([{"user_name": "ada"}, {"user_name": "grace"}])
    catalog, processor = synced()
    sessions = catalog.resolve_table(1, "sessions")

    # Act
    envelope = processor.process({"database": 1, "query": {"source_table": sessions.id, "limit": 1}})

    # Assert
    assert envelope.succeeded
    identifier = envelope.data.cols[0]
    assert identifier.name == "_id"
    assert identifier.base_type == BaseType.TEXT
    assert identifier.special_type == SpecialType.ID
    assert isinstance(envelope.data.rows[0][0], str)
    assert len(envelope.data.rows[0][0]) == 24


def test_sum_over_absent_and_null_values_is_null(mongo_db, synced):
    # Validates sum nullability because a group with only missing or null values sums to null, not zero.
    # Arrange
    mongo_db.readings.insert_many([
        {"_id": 1, "grp": 1},
        {"_id": 2, "grp": 1, "val": None},
        {"_id": 3, "grp": 2, "val": 5},
    ])
    catalog, processor = synced()
    readings = catalog.resolve_table(1, "readings")
    grp = catalog.resolve_field(readings.id, "grp")
    val = catalog.resolve_field(readings.id, "val")

    # Act
    envelope = processor.process({"database": 1, "query": {
        "source_table": readings.id,
        "aggregation": ["sum", val.id],
        "breakout": [grp.id],
    }})

    # Assert
    assert envelope.succeeded
    assert envelope.data.rows == [[1, None], [2, 5]]
