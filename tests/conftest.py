
import pytest
from sqlalchemy import create_engine

from queryproc.common.resilience import reset_breakers
from queryproc.common.settings import settings
from queryproc.drivers.capabilities import MONGO_CAPABILITIES, SQL_CAPABILITIES

from tests.dataset import build_catalog, field_ids, seed_sql


@pytest.fixture(autouse=True)
def _fresh_breakers():
    """Every test starts with closed circuit breakers."""
    reset_breakers()
    yield
    reset_breakers()


@pytest.fixture
def fast_settings():
    """Settings with no retry backoff and a short poll interval."""
    return settings.model_copy(update={
        "retry_backoff_sec": 0.0,
        "poll_interval_sec": 0.01,
        "query_timeout_sec": 5,
    })


@pytest.fixture
def catalog():
    """Catalog for database 1 with categories and venues, category_id a foreign key."""
    return build_catalog(database_id=1)


@pytest.fixture
def ids(catalog):
    """Table and field ids of the ``catalog`` fixture, keyed by name."""
    return {
        "categories": catalog.resolve_table(1, "categories").id,
        "venues": catalog.resolve_table(1, "venues").id,
        "venue_fields": field_ids(catalog, 1, "venues"),
        "category_fields": field_ids(catalog, 1, "categories"),
    }


@pytest.fixture
def sql_caps():
    return SQL_CAPABILITIES


@pytest.fixture
def mongo_caps():
    return MONGO_CAPABILITIES


@pytest.fixture
def sqlite_url(tmp_path):
    """File-backed SQLite database seeded with the shared fixture set."""
    db_path = tmp_path / "test_data.db"
    url = f"sqlite:///{db_path}"
    engine = create_engine(url)
    try:
        seed_sql(engine)
    finally:
        engine.dispose()
    return url
