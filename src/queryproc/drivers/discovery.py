from importlib.metadata import entry_points
from typing import Dict, Type

from queryproc.common.logger import get_logger
from queryproc.drivers.interfaces import DriverAdapter
from queryproc.drivers.mongo.adapter import MongoAdapter
from queryproc.drivers.sql.adapter import GenericSQLAdapter

logger = get_logger(__name__)

ENTRY_POINT_GROUP = "queryproc.drivers"

BUILTIN_DRIVERS: Dict[str, Type[DriverAdapter]] = {
    GenericSQLAdapter.name: GenericSQLAdapter,
    MongoAdapter.name: MongoAdapter,
}


def discover_drivers() -> Dict[str, Type[DriverAdapter]]:
    """Discovers installed drivers via 'queryproc.drivers' entry points.

    Built-in drivers are always present; an installed entry point with the
    same name replaces the built-in.

    Returns:
        Dict[str, Type[DriverAdapter]]: Dict mapping driver name (e.g., 'mongo')
            to the Adapter Class.
    """
    drivers = dict(BUILTIN_DRIVERS)
    for ep in entry_points(group=ENTRY_POINT_GROUP):
        try:
            drivers[ep.name] = ep.load()
        except (ImportError, AttributeError) as e:
            logger.error(f"Failed to load driver {ep.name}: {e}")
    return drivers
