"""Backend drivers, their capability sets and discovery."""
from queryproc.drivers.capabilities import CapabilitySet, NameCase, SQL_CAPABILITIES, MONGO_CAPABILITIES
from queryproc.drivers.interfaces import DriverAdapter, RawColumn, RawResult
from queryproc.drivers.discovery import discover_drivers

__all__ = [
    "CapabilitySet",
    "NameCase",
    "SQL_CAPABILITIES",
    "MONGO_CAPABILITIES",
    "DriverAdapter",
    "RawColumn",
    "RawResult",
    "discover_drivers",
]
