from abc import ABC, abstractmethod
from typing import Any, List, Optional

from pydantic import BaseModel

from queryproc.catalog.in_memory import InMemoryCatalog
from queryproc.catalog.models import TableDescriptor
from queryproc.common.cancellation import CancellationToken
from queryproc.drivers.capabilities import CapabilitySet
from queryproc.query.compiled import CompiledQuery


class RawColumn(BaseModel):
    name: str
    native_type: Optional[str] = None


class RawResult(BaseModel):
    """Rows exactly as the backend returned them, after value coercion."""
    columns: List[RawColumn]
    rows: List[List[Any]]
    execution_time_ms: Optional[float] = None

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]


class DriverAdapter(ABC):
    """Canonical interface every driver must implement."""

    name: str = ""

    @classmethod
    @abstractmethod
    def from_config(cls, config: Any, **defaults: Any) -> "DriverAdapter":
        """Build an adapter from a ``DatabaseConfig``."""
        pass

    @property
    @abstractmethod
    def capabilities(self) -> CapabilitySet:
        """Return what this backend can express and how it names results."""
        pass

    @abstractmethod
    def connect(self) -> None:
        """Initialize connections / clients based on config."""
        pass

    @abstractmethod
    def render(self, compiled: CompiledQuery) -> Any:
        """Return the native plan for a compiled query without executing it."""
        pass

    @abstractmethod
    def execute(self, compiled: CompiledQuery, cancel_token: Optional[CancellationToken] = None) -> RawResult:
        """Execute a compiled query on one scoped connection."""
        pass

    @abstractmethod
    def sync_catalog(self, catalog: InMemoryCatalog, database_id: int) -> List[TableDescriptor]:
        """Register this backend's tables and fields in ``catalog``."""
        pass

    def close(self) -> None:
        """Release pooled resources."""
        pass
