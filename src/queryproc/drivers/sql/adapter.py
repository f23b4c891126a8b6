import time
from typing import Any, Dict, List, Optional

from sqlalchemy import Engine, Select, create_engine
from sqlalchemy.engine import Connection
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from queryproc.catalog.in_memory import InMemoryCatalog
from queryproc.catalog.models import TableDescriptor
from queryproc.catalog.sync import sync_sql_catalog
from queryproc.common.cancellation import CancellationToken
from queryproc.common.errors import BackendConnectionError, ExecutionError, QueryCancelledError
from queryproc.common.logger import get_logger
from queryproc.drivers.capabilities import SQL_CAPABILITIES, CapabilitySet
from queryproc.drivers.interfaces import DriverAdapter, RawColumn, RawResult
from queryproc.drivers.sql.statement import build_statement
from queryproc.query.compiled import CompiledQuery

logger = get_logger(__name__)


class GenericSQLAdapter(DriverAdapter):
    """
    Driver for any relational engine SQLAlchemy can reach.
    Each execution runs one SELECT on a connection checked out for that call.
    """
    name = "generic-sql"

    def __init__(
        self,
        connection_string: str = None,
        database_key: str = None,
        engine_options: Optional[Dict[str, Any]] = None,
        cardinality_threshold: int = 40,
    ):
        self.connection_string = connection_string
        self.database_key = database_key
        self.engine_options = dict(engine_options or {})
        self.cardinality_threshold = cardinality_threshold
        self.engine: Engine = None
        if connection_string:
            self.connect()

    @classmethod
    def from_config(cls, config, cardinality_threshold: int = 40) -> "GenericSQLAdapter":
        return cls(
            connection_string=config.connection.url,
            database_key=config.key,
            engine_options=config.options.get("engine_options"),
            cardinality_threshold=config.options.get("cardinality_threshold", cardinality_threshold),
        )

    def __str__(self):
        return f"{self.database_key} ({self.name})"

    @property
    def capabilities(self) -> CapabilitySet:
        return SQL_CAPABILITIES

    def connect(self) -> None:
        conn_str = self.connection_string
        if not conn_str:
            raise ValueError(f"Connection string is required for {self}")
        try:
            self.engine = create_engine(conn_str, pool_pre_ping=True, **self.engine_options)
        except SQLAlchemyError as e:
            logger.error(f"Failed to create engine for {self}: {e}")
            raise

    def render(self, compiled: CompiledQuery) -> Select:
        return build_statement(compiled)

    def execute(self, compiled: CompiledQuery, cancel_token: Optional[CancellationToken] = None) -> RawResult:
        engine = self._require_engine()
        stmt = self.render(compiled)
        start = time.perf_counter()

        try:
            conn = engine.connect()
        except DBAPIError as e:
            raise BackendConnectionError(
                f"Failed to connect to {self}: {e.orig}", database=self.database_key
            ) from e

        unregister = None
        try:
            with conn:
                if cancel_token is not None:
                    if cancel_token.is_cancelled():
                        raise QueryCancelledError(reason=cancel_token.reason or "cancelled")
                    unregister = cancel_token.on_cancel(lambda: self._interrupt(conn))
                result = conn.execute(stmt)
                cols = list(result.keys())
                rows = [list(row) for row in result.fetchall()]
        except DBAPIError as e:
            if cancel_token is not None and cancel_token.is_cancelled():
                raise QueryCancelledError(reason=cancel_token.reason or "cancelled") from e
            if e.connection_invalidated:
                raise BackendConnectionError(f"Connection lost: {e.orig}", database=self.database_key) from e
            raise ExecutionError(str(e.orig), database=self.database_key) from e
        except SQLAlchemyError as e:
            raise ExecutionError(str(e), database=self.database_key) from e
        finally:
            if unregister is not None:
                unregister()

        duration = time.perf_counter() - start
        return RawResult(
            columns=[RawColumn(name=c) for c in cols],
            rows=rows,
            execution_time_ms=duration * 1000,
        )

    def sync_catalog(self, catalog: InMemoryCatalog, database_id: int) -> List[TableDescriptor]:
        return sync_sql_catalog(
            self._require_engine(),
            catalog,
            database_id,
            cardinality_threshold=self.cardinality_threshold,
        )

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()

    def _require_engine(self) -> Engine:
        if not self.engine:
            raise RuntimeError(f"Not connected to {self}")
        return self.engine

    def _interrupt(self, conn: Connection) -> None:
        """Abort the statement running on ``conn`` from another thread."""
        try:
            raw = conn.connection.driver_connection
        except SQLAlchemyError as e:
            logger.warning(f"Cannot reach driver connection to interrupt {self}: {e}")
            return
        for method in ("interrupt", "cancel"):
            abort = getattr(raw, method, None)
            if callable(abort):
                logger.info(f"Interrupting running statement on {self}")
                try:
                    abort()
                except Exception as e:
                    logger.warning(f"Failed to interrupt statement on {self}: {e}")
                return
        logger.warning(f"Driver for {self} cannot interrupt a running statement")
