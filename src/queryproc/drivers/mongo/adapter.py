import time
from decimal import Decimal
from typing import Any, Dict, List, Optional

from bson import Decimal128, ObjectId
from pymongo import MongoClient
from pymongo.errors import (
    AutoReconnect,
    ConnectionFailure,
    ExecutionTimeout,
    OperationFailure,
    PyMongoError,
)

from queryproc.catalog.in_memory import InMemoryCatalog
from queryproc.catalog.models import TableDescriptor
from queryproc.catalog.sync import sync_mongo_catalog
from queryproc.common.cancellation import CancellationToken
from queryproc.common.errors import BackendConnectionError, ExecutionError, QueryCancelledError
from queryproc.common.logger import get_logger
from queryproc.drivers.capabilities import MONGO_CAPABILITIES, CapabilitySet
from queryproc.drivers.interfaces import DriverAdapter, RawColumn, RawResult
from queryproc.drivers.mongo.pipeline import AGGREGATE_KEY, build_pipeline, group_key
from queryproc.query.compiled import CompiledQuery
from queryproc.query.models import AggregationType

logger = get_logger(__name__)


def coerce_value(value: Any) -> Any:
    """Convert BSON-specific values to plain Python values."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, Decimal128):
        return value.to_decimal()
    if isinstance(value, dict):
        return {k: coerce_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [coerce_value(v) for v in value]
    return value


class MongoAdapter(DriverAdapter):
    """
    Driver for MongoDB. Each execution runs one aggregation pipeline
    against the source collection.
    """
    name = "mongo"

    def __init__(
        self,
        uri: str = None,
        database: str = None,
        database_key: str = None,
        client_options: Optional[Dict[str, Any]] = None,
        max_time_ms: Optional[int] = None,
        sample_size: int = 100,
        cardinality_threshold: int = 40,
    ):
        self.uri = uri
        self.database = database
        self.database_key = database_key
        self.client_options = dict(client_options or {})
        self.max_time_ms = max_time_ms
        self.sample_size = sample_size
        self.cardinality_threshold = cardinality_threshold
        self.client: Optional[MongoClient] = None
        if uri:
            self.connect()

    @classmethod
    def from_config(cls, config, sample_size: int = 100, cardinality_threshold: int = 40) -> "MongoAdapter":
        return cls(
            uri=config.connection.url,
            database=config.connection.database,
            database_key=config.key,
            client_options=config.options.get("client_options"),
            max_time_ms=config.options.get("max_time_ms"),
            sample_size=config.options.get("sample_size", sample_size),
            cardinality_threshold=config.options.get("cardinality_threshold", cardinality_threshold),
        )

    def __str__(self):
        return f"{self.database_key} ({self.name})"

    @property
    def capabilities(self) -> CapabilitySet:
        return MONGO_CAPABILITIES

    def connect(self) -> None:
        if not self.uri or not self.database:
            raise ValueError(f"A URI and a database name are required for {self}")
        try:
            self.client = MongoClient(self.uri, **self.client_options)
            logger.info(f"Connected to MongoDB database {self.database} for {self}")
        except PyMongoError as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise BackendConnectionError(f"Failed to connect to {self}: {e}", database=self.database_key) from e

    def render(self, compiled: CompiledQuery) -> List[Dict[str, Any]]:
        return build_pipeline(compiled, self.capabilities)

    def execute(self, compiled: CompiledQuery, cancel_token: Optional[CancellationToken] = None) -> RawResult:
        pipeline = self.render(compiled)
        collection = self._db()[compiled.source_table.name]
        start = time.perf_counter()

        options: Dict[str, Any] = {}
        if self.max_time_ms:
            options["maxTimeMS"] = self.max_time_ms

        documents = []
        try:
            _raise_if_cancelled(cancel_token)
            cursor = collection.aggregate(pipeline, **options)
            try:
                for doc in cursor:
                    _raise_if_cancelled(cancel_token)
                    documents.append(doc)
            finally:
                cursor.close()
        except ExecutionTimeout as e:
            raise QueryCancelledError(f"Query exceeded maxTimeMS: {e}", reason="timeout") from e
        except (ConnectionFailure, AutoReconnect) as e:
            raise BackendConnectionError(f"Failed to reach {self}: {e}", database=self.database_key) from e
        except OperationFailure as e:
            raise ExecutionError(str(e.details.get("errmsg", e)) if e.details else str(e), database=self.database_key) from e
        except PyMongoError as e:
            raise ExecutionError(str(e), database=self.database_key) from e

        keys = self._result_keys(compiled)
        rows = [[coerce_value(doc.get(key)) for key in keys] for doc in documents]
        if not rows and compiled.is_aggregate and not compiled.is_grouped and not compiled.offset:
            # An ungrouped aggregate over no documents still yields one row.
            empty = 0 if compiled.aggregation in (AggregationType.COUNT, AggregationType.DISTINCT) else None
            rows = [[empty]]

        duration = time.perf_counter() - start
        return RawResult(
            columns=[RawColumn(name=name) for name in self._result_names(compiled)],
            rows=rows,
            execution_time_ms=duration * 1000,
        )

    def sync_catalog(self, catalog: InMemoryCatalog, database_id: int) -> List[TableDescriptor]:
        try:
            return sync_mongo_catalog(
                self._db(),
                catalog,
                database_id,
                sample_size=self.sample_size,
                cardinality_threshold=self.cardinality_threshold,
            )
        except (ConnectionFailure, AutoReconnect) as e:
            raise BackendConnectionError(f"Failed to reach {self}: {e}", database=self.database_key) from e

    def close(self) -> None:
        if self.client is not None:
            self.client.close()

    def _db(self):
        if self.client is None:
            raise RuntimeError(f"Not connected to {self}")
        return self.client[self.database]

    def _result_keys(self, compiled: CompiledQuery) -> List[str]:
        if not compiled.is_aggregate and not compiled.is_grouped:
            return [self.capabilities.physical_name(f.name) for f in compiled.fields]
        keys = [group_key(i) for i in range(len(compiled.breakout))]
        if compiled.is_aggregate:
            keys.append(AGGREGATE_KEY)
        return keys

    def _result_names(self, compiled: CompiledQuery) -> List[str]:
        projected = compiled.breakout or compiled.fields
        names = [self.capabilities.physical_name(f.name) for f in projected]
        if compiled.is_aggregate:
            names.append(compiled.output_columns[-1].name)
        return names


def _raise_if_cancelled(cancel_token: Optional[CancellationToken]) -> None:
    if cancel_token is not None and cancel_token.is_cancelled():
        raise QueryCancelledError(reason=cancel_token.reason or "cancelled")
