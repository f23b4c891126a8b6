# queryproc package

from .pipeline.runtime import QueryProcessor
from .pipeline.contracts import QueryRequest, ResultEnvelope
from .databases.registry import DatabaseRegistry
from .common.cancellation import CancellationToken

__all__ = [
    "QueryProcessor",
    "QueryRequest",
    "ResultEnvelope",
    "DatabaseRegistry",
    "CancellationToken",
]
