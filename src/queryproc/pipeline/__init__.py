"""Query processing engine: compile, execute, normalize, assemble."""
from queryproc.pipeline.contracts import (
    ColumnDescriptor,
    ErrorInfo,
    QueryRequest,
    ResultData,
    ResultEnvelope,
)
from queryproc.pipeline.state import ProcessingState, RequestLifecycle
from queryproc.pipeline.normalizer import TypeNormalizer
from queryproc.pipeline.assembler import ResultAssembler
from queryproc.pipeline.runtime import QueryProcessor

__all__ = [
    "ColumnDescriptor",
    "ErrorInfo",
    "QueryRequest",
    "ResultData",
    "ResultEnvelope",
    "ProcessingState",
    "RequestLifecycle",
    "TypeNormalizer",
    "ResultAssembler",
    "QueryProcessor",
]
