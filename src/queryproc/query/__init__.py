"""Query description models and the compiler that resolves them."""
from queryproc.query.models import (
    Aggregation,
    AggregationType,
    Direction,
    FilterClause,
    FilterOperator,
    FkFieldRef,
    OrderBy,
    Page,
    QueryDescription,
)
from queryproc.query.compiled import CompiledQuery, OutputColumn, QueryWarning
from queryproc.query.compiler import QueryCompiler

__all__ = [
    "Aggregation",
    "AggregationType",
    "Direction",
    "FilterClause",
    "FilterOperator",
    "FkFieldRef",
    "OrderBy",
    "Page",
    "QueryDescription",
    "CompiledQuery",
    "OutputColumn",
    "QueryWarning",
    "QueryCompiler",
]
