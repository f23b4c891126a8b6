"""Resolved, backend-neutral form of a query description."""
from __future__ import annotations

from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from queryproc.catalog.models import FieldDescriptor, TableDescriptor
from queryproc.common.errors import WarningCode
from queryproc.query.models import AggregationType, Direction, FilterOperator


class QueryWarning(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: WarningCode
    message: str


class ResolvedFieldRef(BaseModel):
    """A catalog field, optionally reached through ``via`` (a foreign key of the source table).

    For foreign references ``target_table`` owns ``field`` and ``target_key``
    is the field ``via`` points at.
    """
    model_config = ConfigDict(frozen=True)

    field: FieldDescriptor
    via: Optional[FieldDescriptor] = None
    target_key: Optional[FieldDescriptor] = None
    target_table: Optional[TableDescriptor] = None

    @property
    def is_foreign(self) -> bool:
        return self.via is not None


class ResolvedFilter(BaseModel):
    model_config = ConfigDict(frozen=True)

    op: FilterOperator
    field: Optional[ResolvedFieldRef] = None
    values: Tuple[Any, ...] = ()
    clauses: Tuple[ResolvedFilter, ...] = ()

    def foreign_refs(self) -> List[ResolvedFieldRef]:
        """Every foreign-key reference in this subtree."""
        refs = [self.field] if self.field is not None and self.field.is_foreign else []
        for clause in self.clauses:
            refs.extend(clause.foreign_refs())
        return refs


class ResolvedOrder(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: FieldDescriptor
    direction: Direction = Direction.ASCENDING


class OutputColumn(BaseModel):
    """One result column.

    ``field`` is ``None`` for synthetic aggregate columns. ``name`` is the
    display name the adapter must label the column with.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    field: Optional[FieldDescriptor] = None
    aggregation: Optional[AggregationType] = None

    @property
    def is_synthetic(self) -> bool:
        return self.field is None


class CompiledQuery(BaseModel):
    model_config = ConfigDict(frozen=True)

    database_id: int
    source_table: TableDescriptor
    aggregation: AggregationType
    aggregation_field: Optional[FieldDescriptor] = None
    fields: Tuple[FieldDescriptor, ...] = ()
    breakout: Tuple[FieldDescriptor, ...] = ()
    filter: Optional[ResolvedFilter] = None
    order_by: Tuple[ResolvedOrder, ...] = ()
    limit: Optional[int] = None
    offset: Optional[int] = None
    output_columns: Tuple[OutputColumn, ...] = ()
    warnings: Tuple[QueryWarning, ...] = ()

    @property
    def is_grouped(self) -> bool:
        return bool(self.breakout)

    @property
    def is_aggregate(self) -> bool:
        return self.aggregation != AggregationType.ROWS

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.output_columns]


ResolvedFilter.model_rebuild()
