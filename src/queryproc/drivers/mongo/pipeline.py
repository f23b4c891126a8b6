"""Lowering of a compiled query to a MongoDB aggregation pipeline."""
from __future__ import annotations

from typing import Any, Dict, List

from queryproc.common.errors import UnsupportedOperationError
from queryproc.drivers.capabilities import CapabilitySet
from queryproc.query.compiled import CompiledQuery, ResolvedFilter
from queryproc.query.models import AggregationType, Direction, FilterOperator

AGGREGATE_KEY = "agg"
DISTINCT_VALUES_KEY = "values"
PRESENT_KEY = "present"

_COMPARISONS = {
    FilterOperator.LT: "$lt",
    FilterOperator.LTE: "$lte",
    FilterOperator.GT: "$gt",
    FilterOperator.GTE: "$gte",
}


def group_key(index: int) -> str:
    return f"k{index}"


class PipelineBuilder:
    """Builds the pipeline for one compiled query.

    Ungrouped row queries project document fields directly. Grouped and
    aggregate queries ``$group`` on ``k0..kN`` and project them, with the
    aggregate under ``agg``, to flat documents before sorting and paging.
    """

    def __init__(self, compiled: CompiledQuery, capabilities: CapabilitySet):
        self.compiled = compiled
        self.capabilities = capabilities

    def build(self) -> List[Dict[str, Any]]:
        compiled = self.compiled
        pipeline: List[Dict[str, Any]] = []

        match = self.match_stage()
        if match:
            pipeline.append({"$match": match})

        if compiled.aggregation == AggregationType.ROWS and not compiled.is_grouped:
            if compiled.order_by:
                pipeline.append({"$sort": {
                    self.physical(o.field.name): _direction(o.direction) for o in compiled.order_by
                }})
            pipeline.extend(self._paging())
            projection: Dict[str, Any] = {self.physical(f.name): 1 for f in compiled.fields}
            projection.setdefault("_id", 0)
            pipeline.append({"$project": projection})
            return pipeline

        pipeline.extend(self._group_stages())
        if compiled.order_by:
            key_for = {f.id: group_key(i) for i, f in enumerate(compiled.breakout)}
            pipeline.append({"$sort": {
                key_for[o.field.id]: _direction(o.direction) for o in compiled.order_by
            }})
        pipeline.extend(self._paging())
        return pipeline

    def physical(self, name: str) -> str:
        return self.capabilities.physical_name(name)

    def match_stage(self) -> Dict[str, Any]:
        compiled = self.compiled
        clauses = []
        if compiled.filter is not None:
            clauses.append(self._predicate(compiled.filter))
        if compiled.aggregation == AggregationType.DISTINCT and not compiled.is_grouped:
            clauses.append({self.physical(compiled.aggregation_field.name): {"$ne": None}})
        if not clauses:
            return {}
        if len(clauses) == 1:
            return clauses[0]
        return {"$and": clauses}

    def _group_stages(self) -> List[Dict[str, Any]]:
        compiled = self.compiled
        agg = compiled.aggregation
        group_id: Any = None
        if compiled.is_grouped:
            group_id = {group_key(i): f"${self.physical(f.name)}" for i, f in enumerate(compiled.breakout)}

        group: Dict[str, Any] = {"_id": group_id}
        project: Dict[str, Any] = {"_id": 0}
        for i in range(len(compiled.breakout)):
            project[group_key(i)] = f"$_id.{group_key(i)}"

        if agg != AggregationType.ROWS:
            source = f"${self.physical(compiled.aggregation_field.name)}" if compiled.aggregation_field else None
            if agg == AggregationType.COUNT:
                group[AGGREGATE_KEY] = {"$sum": 1}
                project[AGGREGATE_KEY] = f"${AGGREGATE_KEY}"
            elif agg in (AggregationType.SUM, AggregationType.AVG):
                operator = "$sum" if agg == AggregationType.SUM else "$avg"
                group[AGGREGATE_KEY] = {operator: source}
                # $sum over only nulls is 0 where SQL SUM is NULL; null out groups with no values.
                group[PRESENT_KEY] = {"$sum": {"$cond": [{"$eq": [{"$ifNull": [source, None]}, None]}, 0, 1]}}
                project[AGGREGATE_KEY] = {"$cond": [{"$gt": [f"${PRESENT_KEY}", 0]}, f"${AGGREGATE_KEY}", None]}
            elif agg == AggregationType.DISTINCT:
                group[DISTINCT_VALUES_KEY] = {"$addToSet": source}
                if compiled.is_grouped:
                    # Null values were not filtered out before grouping.
                    project[AGGREGATE_KEY] = {"$size": {"$setDifference": [f"${DISTINCT_VALUES_KEY}", [None]]}}
                else:
                    project[AGGREGATE_KEY] = {"$size": f"${DISTINCT_VALUES_KEY}"}

        return [{"$group": group}, {"$project": project}]

    def _paging(self) -> List[Dict[str, Any]]:
        stages: List[Dict[str, Any]] = []
        if self.compiled.offset:
            stages.append({"$skip": self.compiled.offset})
        if self.compiled.limit is not None:
            stages.append({"$limit": self.compiled.limit})
        return stages

    def _predicate(self, clause: ResolvedFilter) -> Dict[str, Any]:
        op = clause.op
        if op == FilterOperator.AND:
            return {"$and": [self._predicate(c) for c in clause.clauses]}
        if op == FilterOperator.OR:
            return {"$or": [self._predicate(c) for c in clause.clauses]}
        if op == FilterOperator.NOT:
            return {"$nor": [self._predicate(clause.clauses[0])]}

        if clause.field.is_foreign:
            raise UnsupportedOperationError(
                "filter",
                f"Driver '{self.capabilities.driver}' does not support foreign key references",
                driver=self.capabilities.driver,
            )
        name = self.physical(clause.field.field.name)
        values = list(clause.values)
        if op == FilterOperator.EQ:
            return {name: {"$eq": values[0]}} if len(values) == 1 else {name: {"$in": values}}
        if op == FilterOperator.NE:
            # Match SQL three-valued logic: != never matches null.
            return {name: {"$nin": values + [None]}}
        if op in _COMPARISONS:
            return {name: {_COMPARISONS[op]: values[0]}}
        if op == FilterOperator.BETWEEN:
            return {name: {"$gte": values[0], "$lte": values[1]}}
        if op == FilterOperator.IS_NULL:
            return {name: None}
        if op == FilterOperator.NOT_NULL:
            return {name: {"$ne": None}}
        raise ValueError(f"Unhandled filter operator {op}")


def _direction(direction: Direction) -> int:
    return -1 if direction == Direction.DESCENDING else 1


def build_pipeline(compiled: CompiledQuery, capabilities: CapabilitySet) -> List[Dict[str, Any]]:
    return PipelineBuilder(compiled, capabilities).build()
