"""Lowering of a compiled query to a single SQLAlchemy Core ``SELECT``."""
from __future__ import annotations

from typing import Dict, List, Optional

from sqlalchemy import Select, and_, column, func, not_, or_, select, table
from sqlalchemy.sql.elements import ColumnElement
from sqlalchemy.sql.selectable import FromClause

from queryproc.catalog.models import FieldDescriptor
from queryproc.query.compiled import CompiledQuery, ResolvedFieldRef, ResolvedFilter
from queryproc.query.models import AggregationType, Direction, FilterOperator


class StatementBuilder:
    """Builds the statement for one compiled query.

    Table clauses are lightweight (``table()``/``column()``) and declare only
    the columns the query touches. Each foreign key used in the filter adds a
    ``LEFT OUTER JOIN`` on an alias of its target table.
    """

    def __init__(self, compiled: CompiledQuery):
        self.compiled = compiled
        source_names = _names(self._source_fields())
        self.source = table(compiled.source_table.name, *[column(n) for n in source_names])
        self.joins: Dict[int, FromClause] = {}

        foreign: Dict[int, List[ResolvedFieldRef]] = {}
        if compiled.filter is not None:
            for ref in compiled.filter.foreign_refs():
                foreign.setdefault(ref.via.id, []).append(ref)
        for via_id, refs in foreign.items():
            first = refs[0]
            names = _names([first.target_key] + [r.field for r in refs])
            target = table(first.target_table.name, *[column(n) for n in names])
            self.joins[via_id] = target.alias(f"{first.target_table.name}__via_{first.via.name}")

    def build(self) -> Select:
        compiled = self.compiled
        agg = compiled.aggregation

        projected = compiled.breakout or compiled.fields
        labelled = [self.source.c[f.name].label(c.name) for f, c in zip(projected, compiled.output_columns)]

        if agg == AggregationType.ROWS:
            stmt = select(*labelled)
        else:
            stmt = select(*labelled, self._aggregate().label(compiled.output_columns[-1].name))

        from_clause = self.source
        for via_id, alias in self.joins.items():
            via = self._via_field(via_id)
            target_key = self._target_key(via_id)
            from_clause = from_clause.outerjoin(alias, self.source.c[via.name] == alias.c[target_key.name])
        stmt = stmt.select_from(from_clause)

        if compiled.filter is not None:
            stmt = stmt.where(self._predicate(compiled.filter))

        if compiled.breakout:
            stmt = stmt.group_by(*[self.source.c[f.name] for f in compiled.breakout])

        for order in compiled.order_by:
            col = self.source.c[order.field.name]
            stmt = stmt.order_by(col.desc() if order.direction == Direction.DESCENDING else col.asc())

        if compiled.limit is not None:
            stmt = stmt.limit(compiled.limit)
        if compiled.offset:
            stmt = stmt.offset(compiled.offset)
        return stmt

    def _aggregate(self) -> ColumnElement:
        agg = self.compiled.aggregation
        if agg == AggregationType.COUNT:
            return func.count()
        col = self.source.c[self.compiled.aggregation_field.name]
        if agg == AggregationType.DISTINCT:
            return func.count(col.distinct())
        if agg == AggregationType.SUM:
            return func.sum(col)
        if agg == AggregationType.AVG:
            return func.avg(col)
        raise ValueError(f"Unhandled aggregation {agg}")

    def _column(self, ref: ResolvedFieldRef) -> ColumnElement:
        if ref.is_foreign:
            return self.joins[ref.via.id].c[ref.field.name]
        return self.source.c[ref.field.name]

    def _predicate(self, clause: ResolvedFilter) -> ColumnElement:
        op = clause.op
        if op == FilterOperator.AND:
            return and_(*[self._predicate(c) for c in clause.clauses])
        if op == FilterOperator.OR:
            return or_(*[self._predicate(c) for c in clause.clauses])
        if op == FilterOperator.NOT:
            return not_(self._predicate(clause.clauses[0]))

        col = self._column(clause.field)
        values = clause.values
        if op == FilterOperator.EQ:
            return col == values[0] if len(values) == 1 else col.in_(values)
        if op == FilterOperator.NE:
            return col != values[0] if len(values) == 1 else col.not_in(values)
        if op == FilterOperator.LT:
            return col < values[0]
        if op == FilterOperator.LTE:
            return col <= values[0]
        if op == FilterOperator.GT:
            return col > values[0]
        if op == FilterOperator.GTE:
            return col >= values[0]
        if op == FilterOperator.BETWEEN:
            return col.between(values[0], values[1])
        if op == FilterOperator.IS_NULL:
            return col.is_(None)
        if op == FilterOperator.NOT_NULL:
            return col.is_not(None)
        raise ValueError(f"Unhandled filter operator {op}")

    def _source_fields(self) -> List[FieldDescriptor]:
        compiled = self.compiled
        fields: List[FieldDescriptor] = list(compiled.fields) + list(compiled.breakout)
        if compiled.aggregation_field is not None:
            fields.append(compiled.aggregation_field)
        fields.extend(o.field for o in compiled.order_by)
        if compiled.filter is not None:
            fields.extend(_filter_source_fields(compiled.filter))
        return fields

    def _via_field(self, via_id: int) -> FieldDescriptor:
        return next(r.via for r in self.compiled.filter.foreign_refs() if r.via.id == via_id)

    def _target_key(self, via_id: int) -> Optional[FieldDescriptor]:
        return next(r.target_key for r in self.compiled.filter.foreign_refs() if r.via.id == via_id)


def _filter_source_fields(clause: ResolvedFilter) -> List[FieldDescriptor]:
    fields = []
    if clause.field is not None:
        fields.append(clause.field.via if clause.field.is_foreign else clause.field.field)
    for nested in clause.clauses:
        fields.extend(_filter_source_fields(nested))
    return fields


def _names(fields: List[FieldDescriptor]) -> List[str]:
    seen: Dict[str, None] = {}
    for f in fields:
        seen.setdefault(f.name, None)
    return list(seen)


def build_statement(compiled: CompiledQuery) -> Select:
    return StatementBuilder(compiled).build()
