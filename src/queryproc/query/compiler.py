from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from queryproc.catalog.models import FieldDescriptor, TableDescriptor
from queryproc.catalog.protocol import CatalogAccessor, CatalogNotFoundError
from queryproc.common.errors import (
    InvalidQueryError,
    UnknownReferenceError,
    UnsupportedOperationError,
    WarningCode,
)
from queryproc.drivers.capabilities import CapabilitySet
from queryproc.query.compiled import (
    CompiledQuery,
    OutputColumn,
    QueryWarning,
    ResolvedFieldRef,
    ResolvedFilter,
    ResolvedOrder,
)
from queryproc.query.models import (
    AggregationType,
    Direction,
    FieldRef,
    FilterClause,
    FkFieldRef,
    QueryDescription,
)

logger = logging.getLogger(__name__)

SYNTHETIC_COLUMN_NAMES = {
    AggregationType.COUNT: "count",
    AggregationType.DISTINCT: "count",
    AggregationType.SUM: "sum",
    AggregationType.AVG: "avg",
}


class QueryCompiler:
    """Resolves a query description against the catalog and a capability set.

    The result is backend-neutral: every reference is a catalog descriptor,
    paging is lowered to limit/offset and the output column list is fixed.
    """

    def compile(
        self,
        query: QueryDescription,
        capabilities: CapabilitySet,
        catalog: CatalogAccessor,
        database_id: int,
    ) -> CompiledQuery:
        warnings: List[QueryWarning] = []
        table = self._resolve_table(query.source_table, catalog, database_id)

        aggregation = query.aggregation.type
        aggregation_field: Optional[FieldDescriptor] = None
        if query.aggregation.field is not None:
            aggregation_field = self._resolve_local(query.aggregation.field, table, catalog, "aggregation")
            if aggregation in (AggregationType.SUM, AggregationType.AVG) and not aggregation_field.base_type.is_numeric:
                raise InvalidQueryError(
                    f"Cannot {aggregation.value} non-numeric field '{aggregation_field.name}' "
                    f"({aggregation_field.base_type.value})",
                    field_id=aggregation_field.id,
                )

        breakout = tuple(self._resolve_local(ref, table, catalog, "breakout") for ref in query.breakout)
        if len({f.id for f in breakout}) != len(breakout):
            raise InvalidQueryError("Breakout names the same field more than once")

        fields: Tuple[FieldDescriptor, ...] = ()
        if aggregation == AggregationType.ROWS and not breakout:
            fields = tuple(catalog.list_fields(table.id))

        resolved_filter = None
        if query.filter is not None:
            resolved_filter = self._resolve_filter(query.filter, table, catalog, capabilities)

        order_by = self._compile_order(query, table, breakout, fields, catalog, warnings)

        limit = query.limit
        offset = None
        if query.page is not None:
            if query.limit is not None:
                warnings.append(QueryWarning(
                    code=WarningCode.LIMIT_OVERRIDDEN_BY_PAGE,
                    message=f"Page window overrides limit {query.limit}",
                ))
            limit = query.page.items
            offset = query.page.offset
            if not order_by:
                warnings.append(QueryWarning(
                    code=WarningCode.NONDETERMINISTIC_PAGING,
                    message="Paging without an ordering; page contents may differ between requests",
                ))
            elif fields and not any(o.field.is_identifier for o in order_by):
                # Without an identifier, rows with equal sort keys have no fixed order.
                warnings.append(QueryWarning(
                    code=WarningCode.NONDETERMINISTIC_PAGING,
                    message="Paging over an ordering with no identifier field; ties may move between pages",
                ))

        output_columns = self._output_columns(aggregation, breakout, fields, capabilities)

        for warning in warnings:
            logger.warning(f"{warning.code.value}: {warning.message}")

        return CompiledQuery(
            database_id=database_id,
            source_table=table,
            aggregation=aggregation,
            aggregation_field=aggregation_field,
            fields=fields,
            breakout=breakout,
            filter=resolved_filter,
            order_by=order_by,
            limit=limit,
            offset=offset,
            output_columns=output_columns,
            warnings=tuple(warnings),
        )

    def _resolve_table(self, table_id: int, catalog: CatalogAccessor, database_id: int) -> TableDescriptor:
        try:
            table = catalog.get_table(table_id)
        except CatalogNotFoundError:
            raise UnknownReferenceError("table", table_id) from None
        if table.database_id != database_id:
            raise UnknownReferenceError(
                "table", table_id, f"Table {table_id} does not belong to database {database_id}"
            )
        return table

    def _get_field(self, field_id: int, catalog: CatalogAccessor) -> FieldDescriptor:
        try:
            return catalog.get_field(field_id)
        except CatalogNotFoundError:
            raise UnknownReferenceError("field", field_id) from None

    def _field_of_table(self, field_id: int, table_id: int, catalog: CatalogAccessor) -> FieldDescriptor:
        field = self._get_field(field_id, catalog)
        if field.table_id != table_id:
            raise UnknownReferenceError(
                "field", field_id, f"Field {field_id} does not belong to table {table_id}"
            )
        return field

    def _resolve_local(self, ref: FieldRef, table: TableDescriptor, catalog: CatalogAccessor, clause: str) -> FieldDescriptor:
        if isinstance(ref, FkFieldRef):
            raise UnsupportedOperationError(
                clause, f"Foreign key references are only supported in filters, not in {clause}"
            )
        return self._field_of_table(ref, table.id, catalog)

    def _resolve_ref(
        self,
        ref: FieldRef,
        table: TableDescriptor,
        catalog: CatalogAccessor,
        capabilities: CapabilitySet,
    ) -> ResolvedFieldRef:
        if not isinstance(ref, FkFieldRef):
            return ResolvedFieldRef(field=self._field_of_table(ref, table.id, catalog))

        if not capabilities.supports_foreign_keys:
            raise UnsupportedOperationError(
                "filter",
                f"Driver '{capabilities.driver}' does not support foreign key references",
                driver=capabilities.driver,
            )
        source = self._field_of_table(ref.source_field_id, table.id, catalog)
        if source.foreign_key_target is None:
            raise InvalidQueryError(
                f"Field '{source.name}' is not a foreign key", field_id=source.id
            )
        target_key = self._get_field(source.foreign_key_target, catalog)
        target = self._field_of_table(ref.target_field_id, target_key.table_id, catalog)
        return ResolvedFieldRef(
            field=target,
            via=source,
            target_key=target_key,
            target_table=self._resolve_table(target_key.table_id, catalog, table.database_id),
        )

    def _resolve_filter(
        self,
        clause: FilterClause,
        table: TableDescriptor,
        catalog: CatalogAccessor,
        capabilities: CapabilitySet,
    ) -> ResolvedFilter:
        if clause.op.is_compound:
            return ResolvedFilter(
                op=clause.op,
                clauses=tuple(self._resolve_filter(c, table, catalog, capabilities) for c in clause.clauses),
            )
        return ResolvedFilter(
            op=clause.op,
            field=self._resolve_ref(clause.field, table, catalog, capabilities),
            values=clause.values,
        )

    def _compile_order(
        self,
        query: QueryDescription,
        table: TableDescriptor,
        breakout: Tuple[FieldDescriptor, ...],
        fields: Tuple[FieldDescriptor, ...],
        catalog: CatalogAccessor,
        warnings: List[QueryWarning],
    ) -> Tuple[ResolvedOrder, ...]:
        aggregation = query.aggregation.type
        requested = [
            ResolvedOrder(field=self._resolve_local(o.field, table, catalog, "order_by"), direction=o.direction)
            for o in query.order_by
        ]

        if aggregation != AggregationType.ROWS and not breakout:
            if requested:
                warnings.append(QueryWarning(
                    code=WarningCode.ORDER_BY_IGNORED,
                    message="Ordering an ungrouped aggregate has no effect",
                ))
            return ()

        if breakout:
            breakout_ids = {f.id for f in breakout}
            for order in requested:
                if order.field.id not in breakout_ids:
                    raise InvalidQueryError(
                        f"Cannot order by '{order.field.name}': grouped queries may only be ordered by breakout fields",
                        field_id=order.field.id,
                    )
            # Breakout combinations are unique, so ordering by every breakout field is total.
            ordered_ids = {o.field.id for o in requested}
            requested.extend(
                ResolvedOrder(field=f, direction=Direction.ASCENDING)
                for f in breakout if f.id not in ordered_ids
            )
            return _dedupe(requested)

        if not requested:
            return ()
        identifier = next((f for f in fields if f.is_identifier), None)
        if identifier is not None and all(o.field.id != identifier.id for o in requested):
            requested.append(ResolvedOrder(field=identifier, direction=Direction.ASCENDING))
        return _dedupe(requested)

    def _output_columns(
        self,
        aggregation: AggregationType,
        breakout: Tuple[FieldDescriptor, ...],
        fields: Tuple[FieldDescriptor, ...],
        capabilities: CapabilitySet,
    ) -> Tuple[OutputColumn, ...]:
        projected = breakout or fields
        columns = [OutputColumn(name=capabilities.format_name(f.name), field=f) for f in projected]
        if aggregation != AggregationType.ROWS:
            columns.append(OutputColumn(name=SYNTHETIC_COLUMN_NAMES[aggregation], aggregation=aggregation))
        names = [c.name for c in columns]
        if len(set(names)) != len(names):
            raise InvalidQueryError(f"Output column names collide: {names}")
        return tuple(columns)


def _dedupe(orders: List[ResolvedOrder]) -> Tuple[ResolvedOrder, ...]:
    seen = set()
    result = []
    for order in orders:
        if order.field.id in seen:
            continue
        seen.add(order.field.id)
        result.append(order)
    return tuple(result)
