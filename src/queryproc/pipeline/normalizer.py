from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from queryproc.catalog.models import BaseType, FieldDescriptor, SpecialType
from queryproc.catalog.protocol import CatalogAccessor, CatalogNotFoundError
from queryproc.common.errors import ExecutionError, UnknownReferenceError
from queryproc.drivers.capabilities import CapabilitySet
from queryproc.drivers.interfaces import RawColumn
from queryproc.pipeline.contracts import ColumnDescriptor
from queryproc.query.compiled import CompiledQuery, OutputColumn
from queryproc.query.models import AggregationType

_INTEGER_TYPES = (BaseType.INTEGER, BaseType.BIG_INTEGER)


class TypeNormalizer:
    """Builds canonical column metadata for a result.

    Field columns take their types from the catalog, adjusted to what the
    backend can express. Aggregate columns are synthetic: they belong to no
    table and ``sum``/``avg`` keep the special type of the summed field.
    """

    def normalize(
        self,
        raw_columns: List[RawColumn],
        compiled: CompiledQuery,
        catalog: CatalogAccessor,
        capabilities: CapabilitySet,
    ) -> List[ColumnDescriptor]:
        expected = compiled.output_columns
        if len(raw_columns) != len(expected):
            raise ExecutionError(
                f"Backend returned {len(raw_columns)} columns, expected {len(expected)}"
            )

        cols = []
        for raw, output in zip(raw_columns, expected):
            if raw.name != output.name:
                raise ExecutionError(
                    f"Backend returned column {raw.name!r} where {output.name!r} was expected"
                )
            if output.is_synthetic:
                cols.append(self._synthetic_column(output, compiled, catalog, capabilities))
            else:
                cols.append(self._field_column(output, catalog, capabilities))
        return cols

    def _field_column(
        self, output: OutputColumn, catalog: CatalogAccessor, capabilities: CapabilitySet
    ) -> ColumnDescriptor:
        field = self._lookup(output.field.id, catalog)
        base_type, special_type, extra_info = self.field_types(field, catalog, capabilities)
        return ColumnDescriptor(
            name=capabilities.format_name(field.name),
            base_type=base_type,
            special_type=special_type,
            table_id=field.table_id,
            id=field.id,
            extra_info=extra_info,
            description=field.description,
        )

    def _synthetic_column(
        self,
        output: OutputColumn,
        compiled: CompiledQuery,
        catalog: CatalogAccessor,
        capabilities: CapabilitySet,
    ) -> ColumnDescriptor:
        agg = output.aggregation
        if agg in (AggregationType.COUNT, AggregationType.DISTINCT):
            return ColumnDescriptor(
                name=output.name, base_type=BaseType.INTEGER, special_type=SpecialType.NUMBER
            )

        source = self._lookup(compiled.aggregation_field.id, catalog)
        base_type, special_type, _ = self.field_types(source, catalog, capabilities)
        if agg == AggregationType.AVG:
            base_type = BaseType.FLOAT
        return ColumnDescriptor(name=output.name, base_type=base_type, special_type=special_type)

    def field_types(
        self, field: FieldDescriptor, catalog: CatalogAccessor, capabilities: CapabilitySet
    ) -> Tuple[BaseType, Optional[SpecialType], Dict[str, Any]]:
        """Base type, special type and extra info of ``field`` on this backend."""
        base_type = field.base_type
        # Integer identifiers take the backend's width; text and ObjectId keys keep their type.
        if field.is_identifier and base_type in _INTEGER_TYPES:
            base_type = capabilities.id_base_type
        special_type = field.special_type
        extra_info: Dict[str, Any] = {}

        if field.foreign_key_target is not None or special_type == SpecialType.FK:
            if capabilities.supports_foreign_keys and field.foreign_key_target is not None:
                special_type = SpecialType.FK
                extra_info["target_table_id"] = self._lookup(field.foreign_key_target, catalog).table_id
            else:
                special_type = SpecialType.CATEGORY
        return base_type, special_type, extra_info

    def _lookup(self, field_id: int, catalog: CatalogAccessor) -> FieldDescriptor:
        try:
            return catalog.get_field(field_id)
        except CatalogNotFoundError:
            raise UnknownReferenceError("field", field_id) from None
