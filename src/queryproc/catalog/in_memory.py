from __future__ import annotations

import itertools
import logging
import threading
from typing import Dict, List, Optional, Tuple

from queryproc.catalog.models import BaseType, FieldDescriptor, SpecialType, TableDescriptor
from queryproc.catalog.protocol import CatalogNotFoundError

logger = logging.getLogger(__name__)


class InMemoryCatalog:
    """Process-local catalog of tables and fields.

    Registration is serialised by a lock. Reads go straight to the dicts: an
    entry is published only after it is fully built and descriptors are
    immutable, so readers never observe a partial write.

    Re-registering a table or field by name keeps its id, which makes repeated
    synchronisation idempotent.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._table_ids = itertools.count(1)
        self._field_ids = itertools.count(1)
        self._tables: Dict[int, TableDescriptor] = {}
        self._fields: Dict[int, FieldDescriptor] = {}
        self._tables_by_name: Dict[Tuple[int, str], int] = {}
        self._fields_by_name: Dict[Tuple[int, str], int] = {}
        self._table_fields: Dict[int, List[int]] = {}

    def add_table(self, database_id: int, name: str, description: Optional[str] = None) -> TableDescriptor:
        with self._lock:
            key = (database_id, name)
            table_id = self._tables_by_name.get(key)
            if table_id is None:
                table_id = next(self._table_ids)
            table = TableDescriptor(
                id=table_id, database_id=database_id, name=name, description=description
            )
            self._tables[table_id] = table
            self._table_fields.setdefault(table_id, [])
            self._tables_by_name[key] = table_id
            return table

    def add_field(
        self,
        table_id: int,
        name: str,
        base_type: BaseType,
        special_type: Optional[SpecialType] = None,
        foreign_key_target: Optional[int] = None,
        description: Optional[str] = None,
        position: Optional[int] = None,
    ) -> FieldDescriptor:
        with self._lock:
            if table_id not in self._tables:
                raise CatalogNotFoundError(f"Unknown table id {table_id}")
            key = (table_id, name)
            field_id = self._fields_by_name.get(key)
            field_ids = self._table_fields[table_id]
            if field_id is None:
                field_id = next(self._field_ids)
                field_ids.append(field_id)
            if position is None:
                position = field_ids.index(field_id)
            field = FieldDescriptor(
                id=field_id,
                table_id=table_id,
                name=name,
                base_type=base_type,
                special_type=special_type,
                foreign_key_target=foreign_key_target,
                description=description,
                position=position,
            )
            self._fields[field_id] = field
            self._fields_by_name[key] = field_id
            return field

    def set_foreign_key(self, field_id: int, target_field_id: int) -> FieldDescriptor:
        with self._lock:
            if target_field_id not in self._fields:
                raise CatalogNotFoundError(f"Unknown field id {target_field_id}")
            field = self._require_field(field_id)
            updated = field.model_copy(
                update={"foreign_key_target": target_field_id, "special_type": SpecialType.FK}
            )
            self._fields[field_id] = updated
            return updated

    def resolve_table(self, database_id: int, name: str) -> TableDescriptor:
        table_id = self._tables_by_name.get((database_id, name))
        if table_id is None:
            raise CatalogNotFoundError(f"Unknown table {name!r} in database {database_id}")
        return self._tables[table_id]

    def resolve_field(self, table_id: int, name: str) -> FieldDescriptor:
        field_id = self._fields_by_name.get((table_id, name))
        if field_id is None:
            raise CatalogNotFoundError(f"Unknown field {name!r} in table {table_id}")
        return self._fields[field_id]

    def get_table(self, table_id: int) -> TableDescriptor:
        table = self._tables.get(table_id)
        if table is None:
            raise CatalogNotFoundError(f"Unknown table id {table_id}")
        return table

    def get_field(self, field_id: int) -> FieldDescriptor:
        return self._require_field(field_id)

    def list_fields(self, table_id: int) -> List[FieldDescriptor]:
        self.get_table(table_id)
        fields = [self._fields[fid] for fid in list(self._table_fields.get(table_id, []))]
        return sorted(fields, key=lambda f: (f.position, f.id))

    def list_tables(self, database_id: int) -> List[TableDescriptor]:
        tables = [t for t in list(self._tables.values()) if t.database_id == database_id]
        return sorted(tables, key=lambda t: t.id)

    def _require_field(self, field_id: int) -> FieldDescriptor:
        field = self._fields.get(field_id)
        if field is None:
            raise CatalogNotFoundError(f"Unknown field id {field_id}")
        return field
