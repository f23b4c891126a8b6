from __future__ import annotations

from typing import List, Protocol, runtime_checkable

from queryproc.catalog.models import FieldDescriptor, TableDescriptor


class CatalogNotFoundError(LookupError):
    """Raised when a catalog lookup names an unknown table or field."""


@runtime_checkable
class CatalogAccessor(Protocol):
    """Read interface the compiler and normalizer use to resolve references."""

    def resolve_table(self, database_id: int, name: str) -> TableDescriptor:
        ...

    def resolve_field(self, table_id: int, name: str) -> FieldDescriptor:
        ...

    def get_table(self, table_id: int) -> TableDescriptor:
        ...

    def get_field(self, field_id: int) -> FieldDescriptor:
        ...

    def list_fields(self, table_id: int) -> List[FieldDescriptor]:
        ...
