"""Catalog of tables and fields the query processor resolves references against."""
from queryproc.catalog.models import BaseType, SpecialType, TableDescriptor, FieldDescriptor
from queryproc.catalog.protocol import CatalogAccessor, CatalogNotFoundError
from queryproc.catalog.in_memory import InMemoryCatalog

__all__ = [
    "BaseType",
    "SpecialType",
    "TableDescriptor",
    "FieldDescriptor",
    "CatalogAccessor",
    "CatalogNotFoundError",
    "InMemoryCatalog",
]
