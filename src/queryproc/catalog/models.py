from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class BaseType(str, Enum):
    """Declared storage type of a field, independent of the backend."""
    INTEGER = "IntegerField"
    BIG_INTEGER = "BigIntegerField"
    FLOAT = "FloatField"
    DECIMAL = "DecimalField"
    TEXT = "TextField"
    BOOLEAN = "BooleanField"
    DATE = "DateField"
    DATETIME = "DateTimeField"
    TIME = "TimeField"
    DICT = "DictField"
    ARRAY = "ArrayField"
    UNKNOWN = "UnknownField"

    @property
    def is_numeric(self) -> bool:
        return self in NUMERIC_BASE_TYPES


NUMERIC_BASE_TYPES = {
    BaseType.INTEGER,
    BaseType.BIG_INTEGER,
    BaseType.FLOAT,
    BaseType.DECIMAL,
}


class SpecialType(str, Enum):
    """Semantic role of a field."""
    ID = "id"
    FK = "fk"
    CATEGORY = "category"
    NUMBER = "number"
    LATITUDE = "latitude"
    LONGITUDE = "longitude"


class TableDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    database_id: int
    name: str
    description: Optional[str] = None


class FieldDescriptor(BaseModel):
    """Catalog entry for a single field.

    ``foreign_key_target`` is the id of the field this one references, if the
    backend declares the relationship.
    """
    model_config = ConfigDict(frozen=True)

    id: int
    table_id: int
    name: str
    base_type: BaseType
    special_type: Optional[SpecialType] = None
    foreign_key_target: Optional[int] = None
    description: Optional[str] = None
    position: int = 0

    @property
    def is_identifier(self) -> bool:
        return self.special_type == SpecialType.ID
