"""Native type mapping for catalog synchronisation."""
import datetime
import decimal
from typing import Any, Optional

from bson import Decimal128, ObjectId
from sqlalchemy import types as sqltypes

from queryproc.catalog.models import BaseType, SpecialType

# Order matters: subclasses before their parents.
_SQL_TYPE_MAP = [
    (sqltypes.Boolean, BaseType.BOOLEAN),
    (sqltypes.BigInteger, BaseType.BIG_INTEGER),
    (sqltypes.Integer, BaseType.INTEGER),
    (sqltypes.Float, BaseType.FLOAT),
    (sqltypes.Numeric, BaseType.DECIMAL),
    (sqltypes.DateTime, BaseType.DATETIME),
    (sqltypes.Date, BaseType.DATE),
    (sqltypes.Time, BaseType.TIME),
    (sqltypes.JSON, BaseType.DICT),
    (sqltypes.ARRAY, BaseType.ARRAY),
    (sqltypes.String, BaseType.TEXT),
]

LATITUDE_NAMES = {"latitude", "lat"}
LONGITUDE_NAMES = {"longitude", "lng", "lon", "long"}


def base_type_for_sql(sql_type: Any) -> BaseType:
    """Maps a reflected SQLAlchemy column type to a base type."""
    for sa_type, base_type in _SQL_TYPE_MAP:
        if isinstance(sql_type, sa_type):
            return base_type
    return BaseType.UNKNOWN


def base_type_for_value(value: Any) -> Optional[BaseType]:
    """Maps a sampled document value to a base type. ``None`` for nulls."""
    if value is None:
        return None
    if isinstance(value, bool):
        return BaseType.BOOLEAN
    if isinstance(value, int):
        return BaseType.INTEGER
    if isinstance(value, float):
        return BaseType.FLOAT
    if isinstance(value, (decimal.Decimal, Decimal128)):
        return BaseType.DECIMAL
    if isinstance(value, (str, ObjectId)):
        return BaseType.TEXT
    if isinstance(value, datetime.datetime):
        return BaseType.DATETIME
    if isinstance(value, datetime.date):
        return BaseType.DATE
    if isinstance(value, datetime.time):
        return BaseType.TIME
    if isinstance(value, dict):
        return BaseType.DICT
    if isinstance(value, (list, tuple)):
        return BaseType.ARRAY
    return BaseType.UNKNOWN


def infer_special_type(
    name: str,
    base_type: BaseType,
    is_primary_key: bool = False,
    distinct_count: Optional[int] = None,
    cardinality_threshold: int = 40,
) -> Optional[SpecialType]:
    """Classifies a field by name, key status and cardinality.

    Foreign keys are assigned separately once every table is known.
    """
    if is_primary_key:
        return SpecialType.ID
    lowered = name.lower()
    if lowered in LATITUDE_NAMES:
        return SpecialType.LATITUDE
    if lowered in LONGITUDE_NAMES:
        return SpecialType.LONGITUDE
    if lowered.endswith("_id"):
        return SpecialType.CATEGORY
    if (
        base_type in (BaseType.INTEGER, BaseType.BIG_INTEGER, BaseType.TEXT)
        and distinct_count is not None
        and 0 < distinct_count <= cardinality_threshold
    ):
        return SpecialType.CATEGORY
    return None
