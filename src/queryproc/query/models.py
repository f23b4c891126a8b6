"""Canonical query description.

Accepts both the compact list forms used by stored queries
(``["sum", 12]``, ``[[12, "ascending"]]``, ``["=", 12, 3]``) and explicit
mapping forms. A description is immutable once parsed.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, ValidationError, field_validator, model_validator

from queryproc.common.errors import InvalidQueryError

FK_PREFIX = "fk->"


class Direction(str, Enum):
    ASCENDING = "ascending"
    DESCENDING = "descending"


class AggregationType(str, Enum):
    ROWS = "rows"
    COUNT = "count"
    SUM = "sum"
    DISTINCT = "distinct"
    AVG = "avg"

    @property
    def requires_field(self) -> bool:
        return self in (AggregationType.SUM, AggregationType.DISTINCT, AggregationType.AVG)


class FilterOperator(str, Enum):
    AND = "AND"
    OR = "OR"
    NOT = "NOT"
    EQ = "="
    NE = "!="
    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="
    BETWEEN = "BETWEEN"
    IS_NULL = "IS_NULL"
    NOT_NULL = "NOT_NULL"

    @property
    def is_compound(self) -> bool:
        return self in (FilterOperator.AND, FilterOperator.OR, FilterOperator.NOT)


_SINGLE_VALUE_OPERATORS = {FilterOperator.LT, FilterOperator.LTE, FilterOperator.GT, FilterOperator.GTE}
_NULL_OPERATORS = {FilterOperator.IS_NULL, FilterOperator.NOT_NULL}


class FkFieldRef(BaseModel):
    """Reference to a field of another table reached through a foreign key."""
    model_config = ConfigDict(frozen=True)

    source_field_id: int
    target_field_id: int

    @model_validator(mode="before")
    @classmethod
    def _from_list(cls, data: Any) -> Any:
        if isinstance(data, (list, tuple)):
            if len(data) != 3 or data[0] != FK_PREFIX:
                raise ValueError(f"Expected ['{FK_PREFIX}', source_field_id, target_field_id], got {data!r}")
            return {"source_field_id": data[1], "target_field_id": data[2]}
        return data


FieldRef = Union[int, FkFieldRef]


def _is_no_predicate(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (list, tuple)):
        return all(item is None for item in value)
    return False


class FilterClause(BaseModel):
    """A node of the filter predicate tree."""
    model_config = ConfigDict(frozen=True)

    op: FilterOperator
    field: Optional[FieldRef] = None
    values: Tuple[Any, ...] = ()
    clauses: Tuple[FilterClause, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def _from_list(cls, data: Any) -> Any:
        if not isinstance(data, (list, tuple)):
            return data
        if not data or not isinstance(data[0], str):
            raise ValueError(f"Filter clause must start with an operator, got {data!r}")
        op = data[0].upper()
        if op in (FilterOperator.AND.value, FilterOperator.OR.value, FilterOperator.NOT.value):
            return {"op": op, "clauses": [c for c in data[1:] if not _is_no_predicate(c)]}
        if len(data) < 2:
            raise ValueError(f"Filter clause {op!r} requires a field")
        return {"op": op, "field": data[1], "values": tuple(data[2:])}

    @model_validator(mode="after")
    def _check_arity(self) -> FilterClause:
        op = self.op
        if op.is_compound:
            if self.field is not None or self.values:
                raise ValueError(f"{op.value} takes nested clauses only")
            if op == FilterOperator.NOT and len(self.clauses) != 1:
                raise ValueError("NOT takes exactly one clause")
            if not self.clauses:
                raise ValueError(f"{op.value} requires at least one clause")
            return self
        if self.field is None:
            raise ValueError(f"{op.value} requires a field")
        if self.clauses:
            raise ValueError(f"{op.value} does not take nested clauses")
        if op in _NULL_OPERATORS and self.values:
            raise ValueError(f"{op.value} does not take values")
        if op == FilterOperator.BETWEEN and len(self.values) != 2:
            raise ValueError("BETWEEN requires a minimum and a maximum")
        if op in _SINGLE_VALUE_OPERATORS and len(self.values) != 1:
            raise ValueError(f"{op.value} requires exactly one value")
        if op in (FilterOperator.EQ, FilterOperator.NE) and not self.values:
            raise ValueError(f"{op.value} requires at least one value")
        return self


class Aggregation(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: AggregationType = AggregationType.ROWS
    field: Optional[FieldRef] = None

    @model_validator(mode="before")
    @classmethod
    def _from_compact(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"type": data.lower()}
        if isinstance(data, (list, tuple)):
            if not data or not isinstance(data[0], str):
                raise ValueError(f"Aggregation must start with its type, got {data!r}")
            if len(data) > 2:
                raise ValueError(f"Aggregation takes at most one field, got {data!r}")
            return {"type": data[0].lower(), "field": data[1] if len(data) == 2 else None}
        return data

    @model_validator(mode="after")
    def _check_field(self) -> Aggregation:
        if self.type.requires_field and self.field is None:
            raise ValueError(f"Aggregation '{self.type.value}' requires a field")
        if not self.type.requires_field and self.field is not None:
            raise ValueError(f"Aggregation '{self.type.value}' does not take a field")
        return self


class OrderBy(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: FieldRef
    direction: Direction = Direction.ASCENDING

    @model_validator(mode="before")
    @classmethod
    def _from_pair(cls, data: Any) -> Any:
        if isinstance(data, (list, tuple)) and data and data[0] != FK_PREFIX:
            if len(data) != 2:
                raise ValueError(f"Order by expects [field, direction], got {data!r}")
            return {"field": data[0], "direction": data[1]}
        return data

    @field_validator("direction", mode="before")
    @classmethod
    def _normalize_direction(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value


class Page(BaseModel):
    model_config = ConfigDict(frozen=True)

    items: PositiveInt
    page: PositiveInt

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.items


class QueryDescription(BaseModel):
    """Backend-agnostic description of a structured query.

    Attributes:
        source_table: Id of the table to query.
        filter: Predicate tree, ``None`` meaning match all rows.
        aggregation: What to compute over the matching rows.
        breakout: Fields to group by, in output order.
        order_by: Ordering pairs, applied in declaration order.
        limit: Maximum number of rows.
        page: Page window; takes precedence over ``limit``.
    """
    model_config = ConfigDict(frozen=True, extra="ignore")

    source_table: int
    filter: Optional[FilterClause] = None
    aggregation: Aggregation = Field(default_factory=Aggregation)
    breakout: Tuple[FieldRef, ...] = ()
    order_by: Tuple[OrderBy, ...] = ()
    limit: Optional[PositiveInt] = None
    page: Optional[Page] = None

    @field_validator("filter", mode="before")
    @classmethod
    def _match_all(cls, value: Any) -> Any:
        return None if _is_no_predicate(value) else value

    @field_validator("aggregation", mode="before")
    @classmethod
    def _default_aggregation(cls, value: Any) -> Any:
        return {"type": AggregationType.ROWS} if value is None else value

    @field_validator("breakout", mode="before")
    @classmethod
    def _drop_empty_breakout(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, (list, tuple)):
            if value and value[0] == FK_PREFIX:
                return (value,)
            return tuple(item for item in value if item is not None)
        return value

    @field_validator("order_by", mode="before")
    @classmethod
    def _empty_order_by(cls, value: Any) -> Any:
        return () if value is None else value

    @classmethod
    def parse(cls, data: Union[Mapping[str, Any], QueryDescription]) -> QueryDescription:
        """Validates ``data``, reporting failures as ``InvalidQueryError``."""
        if isinstance(data, QueryDescription):
            return data
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise InvalidQueryError(f"Invalid query description: {e}") from e


FilterClause.model_rebuild()
