from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from queryproc.catalog.models import BaseType, SpecialType
from queryproc.query.compiled import QueryWarning


class QueryRequest(BaseModel):
    """A request to run a structured query against one database."""

    database_id: int = Field(
        ..., validation_alias=AliasChoices("database_id", "database"),
        description="Id of the database binding to query.",
    )
    type: str = Field(default="query", description="Request type; only 'query' is processed.")
    query: Dict[str, Any] = Field(..., description="Canonical query description.")
    trace_id: Optional[str] = Field(
        default=None, description="Optional trace id for observability."
    )

    model_config = ConfigDict(extra="ignore")


class ColumnDescriptor(BaseModel):
    """Column metadata in a result envelope."""

    name: str
    base_type: BaseType
    special_type: Optional[SpecialType] = None
    table_id: Optional[int] = None
    id: Optional[int] = None
    extra_info: Dict[str, Any] = Field(default_factory=dict)
    description: Optional[str] = None


class ResultData(BaseModel):
    columns: List[str] = Field(default_factory=list)
    cols: List[ColumnDescriptor] = Field(default_factory=list)
    rows: List[List[Any]] = Field(default_factory=list)


class ErrorInfo(BaseModel):
    kind: str
    message: str


class ResultEnvelope(BaseModel):
    """Canonical response for a processed query.

    ``data`` and ``row_count`` are present only when ``status`` is
    ``completed``; ``error`` only when it is ``failed``.
    """

    status: str = Field(default="completed")
    row_count: Optional[int] = None
    data: Optional[ResultData] = None
    warnings: List[QueryWarning] = Field(default_factory=list)
    error: Optional[ErrorInfo] = None

    @classmethod
    def failed(cls, kind: str, message: str) -> "ResultEnvelope":
        return cls(status="failed", error=ErrorInfo(kind=kind, message=message))

    @property
    def succeeded(self) -> bool:
        return self.status == "completed"

    def to_response(self) -> Dict[str, Any]:
        """JSON-compatible mapping; empty warnings and absent sections are omitted."""
        response = self.model_dump(mode="json", exclude_none=True, exclude={"warnings"})
        if self.data is not None:
            # Null cells and metadata are part of the contract, not omissions.
            response["data"] = self.data.model_dump(mode="json")
        if self.warnings:
            response["warnings"] = [w.model_dump(mode="json") for w in self.warnings]
        return response
