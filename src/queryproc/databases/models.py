import os
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class ConnectionConfig(BaseModel):
    """Database connection details. Driver-specific keys are kept as extras."""
    url: str
    database: Optional[str] = None

    model_config = {"extra": "allow"}

    @field_validator("url")
    @classmethod
    def _expand_env(cls, value: str) -> str:
        return os.path.expandvars(value)


class DatabaseConfig(BaseModel):
    """Configuration for a single database binding."""
    id: int
    name: Optional[str] = None
    driver: str
    description: Optional[str] = None
    connection: ConnectionConfig
    options: Dict[str, Any] = Field(default_factory=dict)

    @property
    def key(self) -> str:
        """Stable label for logs and circuit breakers."""
        return self.name or f"database-{self.id}"


class DatabaseFileConfig(BaseModel):
    """File-level schema for databases.yaml."""
    version: int = Field(1, description="Schema version")
    databases: List[DatabaseConfig]
