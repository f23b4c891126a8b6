from enum import Enum
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field

from queryproc.catalog.models import BaseType


class NameCase(str, Enum):
    """How a backend presents field names in results."""

    UPPER = "upper"
    LOWER = "lower"
    PRESERVE = "preserve"


class CapabilitySet(BaseModel):
    """What a driver can express and how it presents results.

    ``name_aliases`` maps logical catalog names to physical backend names
    (``id`` -> ``_id`` for document stores). Display names are the physical
    name in the driver's case.
    """
    model_config = ConfigDict(frozen=True)

    driver: str
    supports_foreign_keys: bool = False
    id_base_type: BaseType = BaseType.INTEGER
    name_case: NameCase = NameCase.PRESERVE
    name_aliases: Dict[str, str] = Field(default_factory=dict)

    def physical_name(self, name: str) -> str:
        return self.name_aliases.get(name, name)

    def format_name(self, name: str) -> str:
        physical = self.physical_name(name)
        if self.name_case == NameCase.UPPER:
            return physical.upper()
        if self.name_case == NameCase.LOWER:
            return physical.lower()
        return physical


SQL_CAPABILITIES = CapabilitySet(
    driver="generic-sql",
    supports_foreign_keys=True,
    id_base_type=BaseType.BIG_INTEGER,
    name_case=NameCase.UPPER,
)

MONGO_CAPABILITIES = CapabilitySet(
    driver="mongo",
    supports_foreign_keys=False,
    id_base_type=BaseType.INTEGER,
    name_case=NameCase.PRESERVE,
    name_aliases={"id": "_id"},
)
