# pingrank/core/models.py
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

class Family(str, Enum):
    """Address family tag carried by every address specification."""
    IPV4 = "ipv4"
    IPV6 = "ipv6"

    @property
    def width(self) -> int:
        return 32 if self is Family.IPV4 else 128

class AddressSpec(BaseModel):
    """A single host address or network prefix, tagged with its family."""
    model_config = ConfigDict(frozen=True)

    text: str
    family: Family

class AddressSet(BaseModel):
    """
    A fundamental data structure representing a named, ordered set of host
    addresses. This is the common input/output format between the expand
    and scan plugins.
    """
    name: str
    description: Optional[str] = None
    addresses: List[str] = Field(default_factory=list)
