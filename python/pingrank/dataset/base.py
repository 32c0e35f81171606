# pingrank/dataset/base.py
from abc import abstractmethod
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from pingrank.core.plugin import BasePlugin

class SpecList(BaseModel):
    """Raw address-or-prefix lines as read from an input source."""
    source: Optional[str] = None
    specs: List[str] = Field(default_factory=list)

class DatasetPlugin(BasePlugin):
    """
    load address specifications
    """
    input_type = None
    output_type = SpecList

    @abstractmethod
    def load(self, **kwargs: Any) -> SpecList:
        """load address specifications"""
        pass

    def run(self, data: None = None, **kwargs: Any) -> SpecList:
        return self.load(**kwargs)
