# pingrank/analyze/base.py
import math
from abc import abstractmethod
from typing import Any, List
from pydantic import BaseModel, Field

from pingrank.core.plugin import BasePlugin
from pingrank.scan.base import ProbeResultSet

class RankedEntry(BaseModel):
    """One line of the final report."""
    address: str
    mean_rtt: float # milliseconds

    @property
    def delay_ms(self) -> int:
        """Mean round trip in whole milliseconds, rounded down."""
        return math.floor(self.mean_rtt)

class Ranking(BaseModel):
    """Data model for the output of an analysis plugin."""
    entries: List[RankedEntry] = Field(default_factory=list)
    top_n: int
    considered: int = 0

class AnalyzePlugin(BasePlugin):
    """Analyze some results"""
    input_type = ProbeResultSet
    output_type = Ranking

    @abstractmethod
    def analyze(self, data: ProbeResultSet, **kwargs: Any) -> Ranking:
        pass

    def run(self, data: ProbeResultSet, **kwargs: Any) -> Ranking:
        return self.analyze(data, **kwargs)
