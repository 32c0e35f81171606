# pingrank/scan/base.py
import datetime
from abc import abstractmethod
from typing import List, Optional, Any
from pydantic import BaseModel, Field

from pingrank.core.plugin import BasePlugin
from pingrank.core.models import AddressSet

class ProbeResult(BaseModel):
    """Data model for the outcome of one host's echo sequence."""
    address: str
    attempts: int
    sent: int = 0
    rtts: List[float] = Field(default_factory=list) # milliseconds, successful exchanges only
    completed: bool = False
    timestamp: datetime.datetime = Field(default_factory=lambda: datetime.datetime.now(datetime.timezone.utc))

    @property
    def received(self) -> int:
        return len(self.rtts)

    @property
    def packet_loss(self) -> float:
        if not self.sent:
            return 1.0
        return 1.0 - self.received / self.sent

    @property
    def mean_rtt(self) -> float:
        """Mean round trip in milliseconds, exactly 0.0 when nothing came back."""
        if not self.rtts:
            return 0.0
        return sum(self.rtts) / len(self.rtts)

class ProbeResultSet(BaseModel):
    """Wrapper model for a list of ProbeResult, suitable for plugin output."""
    results: List[ProbeResult] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
    scan_name: Optional[str] = None

class ScanPlugin(BasePlugin):
    """scan some addresses"""
    input_type = AddressSet
    output_type = ProbeResultSet

    @abstractmethod
    async def scan(self, data: AddressSet, **kwargs: Any) -> ProbeResultSet:
        """Scan the given address set."""
        pass

    def run(self, data: AddressSet, **kwargs: Any):
        return self.scan(data, **kwargs)
